"""Context Engineering Module

Builds what the model sees on a turn:
1. System context - fixed platform prompt + user baseline profile + recent history
2. Model history - the last few turns, always ending on the user's message
"""
import logging
from typing import Dict, List, Optional
from config.settings import MAX_MODEL_HISTORY, MAX_RECENT_MESSAGES
from models.conversation import UserProfile

logger = logging.getLogger(__name__)


class ContextEngine:
    """Assembles the system context and history window for a model call."""

    def __init__(self, platform_prompt: str, max_recent_messages: int = MAX_RECENT_MESSAGES,
                 max_model_history: int = MAX_MODEL_HISTORY):
        self.platform_prompt = platform_prompt
        self.max_recent = max_recent_messages
        self.max_model_history = max_model_history

    def build_system_context(self, profile: Optional[UserProfile],
                             history: List[Dict[str, str]]) -> str:
        """Platform prompt, then the user's baseline profile, then recent conversation."""
        parts = [self.platform_prompt]

        if profile is not None and not profile.is_empty:
            parts.append(self._format_profile(profile))

        recent = history[-self.max_recent:]
        if recent:
            lines = [f"{m['role']}: {m['content']}" for m in recent]
            parts.append("Recent Conversation:\n" + "\n".join(lines))

        return "\n\n".join(parts)

    def model_history(self, history: List[Dict[str, str]]) -> List[Dict[str, str]]:
        """Last turns for the chat call; leading model turns are dropped so it opens on the user."""
        window = history[-self.max_model_history:]
        while window and window[0]["role"] != "user":
            window = window[1:]
        return [dict(m) for m in window]

    @staticmethod
    def _format_profile(profile: UserProfile) -> str:
        def joined(values: List[str]) -> str:
            return ", ".join(values) if values else "Not specified"

        return (
            "User Baseline Profile:\n"
            f"- Name: {profile.name}\n"
            f"- Primary Intents: {joined(profile.primary_intents)}\n"
            f"- Current Challenges: {joined(profile.current_challenges)}\n"
            f"- Emotional Baseline: {joined(profile.emotional_baseline)}\n"
            f"- Tone Preference: {profile.tone_preference or 'Not specified'}\n"
            f"- Exercise Openness: {profile.exercise_openness or 'Not specified'}\n"
            f"- Recovery Stage: {profile.recovery_stage or 'Not specified'}\n"
            f"- Substances: {joined(profile.substances)}"
        )
