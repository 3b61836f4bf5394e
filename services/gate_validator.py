"""Exercise Suggestion Gate

Exercises may only be searched for or suggested once five conditions hold:

    1. The user has articulated a concrete challenge or pattern
    2. The AI has accurately reflected their experience
    3. The user appears emotionally regulated
    4. The AI can clearly explain why structure would help
    5. The user has not recently declined exercises

The gate defaults closed. Conditions only change through the named
operations below (`update_conditions`, `record_decline`,
`maybe_reset_decline`), fed by the pure detection helpers at the bottom of
this module. A declined suggestion closes condition 5 for a cool-down
window; the first turn after the window re-opens it.
"""
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional
from config.settings import DECLINE_COOLDOWN_HOURS
from models.conversation import GateConditions

logger = logging.getLogger(__name__)

# Human-readable failure reasons, in fixed condition order 1 -> 5
FAILURE_REASONS = [
    ("challenge_articulated", "No concrete challenge articulated"),
    ("ai_reflected_accurately", "AI has not reflected user experience accurately"),
    ("user_emotionally_regulated", "User may not be emotionally regulated"),
    ("structure_explained", "AI has not explained why structure would help"),
    ("no_recent_decline", "User recently declined exercises"),
]


@dataclass
class GateStatus:
    """Derived view of the gate; computed on demand, never stored."""
    challenge_articulated: bool
    ai_reflected_accurately: bool
    user_emotionally_regulated: bool
    structure_explained: bool
    no_recent_decline: bool
    all_conditions_met: bool = False
    failed_conditions: List[str] = field(default_factory=list)

    @classmethod
    def from_conditions(cls, conditions: GateConditions) -> "GateStatus":
        failed = [reason for name, reason in FAILURE_REASONS if not getattr(conditions, name)]
        return cls(
            challenge_articulated=conditions.challenge_articulated,
            ai_reflected_accurately=conditions.ai_reflected_accurately,
            user_emotionally_regulated=conditions.user_emotionally_regulated,
            structure_explained=conditions.structure_explained,
            no_recent_decline=conditions.no_recent_decline,
            all_conditions_met=not failed,
            failed_conditions=failed,
        )

    def to_dict(self) -> dict:
        return {
            "challenge_articulated": self.challenge_articulated,
            "ai_reflected_accurately": self.ai_reflected_accurately,
            "user_emotionally_regulated": self.user_emotionally_regulated,
            "structure_explained": self.structure_explained,
            "no_recent_decline": self.no_recent_decline,
            "all_conditions_met": self.all_conditions_met,
            "failed_conditions": list(self.failed_conditions),
        }


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class GateValidator:
    """Reads and writes the gate conditions stored on a conversation."""

    def __init__(self, store, clock: Callable[[], datetime] = _utcnow,
                 cooldown_hours: float = DECLINE_COOLDOWN_HOURS):
        self.store = store
        self.clock = clock
        self.cooldown = timedelta(hours=cooldown_hours)

    def validate(self, conversation_id: str) -> GateStatus:
        """Current gate status. Raises NotFoundError for an unknown conversation."""
        conversation = self.store.get(conversation_id)
        return GateStatus.from_conditions(conversation.gate)

    def update_conditions(self, conversation_id: str, **changes: Optional[bool]) -> Dict[str, bool]:
        """
        Partial update: only the conditions passed (and not None) are written.

        Returns the conditions whose value actually changed.
        """
        changes = {name: value for name, value in changes.items() if value is not None}
        if not changes:
            return {}

        conversation = self.store.get(conversation_id)
        changed = conversation.gate.apply(changes)
        if changed:
            self.store.save(conversation)
            logger.debug(f"Gate updated for {conversation_id}: {changed}")
        return changed

    def record_decline(self, conversation_id: str):
        """Close condition 5 and stamp the decline time."""
        conversation = self.store.get(conversation_id)
        conversation.gate.apply({"no_recent_decline": False})
        conversation.last_declined_at = self.clock()
        self.store.save(conversation)
        logger.info(f"📝 Recorded exercise decline for conversation {conversation_id}")

    def maybe_reset_decline(self, conversation_id: str) -> bool:
        """
        Re-open condition 5 once the cool-down has fully elapsed.

        Returns True only when a reset happened. An unknown conversation is
        simply not reset.
        """
        if not self.store.exists(conversation_id):
            return False

        conversation = self.store.get(conversation_id)
        if conversation.gate.no_recent_decline or conversation.last_declined_at is None:
            return False

        elapsed = self.clock() - conversation.last_declined_at
        if elapsed < self.cooldown:
            return False

        conversation.gate.apply({"no_recent_decline": True})
        self.store.save(conversation)
        hours = elapsed.total_seconds() / 3600
        logger.info(f"✅ Reset decline flag for conversation {conversation_id} ({hours:.1f}h since decline)")
        return True


def gate_summary(status: GateStatus) -> str:
    """One-line human-readable gate status for logs."""
    if status.all_conditions_met:
        return "✅ All gate conditions met - AI can suggest exercises"
    return f"❌ Gate blocked - Missing: {', '.join(status.failed_conditions)}"


# ============================================================================
# DETECTION HELPERS (pure)
# ============================================================================

CHALLENGE_PATTERN = re.compile(
    r"struggling with|having trouble|difficult for me|hard to|can'?t seem to|"
    r"problem with|issue with|dealing with|challenge|frustrated|overwhelmed|"
    r"stuck|failing|relapsed|craving|triggered|anxious about|worried about|"
    r"scared of|ashamed|guilty",
    re.IGNORECASE,
)

REFLECTIVE_PATTERN = re.compile(
    r"i hear|it sounds like|it seems like|what i'?m hearing|you'?re saying|"
    r"you'?re feeling|you mentioned|it seems that|from what you'?ve shared|"
    r"you'?re experiencing|that must feel|i understand that",
    re.IGNORECASE,
)

STRUCTURE_PATTERN = re.compile(
    r"structure could help|structure might help|structure may help|"
    r"a structured (exercise|approach|way)|guided (process|exercise)|"
    r"(an|this) exercise (could|might|may) help|step[- ]by[- ]step|"
    r"work through it together",
    re.IGNORECASE,
)

DYSREGULATION_PATTERNS = [
    re.compile(r"\b(can'?t think|mind racing|losing it|falling apart)\b", re.IGNORECASE),
    re.compile(r"\b(panic|terror|rage|fury)\b", re.IGNORECASE),
    re.compile(r"!{3,}|\?{3,}"),  # Excessive punctuation
    re.compile(r"[A-Z]{5,}"),  # Shouting (case-sensitive)
]

DECLINE_PHRASES = [
    "no thanks",
    "not right now",
    "maybe later",
    "i don't want to",
    "not interested",
    "skip",
    "pass",
    "i'd rather just talk",
    "can we just chat",
    "not ready",
    "i don't think so",
    "no thank you",
    "nah",
    "no",
]

DECLINE_PATTERNS = [
    re.compile(rf"(^|\s){re.escape(phrase)}($|\s|[.,!?])", re.IGNORECASE)
    for phrase in DECLINE_PHRASES
]


def detect_concrete_challenge(text: str) -> bool:
    """Condition 1: the user names a struggle, problem or pattern."""
    return bool(CHALLENGE_PATTERN.search(text or ""))


def detect_reflective_language(ai_text: str) -> bool:
    """Condition 2: the AI reflected the user's experience back."""
    return bool(REFLECTIVE_PATTERN.search(ai_text or ""))


def is_emotionally_regulated(text: str) -> bool:
    """Condition 3: no dysregulation markers in the message."""
    return not any(p.search(text or "") for p in DYSREGULATION_PATTERNS)


def detect_structure_explanation(ai_text: str) -> bool:
    """Condition 4: the AI explained why a structured exercise could help."""
    return bool(STRUCTURE_PATTERN.search(ai_text or ""))


def detect_decline_in_message(text: str) -> bool:
    """True when the message contains a decline phrase at word boundaries."""
    lowered = (text or "").lower().strip()
    return any(p.search(lowered) for p in DECLINE_PATTERNS)
