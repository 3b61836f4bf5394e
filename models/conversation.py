from typing import Dict, List, Any, Optional
from dataclasses import dataclass, field, asdict, fields
from datetime import datetime, timezone
from enum import Enum

from models.catalog import Exercise


class ConversationState(Enum):
    INIT = "INIT"
    CONVERSATIONAL_DISCOVERY = "CONVERSATIONAL_DISCOVERY"
    SUPPORTIVE_PROCESSING = "SUPPORTIVE_PROCESSING"
    EXERCISE_SUGGESTION = "EXERCISE_SUGGESTION"
    EXERCISE_FACILITATION = "EXERCISE_FACILITATION"
    POST_EXERCISE_INTEGRATION = "POST_EXERCISE_INTEGRATION"
    CRISIS_MODE = "CRISIS_MODE"

    @classmethod
    def parse(cls, name: str) -> Optional["ConversationState"]:
        """Return the state named by `name` (case-insensitive), or None."""
        try:
            return cls(name.strip().upper())
        except ValueError:
            return None


@dataclass
class GateConditions:
    """The five exercise-suggestion gate booleans.

    1. challenge_articulated: user named a concrete challenge or pattern
    2. ai_reflected_accurately: the AI reflected the user's experience
    3. user_emotionally_regulated: no dysregulation markers in the last message
    4. structure_explained: the AI explained why structure could help
    5. no_recent_decline: the user has not declined exercises in the cool-down window

    Conditions 1-4 start closed; 5 starts open because a fresh conversation
    has no decline on record.
    """
    challenge_articulated: bool = False
    ai_reflected_accurately: bool = False
    user_emotionally_regulated: bool = False
    structure_explained: bool = False
    no_recent_decline: bool = True

    @classmethod
    def names(cls) -> List[str]:
        return [f.name for f in fields(cls)]

    def apply(self, changes: Dict[str, bool]) -> Dict[str, bool]:
        """Set only the named conditions. Returns the conditions that changed."""
        unknown = set(changes) - set(self.names())
        if unknown:
            raise ValueError(f"Unknown gate condition(s): {sorted(unknown)}")

        changed = {}
        for name, value in changes.items():
            if getattr(self, name) != bool(value):
                setattr(self, name, bool(value))
                changed[name] = bool(value)
        return changed

    @property
    def all_met(self) -> bool:
        return all(getattr(self, name) for name in self.names())

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class UserProfile:
    """Onboarding baseline: how the user wants to be supported."""
    name: str = "Friend"
    primary_intents: List[str] = field(default_factory=list)
    current_challenges: List[str] = field(default_factory=list)
    emotional_baseline: List[str] = field(default_factory=list)
    tone_preference: Optional[str] = None
    exercise_openness: Optional[str] = None
    recovery_stage: Optional[str] = None
    substances: List[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (
            self.primary_intents or self.current_challenges or self.emotional_baseline
            or self.tone_preference or self.exercise_openness or self.recovery_stage
            or self.substances
        )


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_iso(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


@dataclass
class Conversation:
    """One conversation thread: state machine position, gate and active exercise."""
    conversation_id: str
    user_id: str
    state: ConversationState = ConversationState.INIT
    gate: GateConditions = field(default_factory=GateConditions)
    last_declined_at: Optional[datetime] = None

    # Active exercise (all cleared together)
    active_exercise_id: Optional[str] = None
    active_framework_id: Optional[str] = None
    current_phase_index: int = 0
    exercise_started_at: Optional[datetime] = None

    exercises_completed: int = 0
    last_suggested_exercise_ids: List[str] = field(default_factory=list)
    history: List[Dict[str, str]] = field(default_factory=list)  # [{"role": "user", "content": "..."}]

    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    @property
    def has_active_exercise(self) -> bool:
        return self.active_exercise_id is not None

    def begin_exercise(self, exercise_id: str, framework_id: str, started_at: datetime):
        self.active_exercise_id = exercise_id
        self.active_framework_id = framework_id
        self.current_phase_index = 0
        self.exercise_started_at = started_at

    def clear_exercise(self):
        self.active_exercise_id = None
        self.active_framework_id = None
        self.current_phase_index = 0
        self.exercise_started_at = None

    def add_user_message(self, msg: str):
        self.history.append({"role": "user", "content": msg})

    def add_model_message(self, msg: str):
        self.history.append({"role": "model", "content": msg})

    def to_dict(self) -> dict:
        return {
            "conversation_id": self.conversation_id,
            "user_id": self.user_id,
            "state": self.state.value,
            "gate": self.gate.to_dict(),
            "last_declined_at": _iso(self.last_declined_at),
            "active_exercise_id": self.active_exercise_id,
            "active_framework_id": self.active_framework_id,
            "current_phase_index": self.current_phase_index,
            "exercise_started_at": _iso(self.exercise_started_at),
            "exercises_completed": self.exercises_completed,
            "last_suggested_exercise_ids": list(self.last_suggested_exercise_ids),
            "history": [dict(m) for m in self.history],
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Conversation":
        return cls(
            conversation_id=data["conversation_id"],
            user_id=data["user_id"],
            state=ConversationState(data.get("state", ConversationState.INIT.value)),
            gate=GateConditions(**data.get("gate", {})),
            last_declined_at=_parse_iso(data.get("last_declined_at")),
            active_exercise_id=data.get("active_exercise_id"),
            active_framework_id=data.get("active_framework_id"),
            current_phase_index=data.get("current_phase_index", 0),
            exercise_started_at=_parse_iso(data.get("exercise_started_at")),
            exercises_completed=data.get("exercises_completed", 0),
            last_suggested_exercise_ids=list(data.get("last_suggested_exercise_ids", [])),
            history=list(data.get("history", [])),
            created_at=_parse_iso(data.get("created_at")) or _utcnow(),
            updated_at=_parse_iso(data.get("updated_at")) or _utcnow(),
        )


@dataclass
class AIResponse:
    """Result of one conversational turn."""
    content: str
    new_state: ConversationState
    suggested_exercises: Optional[List[Exercise]] = None
    crisis_detected: bool = False
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "content": self.content,
            "new_state": self.new_state.value,
            "suggested_exercises": (
                [e.to_dict() for e in self.suggested_exercises]
                if self.suggested_exercises else None
            ),
            "crisis_detected": self.crisis_detected,
            "metadata": dict(self.metadata),
        }
