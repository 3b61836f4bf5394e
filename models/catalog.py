from typing import Dict, List, Any
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone


@dataclass(frozen=True)
class Phase:
    """One ordered step of a framework."""
    phase_name: str
    ai_role: str
    user_action: str
    processing_instruction: str

    @classmethod
    def from_dict(cls, data: dict) -> "Phase":
        return cls(
            phase_name=data["phase_name"],
            ai_role=data.get("ai_role", ""),
            user_action=data.get("user_action", ""),
            processing_instruction=data.get("processing_instruction", ""),
        )


@dataclass(frozen=True)
class Framework:
    """A named therapeutic methodology owning an ordered sequence of phases."""
    id: str
    name: str
    description: str
    core_mechanism: str
    phases: List[Phase] = field(default_factory=list)
    therapeutic_basis: str = ""
    best_suited_for: List[str] = field(default_factory=list)

    @property
    def total_phases(self) -> int:
        return len(self.phases)

    @classmethod
    def from_dict(cls, data: dict) -> "Framework":
        return cls(
            id=data["id"],
            name=data["name"],
            description=data.get("description", ""),
            core_mechanism=data.get("core_mechanism", ""),
            phases=[Phase.from_dict(p) for p in data.get("phases", [])],
            therapeutic_basis=data.get("therapeutic_basis", ""),
            best_suited_for=list(data.get("best_suited_for", [])),
        )


@dataclass(frozen=True)
class Exercise:
    """A single structured activity belonging to one framework."""
    id: str
    title: str
    ai_prompt: str
    framework: str  # Framework id
    aspect: str = ""
    topic: str = "General"

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "Exercise":
        return cls(
            id=data["id"],
            title=data["title"],
            ai_prompt=data.get("ai_prompt", ""),
            framework=data["framework"],
            aspect=data.get("aspect", ""),
            topic=data.get("topic") or "General",
        )


@dataclass
class ExerciseCompletion:
    """Record written when a user finishes an exercise with a reflection."""
    completion_id: str
    conversation_id: str
    user_id: str
    exercise_id: str
    reflection: str
    completed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["completed_at"] = self.completed_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "ExerciseCompletion":
        data = dict(data)
        data["completed_at"] = datetime.fromisoformat(data["completed_at"])
        return cls(**data)
