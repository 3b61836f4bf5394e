"""Exercise Search Tool

The one tool the language model may call. Every execution re-validates the
exercise gate before touching the catalog, independently of whatever the
controller decided, so a manipulated prompt cannot pull exercises out while
the gate is closed.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from config.settings import EXERCISE_SEARCH_DEFAULT_LIMIT, EXERCISE_SEARCH_MAX_LIMIT
from core.errors import NotFoundError
from models.catalog import Exercise

logger = logging.getLogger(__name__)

SEARCH_EXERCISES_PARAMETERS = {
    "type": "object",
    "properties": {
        "keywords": {
            "type": "array",
            "items": {"type": "string"},
            "description": "Words describing the user's challenge, e.g. ['craving', 'evening']",
        },
        "topic": {
            "type": "string",
            "description": "Optional topic filter, e.g. 'Addiction Recovery'",
        },
        "framework": {
            "type": "string",
            "description": "Optional framework id filter",
        },
        "limit": {
            "type": "integer",
            "description": f"Maximum exercises to return ({EXERCISE_SEARCH_MAX_LIMIT} at most)",
        },
    },
    "required": ["keywords"],
}


@dataclass
class ToolInvocation:
    """One execution of the tool, kept for the controller and for audit logs."""
    arguments: Dict[str, Any]
    gate_open: bool
    result: Dict[str, Any] = field(default_factory=dict)


class ExerciseSearchTool:
    """`search_exercises(keywords, topic?, framework?, limit)` bound to one conversation."""

    name = "search_exercises"
    description = (
        "Search the exercise catalog for structured therapeutic exercises matching the "
        "user's challenge. Only call this when every exercise suggestion gate condition "
        "is met. Returns at most a few exercises; present no more than three."
    )
    parameters = SEARCH_EXERCISES_PARAMETERS

    def __init__(self, gate_validator, catalog, conversation_id: str):
        self.gate_validator = gate_validator
        self.catalog = catalog
        self.conversation_id = conversation_id
        self.invocations: List[ToolInvocation] = []
        self.found: List[Exercise] = []

    @property
    def invoked(self) -> bool:
        return bool(self.invocations)

    def execute(self, keywords: Optional[List[str]] = None, topic: Optional[str] = None,
                framework: Optional[str] = None,
                limit: int = EXERCISE_SEARCH_DEFAULT_LIMIT) -> Dict[str, Any]:
        arguments = {"keywords": list(keywords or []), "topic": topic,
                     "framework": framework, "limit": limit}

        try:
            status = self.gate_validator.validate(self.conversation_id)
        except NotFoundError as e:
            logger.warning(f"Exercise search refused: {e}")
            return self._record(arguments, False, {
                "error": "Exercise suggestions are not available for this conversation.",
                "exercises": [],
            })

        if not status.all_conditions_met:
            logger.info(
                f"Exercise search refused for {self.conversation_id}: "
                f"{', '.join(status.failed_conditions)}"
            )
            return self._record(arguments, False, {
                "error": "Exercise suggestion gate is closed. Continue conversational support.",
                "failed_conditions": list(status.failed_conditions),
                "exercises": [],
            })

        exercises = self.catalog.search(
            keywords=arguments["keywords"],
            topic=topic,
            framework=framework,
            limit=clamp_limit(limit),
        )
        self.found.extend(e for e in exercises if e not in self.found)
        logger.info(f"Exercise search for {self.conversation_id} returned {len(exercises)} result(s)")

        return self._record(arguments, True, {
            "exercises": [
                {
                    "id": e.id,
                    "title": e.title,
                    "framework": e.framework,
                    "topic": e.topic,
                    "aspect": e.aspect,
                }
                for e in exercises
            ]
        })

    def _record(self, arguments: Dict[str, Any], gate_open: bool,
                result: Dict[str, Any]) -> Dict[str, Any]:
        self.invocations.append(ToolInvocation(arguments=arguments, gate_open=gate_open, result=result))
        return result


def clamp_limit(limit: Any) -> int:
    """Coerce a model-supplied limit into 1..EXERCISE_SEARCH_MAX_LIMIT."""
    try:
        value = int(limit)
    except (TypeError, ValueError):
        return EXERCISE_SEARCH_DEFAULT_LIMIT
    return max(1, min(value, EXERCISE_SEARCH_MAX_LIMIT))
