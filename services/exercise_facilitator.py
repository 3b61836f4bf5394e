"""Exercise Facilitator

Drives a user through a framework's ordered phases once an exercise is accepted:

- start / get_active / advance_phase / complete / cancel manage the
  active-exercise fields on the conversation
- build_prompt renders the instruction block injected into the model prompt
  for the current phase
- detect_exit / detect_reflection / detect_acceptance are pure helpers the
  controller uses to route a turn
"""
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional
from config.settings import REFLECTION_MIN_CHARS, REFLECTION_MIN_WORDS
from core.errors import NotFoundError, NoActiveExerciseError
from models.catalog import Exercise, ExerciseCompletion, Framework, Phase
from models.conversation import ConversationState

logger = logging.getLogger(__name__)

PHASE_ADVANCE_MARKER = "[PHASE: NEXT]"

FACILITATION_RULES = [
    "**ASK ONE QUESTION AT A TIME**",
    "**WAIT for user response before continuing**",
    "**FOLLOW framework phases in order**",
    "**DO NOT skip phases**",
    "**DO NOT mix frameworks**",
    "**STAY IN CHARACTER** as defined by the phase's AI role",
    "When phase objectives are met, **naturally transition** to next phase",
    "After final phase, **ask for a brief reflection** to complete exercise",
    "User can say \"exit exercise\" to stop at any time",
]

SEPARATOR = "━" * 50


@dataclass
class ExerciseContext:
    """Everything needed to facilitate the current phase of an active exercise."""
    exercise: Exercise
    framework: Framework
    current_phase: int
    total_phases: int

    @property
    def phase(self) -> Phase:
        return self.framework.phases[self.current_phase]

    @property
    def is_final_phase(self) -> bool:
        return self.current_phase == self.total_phases - 1


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ExerciseFacilitator:
    """Manages the lifecycle of the one active exercise on a conversation."""

    def __init__(self, store, catalog, clock: Callable[[], datetime] = _utcnow,
                 reflection_min_chars: int = REFLECTION_MIN_CHARS,
                 reflection_min_words: int = REFLECTION_MIN_WORDS):
        self.store = store
        self.catalog = catalog
        self.clock = clock
        self.reflection_min_chars = reflection_min_chars
        self.reflection_min_words = reflection_min_words

    def start(self, conversation_id: str, exercise_id: str) -> ExerciseContext:
        """Begin an exercise at phase 0 and move the conversation into facilitation."""
        conversation = self.store.get(conversation_id)

        exercise = self.catalog.get_exercise(exercise_id)
        if exercise is None:
            raise NotFoundError("Exercise", exercise_id)

        framework = self.catalog.get_framework(exercise.framework)
        if framework is None:
            raise NotFoundError("Framework", exercise.framework)

        conversation.begin_exercise(exercise.id, framework.id, self.clock())
        conversation.state = ConversationState.EXERCISE_FACILITATION
        self.store.save(conversation)

        logger.info(f"🎯 Started exercise: {exercise.title} ({framework.id})")
        return ExerciseContext(
            exercise=exercise,
            framework=framework,
            current_phase=0,
            total_phases=framework.total_phases,
        )

    def get_active(self, conversation_id: str) -> Optional[ExerciseContext]:
        """
        Context for the active exercise, or None.

        A reference to an exercise or framework that no longer exists is
        cleared (as `cancel` would) instead of raising.
        """
        conversation = self.store.get(conversation_id)
        if not conversation.active_exercise_id or not conversation.active_framework_id:
            return None

        exercise = self.catalog.get_exercise(conversation.active_exercise_id)
        framework = self.catalog.get_framework(conversation.active_framework_id)
        if exercise is None or framework is None:
            logger.warning(
                f"Active exercise {conversation.active_exercise_id} or framework "
                f"{conversation.active_framework_id} not found, clearing active exercise"
            )
            self.cancel(conversation_id)
            return None

        return ExerciseContext(
            exercise=exercise,
            framework=framework,
            current_phase=conversation.current_phase_index,
            total_phases=framework.total_phases,
        )

    def advance_phase(self, conversation_id: str) -> int:
        """Move to the next phase. Callers call `complete` instead of advancing past the last."""
        conversation = self.store.get(conversation_id)
        if not conversation.has_active_exercise:
            raise NoActiveExerciseError(conversation_id, "advance")

        conversation.current_phase_index += 1
        self.store.save(conversation)

        logger.info(f"📋 Advanced to phase {conversation.current_phase_index + 1}")
        return conversation.current_phase_index

    def complete(self, conversation_id: str, reflection: str) -> ExerciseCompletion:
        """Record the reflection, count the completion and close the exercise."""
        conversation = self.store.get(conversation_id)
        if not conversation.has_active_exercise:
            raise NoActiveExerciseError(conversation_id, "complete")

        completion = self.store.create_completion(
            conversation_id, conversation.active_exercise_id, reflection
        )

        conversation.exercises_completed += 1
        conversation.clear_exercise()
        conversation.state = ConversationState.POST_EXERCISE_INTEGRATION
        self.store.save(conversation)

        logger.info(f"✅ Exercise completed! Total: {conversation.exercises_completed}")
        return completion

    def cancel(self, conversation_id: str):
        """Clear the active exercise and return to supportive processing. Idempotent."""
        conversation = self.store.get(conversation_id)
        conversation.clear_exercise()
        conversation.state = ConversationState.SUPPORTIVE_PROCESSING
        self.store.save(conversation)
        logger.info(f"🚫 Exercise cancelled for conversation {conversation_id}")

    def build_prompt(self, context: ExerciseContext) -> str:
        return build_exercise_prompt(context)

    def detect_reflection(self, text: str) -> bool:
        return detect_reflection(text, self.reflection_min_chars, self.reflection_min_words)


def build_exercise_prompt(context: ExerciseContext) -> str:
    """Framework-aware instruction block for the current phase."""
    exercise = context.exercise
    framework = context.framework
    current = context.current_phase
    phase = context.phase

    progress_lines = []
    for i, p in enumerate(framework.phases):
        if i == current:
            progress_lines.append(f"→ **{i + 1}. {p.phase_name}** (CURRENT)")
        elif i < current:
            progress_lines.append(f"✓ {i + 1}. {p.phase_name}")
        else:
            progress_lines.append(f"  {i + 1}. {p.phase_name}")

    rules = "\n".join(f"{i}. {rule}" for i, rule in enumerate(FACILITATION_RULES, start=1))

    if context.is_final_phase:
        phase_signal = "This is the final phase. Do not add a phase marker; ask for the closing reflection."
    else:
        phase_signal = (
            f"When this phase's objectives are met, end your reply with {PHASE_ADVANCE_MARKER} "
            "on its own line. Never add it otherwise."
        )

    return f"""
{SEPARATOR}
# 🎯 ACTIVE EXERCISE: {exercise.title}

## Exercise Focus
**Topic:** {exercise.topic}
**Aspect:** {exercise.aspect}

{exercise.ai_prompt}

{SEPARATOR}

## Framework: {framework.name}
{framework.description}

**Core Mechanism:** {framework.core_mechanism}

{SEPARATOR}

## Current Phase: {current + 1} of {context.total_phases}

### Phase {current + 1}: {phase.phase_name}

**Your Role as AI:**
{phase.ai_role}

**Guide the User To:**
{phase.user_action}

**Processing Approach:**
{phase.processing_instruction}

{SEPARATOR}

## 📋 FACILITATION RULES (CRITICAL)

{rules}

## Phase Signal
{phase_signal}

{SEPARATOR}

## Phase Progress
{chr(10).join(progress_lines)}

{SEPARATOR}
"""


# ============================================================================
# DETECTION HELPERS (pure)
# ============================================================================

EXIT_PHRASES = [
    "exit exercise",
    "stop exercise",
    "cancel exercise",
    "quit exercise",
    "end exercise",
    "stop the exercise",
    "exit the exercise",
    "i want to stop",
    "let's stop",
    "can we stop",
]

ACCEPT_PATTERNS = [
    re.compile(r"^(yes|yeah|sure|okay|ok|yep|yup)[.!]*$", re.IGNORECASE),
    re.compile(r"let'?s do (it|that|this|one)", re.IGNORECASE),
    re.compile(r"i'?ll try (it|that|this|one)", re.IGNORECASE),
    re.compile(r"sounds? good", re.IGNORECASE),
    re.compile(r"\b(first|second|third|1|2|3) (one|exercise)\b", re.IGNORECASE),
    re.compile(r"\bexercise (1|2|3|one|two|three)\b", re.IGNORECASE),
    re.compile(r"i'?d like to try", re.IGNORECASE),
    re.compile(r"\bstart\b", re.IGNORECASE),
]


def detect_exit(text: str) -> bool:
    """Explicit request to leave the running exercise."""
    lowered = (text or "").lower().strip()
    return any(phrase in lowered for phrase in EXIT_PHRASES)


def detect_reflection(text: str, min_chars: int = REFLECTION_MIN_CHARS,
                      min_words: int = REFLECTION_MIN_WORDS) -> bool:
    """Substantive enough to count as a closing reflection (length heuristic only)."""
    stripped = (text or "").strip()
    return len(stripped) >= min_chars and len(stripped.split()) >= min_words


def detect_acceptance(text: str) -> bool:
    """The user agreed to try a suggested exercise."""
    lowered = (text or "").lower().strip()
    return any(p.search(lowered) for p in ACCEPT_PATTERNS)
