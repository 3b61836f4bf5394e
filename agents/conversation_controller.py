"""ConversationController - Per-Turn Orchestration Around the Language Model

The controller owns the conversation state machine and sequences the
deterministic components around every model call:

    decline reset -> crisis override -> exercise exit -> decline detection
    -> exercise acceptance -> active exercise -> gate updates (user side)
    -> state prompt + model call (exercise search tool) -> gate updates (AI side)
    -> transition validation -> response

Safety properties:
    1. Crisis replies are fixed policy text; the model is never called for them.
    2. The search tool is only offered when the gate is open, and the tool
       re-validates the gate itself on every execution.
    3. EXERCISE_SUGGESTION is only entered on the back of a successful gated search.
    4. A transition outside the table is logged and dropped; the state stays put.
    5. A failed or timed-out model call yields a neutral fallback and leaves state unchanged.

Turns for one conversation are serialized on a per-conversation lock; turns
for different conversations share no mutable state.
"""
import logging
import re
from typing import Any, Dict, List, Optional, Tuple
from agents.prompts import (
    COMPLETION_MESSAGE,
    EXIT_TRANSITION_MESSAGE,
    FALLBACK_MESSAGE,
    RESPONSE_FORMAT,
    SAFETY_CHECK_INSTRUCTIONS,
    SYSTEM_PROMPT,
    state_instruction,
)
from config.settings import MODEL_TIMEOUT_SECONDS
from core.errors import ModelCallError, NotFoundError
from core.observability import Tracer, metrics
from models.catalog import Exercise
from models.conversation import AIResponse, ConversationState, UserProfile
from services.context_engine import ContextEngine
from services.conversation_store import get_conversation_locks
from services.exercise_facilitator import (
    ExerciseContext,
    ExerciseFacilitator,
    detect_acceptance,
    detect_exit,
)
from services.gate_validator import (
    GateValidator,
    detect_concrete_challenge,
    detect_decline_in_message,
    detect_reflective_language,
    detect_structure_explanation,
    gate_summary,
    is_emotionally_regulated,
)
from services.language_model import LanguageModel, generate_with_timeout
from tools.crisis_detection import CrisisResult, detect, response_for
from tools.exercise_search import ExerciseSearchTool

logger = logging.getLogger(__name__)

S = ConversationState

VALID_TRANSITIONS = {
    S.INIT: {S.CONVERSATIONAL_DISCOVERY, S.CRISIS_MODE},
    S.CONVERSATIONAL_DISCOVERY: {S.SUPPORTIVE_PROCESSING, S.EXERCISE_SUGGESTION, S.CRISIS_MODE},
    S.SUPPORTIVE_PROCESSING: {S.CONVERSATIONAL_DISCOVERY, S.EXERCISE_SUGGESTION, S.CRISIS_MODE},
    S.EXERCISE_SUGGESTION: {S.EXERCISE_FACILITATION, S.SUPPORTIVE_PROCESSING, S.CRISIS_MODE},
    S.EXERCISE_FACILITATION: {S.POST_EXERCISE_INTEGRATION, S.CRISIS_MODE},
    S.POST_EXERCISE_INTEGRATION: {S.CONVERSATIONAL_DISCOVERY, S.SUPPORTIVE_PROCESSING, S.CRISIS_MODE},
    S.CRISIS_MODE: {S.CONVERSATIONAL_DISCOVERY, S.SUPPORTIVE_PROCESSING, S.CRISIS_MODE},
}

STATE_MARKER = re.compile(r"\[STATE:\s*([A-Za-z_]+)\s*\]", re.IGNORECASE)
PHASE_MARKER = re.compile(r"\[PHASE:\s*NEXT\s*\]", re.IGNORECASE)

ORDINALS = {
    "first": 0, "1": 0, "one": 0,
    "second": 1, "2": 1, "two": 1,
    "third": 2, "3": 2, "three": 2,
}
ORDINAL_PATTERN = re.compile(r"\b(first|second|third|one|two|three|1|2|3)\b", re.IGNORECASE)


def allowed_transitions(state: ConversationState) -> set:
    return VALID_TRANSITIONS.get(state, {S.CONVERSATIONAL_DISCOVERY, S.CRISIS_MODE})


def validate_transition(current: ConversationState,
                        proposed: ConversationState) -> ConversationState:
    """Return `proposed` if the table allows it, otherwise stay in `current`."""
    if proposed == current or proposed in allowed_transitions(current):
        return proposed

    logger.warning(f"Invalid state transition from {current.value} to {proposed.value}; staying")
    metrics.record_invalid_transition()
    return current


def parse_model_text(text: str) -> Tuple[str, Optional[ConversationState], bool]:
    """
    Strip control markers from model output.

    Returns (visible_text, proposed_state, phase_complete). The proposed
    state is None when no marker names a real state.
    """
    proposed = None
    match = STATE_MARKER.search(text or "")
    if match:
        proposed = ConversationState.parse(match.group(1))

    phase_complete = bool(PHASE_MARKER.search(text or ""))
    visible = PHASE_MARKER.sub("", STATE_MARKER.sub("", text or "")).strip()
    return visible, proposed, phase_complete


class ConversationController:
    """
    ORCHESTRATOR: decides, per turn, whether to talk supportively, escalate
    to crisis handling, or hand off to a structured exercise.

    Attributes:
        conversation_id: Conversation this controller drives.
        store: Conversation persistence collaborator.
        catalog: Read-only exercise/framework catalog.
        language_model: `generate(system_prompt, history, tools)` capability,
            or None to run in fallback mode.
        user_profile: Baseline profile included in the system context.
        gate: GateValidator over the same store.
        facilitator: ExerciseFacilitator over the same store and catalog.
    """

    def __init__(self, conversation_id: str, store, catalog,
                 language_model: Optional[LanguageModel] = None,
                 user_profile: Optional[UserProfile] = None,
                 gate: Optional[GateValidator] = None,
                 facilitator: Optional[ExerciseFacilitator] = None,
                 context_engine: Optional[ContextEngine] = None,
                 locks=None,
                 model_timeout: float = MODEL_TIMEOUT_SECONDS):
        self.conversation_id = conversation_id
        self.store = store
        self.catalog = catalog
        self.language_model = language_model
        self.user_profile = user_profile
        self.gate = gate or GateValidator(store)
        self.facilitator = facilitator or ExerciseFacilitator(store, catalog)
        self.context_engine = context_engine or ContextEngine(SYSTEM_PROMPT)
        self.locks = locks or get_conversation_locks()
        self.model_timeout = model_timeout

    def generate_response(self, user_message: str, exercise_id: Optional[str] = None) -> AIResponse:
        """Process one user turn.

        Args:
            user_message: The user's text.
            exercise_id: Exercise the user picked explicitly (e.g. from a card),
                honored while suggestions are on the table.

        Returns:
            AIResponse with content, new state, suggested exercises and metadata.

        Raises:
            NotFoundError: the conversation does not exist.
        """
        with self.locks.lock_for(self.conversation_id):
            return self._run_turn(user_message, exercise_id)

    # === Turn Sequencing ===

    def _run_turn(self, user_message: str, exercise_id: Optional[str]) -> AIResponse:
        cid = self.conversation_id

        conversation = self.store.get(cid)
        conversation.add_user_message(user_message)
        self.store.save(conversation)

        self.gate.maybe_reset_decline(cid)

        with Tracer("CrisisDetector", user_message):
            crisis = detect(user_message)
        if crisis.is_crisis:
            return self._crisis_turn(user_message, crisis)

        active = self.facilitator.get_active(cid)
        if active and detect_exit(user_message):
            self.facilitator.cancel(cid)
            return self._finish(EXIT_TRANSITION_MESSAGE, S.SUPPORTIVE_PROCESSING,
                                reason="exercise_exited")

        declined = detect_decline_in_message(user_message)
        if declined:
            self.gate.record_decline(cid)
            self._withdraw_suggestions()

        conversation = self.store.get(cid)
        if (not declined and conversation.state == S.EXERCISE_SUGGESTION
                and (exercise_id or detect_acceptance(user_message))):
            context = self._start_accepted_exercise(
                user_message, exercise_id, conversation.last_suggested_exercise_ids
            )
            if context is not None:
                return self._exercise_turn(context, reason="exercise_started")

        active = self.facilitator.get_active(cid)
        if active is not None:
            if active.is_final_phase and self.facilitator.detect_reflection(user_message):
                with Tracer("ExerciseFacilitator", "complete"):
                    self.facilitator.complete(cid, user_message)
                return self._finish(COMPLETION_MESSAGE, S.POST_EXERCISE_INTEGRATION,
                                    reason="exercise_completed")
            return self._exercise_turn(active, reason="exercise_continued")

        self._update_user_conditions(user_message)
        return self._conversational_turn(crisis)

    def _crisis_turn(self, user_message: str, crisis: CrisisResult) -> AIResponse:
        """Fixed crisis reply; no model call, any running exercise is stopped."""
        cid = self.conversation_id
        logger.warning(f"🚨 Crisis detected in {cid}: severity={crisis.severity.value}, triggers={crisis.triggers}")

        self._update_user_conditions(user_message)
        if self.store.get(cid).has_active_exercise:
            self.facilitator.cancel(cid)

        return self._finish(
            response_for(crisis.severity),
            S.CRISIS_MODE,
            crisis=crisis,
            reason="crisis_override",
        )

    def _withdraw_suggestions(self):
        """A declined suggestion is taken off the table and the turn continues in support."""
        conversation = self.store.get(self.conversation_id)
        if conversation.state != S.EXERCISE_SUGGESTION:
            return
        conversation.state = validate_transition(conversation.state, S.SUPPORTIVE_PROCESSING)
        conversation.last_suggested_exercise_ids = []
        self.store.save(conversation)
        logger.info(f"{self.conversation_id}: suggestions withdrawn after decline")

    def _start_accepted_exercise(self, user_message: str, explicit_id: Optional[str],
                                 suggested_ids: List[str]) -> Optional[ExerciseContext]:
        """Resolve and start the accepted exercise. Any failure falls back to normal generation."""
        exercise_id = self._resolve_accepted_exercise(user_message, explicit_id, suggested_ids)
        if exercise_id is None:
            logger.info(f"Acceptance in {self.conversation_id} did not identify an exercise")
            return None

        try:
            with Tracer("ExerciseFacilitator", "start"):
                return self.facilitator.start(self.conversation_id, exercise_id)
        except NotFoundError as e:
            logger.warning(f"Could not start accepted exercise: {e}")
            return None

    def _resolve_accepted_exercise(self, user_message: str, explicit_id: Optional[str],
                                   suggested_ids: List[str]) -> Optional[str]:
        if explicit_id:
            return explicit_id
        if not suggested_ids:
            return None

        lowered = user_message.lower()
        match = ORDINAL_PATTERN.search(lowered)
        if match:
            index = ORDINALS[match.group(1).lower()]
            if index < len(suggested_ids):
                return suggested_ids[index]

        for suggested_id in suggested_ids:
            exercise = self.catalog.get_exercise(suggested_id)
            if exercise and exercise.title.lower() in lowered:
                return suggested_id

        if len(suggested_ids) == 1:
            return suggested_ids[0]
        return None

    def _exercise_turn(self, context: ExerciseContext, reason: str) -> AIResponse:
        """Continue the active exercise through the model; state stays EXERCISE_FACILITATION."""
        conversation = self.store.get(self.conversation_id)
        system_prompt = (
            self.context_engine.build_system_context(self.user_profile, conversation.history)
            + f"\n\n[Current State Instructions]: {state_instruction(S.EXERCISE_FACILITATION)}"
            + "\n\n" + self.facilitator.build_prompt(context)
        )

        try:
            result = self._call_model(system_prompt, conversation.history, tools=[])
        except ModelCallError:
            return self._finish(FALLBACK_MESSAGE, conversation.state, reason="model_failure")

        content, _, phase_complete = parse_model_text(result.text)
        if phase_complete and not context.is_final_phase:
            self.facilitator.advance_phase(self.conversation_id)

        return self._finish(content or FALLBACK_MESSAGE, S.EXERCISE_FACILITATION, reason=reason)

    def _conversational_turn(self, crisis: CrisisResult) -> AIResponse:
        """State-guided model call with the gated exercise-search tool."""
        cid = self.conversation_id
        conversation = self.store.get(cid)
        current = conversation.state

        status = self.gate.validate(cid)
        logger.debug(gate_summary(status))

        instruction = state_instruction(current)
        safety_line = SAFETY_CHECK_INSTRUCTIONS.get(crisis.severity)
        if safety_line:
            instruction = f"{instruction}\n{safety_line}"

        system_prompt = (
            self.context_engine.build_system_context(self.user_profile, conversation.history)
            + f"\n\n[Current State Instructions]: {instruction}"
            + "\n\n" + RESPONSE_FORMAT.format(current_state=current.value)
        )

        search_tool = ExerciseSearchTool(self.gate, self.catalog, cid)
        tools = [search_tool] if status.all_conditions_met else []

        try:
            result = self._call_model(system_prompt, conversation.history, tools=tools)
        except ModelCallError:
            return self._finish(FALLBACK_MESSAGE, current, crisis=crisis,
                                gate_passed=status.all_conditions_met, reason="model_failure")

        content, proposed, _ = parse_model_text(result.text)
        content = content or FALLBACK_MESSAGE

        self.gate.update_conditions(
            cid,
            ai_reflected_accurately=True if detect_reflective_language(content) else None,
            structure_explained=True if detect_structure_explanation(content) else None,
        )

        suggested: List[Exercise] = list(search_tool.found)
        if suggested:
            proposed, reason = S.EXERCISE_SUGGESTION, "exercise_search"
        elif proposed == S.EXERCISE_SUGGESTION:
            logger.warning(f"Model proposed EXERCISE_SUGGESTION without a gated search in {cid}")
            proposed, reason = current, "suggestion_without_search"
        elif proposed is None:
            proposed = S.CONVERSATIONAL_DISCOVERY if current == S.INIT else current
            reason = "default"
        else:
            reason = "model_proposed"

        new_state = validate_transition(current, proposed)
        if new_state != proposed:
            reason = "invalid_transition_reverted"
        if new_state != S.EXERCISE_SUGGESTION:
            suggested = []

        return self._finish(content, new_state, suggested=suggested, crisis=crisis,
                            gate_passed=status.all_conditions_met, reason=reason)

    # === Helpers ===

    def _update_user_conditions(self, user_message: str):
        """Gate conditions 1 and 3 from the user's message."""
        self.gate.update_conditions(
            self.conversation_id,
            challenge_articulated=True if detect_concrete_challenge(user_message) else None,
            user_emotionally_regulated=is_emotionally_regulated(user_message),
        )

    def _call_model(self, system_prompt: str, history: List[Dict[str, str]], tools: list):
        if self.language_model is None:
            metrics.record_model_failure()
            logger.warning("No language model configured; using fallback reply")
            raise ModelCallError("No language model configured")

        model_history = self.context_engine.model_history(history)
        try:
            with Tracer("LanguageModel", system_prompt[-200:]):
                return generate_with_timeout(self.language_model, system_prompt, model_history,
                                             tools, timeout=self.model_timeout)
        except ModelCallError as e:
            metrics.record_model_failure()
            logger.error(f"Model call failed for {self.conversation_id}: {e}")
            raise

    def _finish(self, content: str, new_state: ConversationState, *,
                suggested: Optional[List[Exercise]] = None,
                crisis: Optional[CrisisResult] = None,
                gate_passed: Optional[bool] = None,
                reason: str = "") -> AIResponse:
        """Persist the reply and the new state, then build the response."""
        conversation = self.store.get(self.conversation_id)
        previous = conversation.state
        conversation.state = new_state
        conversation.add_model_message(content)
        if suggested:
            conversation.last_suggested_exercise_ids = [e.id for e in suggested]
        elif new_state != S.EXERCISE_SUGGESTION:
            conversation.last_suggested_exercise_ids = []
        self.store.save(conversation)

        is_crisis = bool(crisis and crisis.is_crisis)
        metrics.record_turn(crisis=is_crisis)

        metadata: Dict[str, Any] = {"state_transition_reason": reason}
        if gate_passed is not None:
            metadata["exercise_gate_passed"] = gate_passed
        if crisis is not None and crisis.triggers:
            metadata["crisis_indicators"] = list(crisis.triggers)
            metadata["crisis_severity"] = crisis.severity.value

        if previous != new_state:
            logger.info(f"{self.conversation_id}: {previous.value} → {new_state.value} ({reason})")

        return AIResponse(
            content=content,
            new_state=new_state,
            suggested_exercises=suggested or None,
            crisis_detected=is_crisis,
            metadata=metadata,
        )
