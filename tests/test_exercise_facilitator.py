"""Unit Tests for the exercise facilitator lifecycle and its helpers."""
import pytest
from core.errors import NoActiveExerciseError, NotFoundError
from models.catalog import Exercise
from models.conversation import ConversationState
from services.exercise_facilitator import (
    PHASE_ADVANCE_MARKER,
    ExerciseFacilitator,
    build_exercise_prompt,
    detect_acceptance,
    detect_exit,
    detect_reflection,
)
from services.exercise_catalog import InMemoryExerciseCatalog


REFLECTION = "I noticed the craving peaked after a few minutes and then slowly faded while I kept breathing"


class TestExerciseLifecycle:
    """start -> advance -> complete / cancel."""

    def test_start_sets_phase_zero_and_facilitation(self, facilitator, store, conversation, clock):
        cid = conversation.conversation_id
        context = facilitator.start(cid, "ex_urge_evening")

        assert context.current_phase == 0
        assert context.total_phases == 4
        assert context.framework.id == "urge_surfing"

        stored = store.get(cid)
        assert stored.state == ConversationState.EXERCISE_FACILITATION
        assert stored.active_exercise_id == "ex_urge_evening"
        assert stored.active_framework_id == "urge_surfing"
        assert stored.exercise_started_at == clock.now

    def test_start_unknown_exercise(self, facilitator, conversation):
        with pytest.raises(NotFoundError):
            facilitator.start(conversation.conversation_id, "missing")

    def test_start_exercise_with_missing_framework(self, store, conversation):
        catalog = InMemoryExerciseCatalog(exercises=[
            Exercise(id="orphan", title="Orphan", ai_prompt="", framework="gone"),
        ])
        facilitator = ExerciseFacilitator(store, catalog)
        with pytest.raises(NotFoundError) as excinfo:
            facilitator.start(conversation.conversation_id, "orphan")
        assert "Framework" in str(excinfo.value)

    def test_start_unknown_conversation(self, facilitator):
        with pytest.raises(NotFoundError):
            facilitator.start("missing", "ex_urge_evening")

    def test_get_active_without_exercise(self, facilitator, conversation):
        assert facilitator.get_active(conversation.conversation_id) is None

    def test_get_active_clears_stale_reference(self, facilitator, store, conversation):
        cid = conversation.conversation_id
        stored = store.get(cid)
        stored.active_exercise_id = "deleted_exercise"
        stored.active_framework_id = "urge_surfing"
        store.save(stored)

        assert facilitator.get_active(cid) is None
        assert store.get(cid).active_exercise_id is None

    def test_advance_phase(self, facilitator, store, conversation):
        cid = conversation.conversation_id
        facilitator.start(cid, "ex_urge_evening")

        assert facilitator.advance_phase(cid) == 1
        assert facilitator.get_active(cid).current_phase == 1
        assert store.get(cid).current_phase_index == 1

    def test_advance_without_exercise(self, facilitator, conversation):
        with pytest.raises(NoActiveExerciseError):
            facilitator.advance_phase(conversation.conversation_id)

    def test_complete(self, facilitator, store, conversation):
        cid = conversation.conversation_id
        facilitator.start(cid, "ex_values_recovery")
        completion = facilitator.complete(cid, REFLECTION)

        assert completion.exercise_id == "ex_values_recovery"
        assert completion.user_id == "user_1"
        assert completion.reflection == REFLECTION

        stored = store.get(cid)
        assert stored.exercises_completed == 1
        assert stored.active_exercise_id is None
        assert stored.active_framework_id is None
        assert stored.current_phase_index == 0
        assert stored.exercise_started_at is None
        assert stored.state == ConversationState.POST_EXERCISE_INTEGRATION
        assert store.list_completions(cid) == [completion]

    def test_complete_without_exercise(self, facilitator, conversation):
        with pytest.raises(NoActiveExerciseError):
            facilitator.complete(conversation.conversation_id, REFLECTION)

    def test_second_complete_fails(self, facilitator, store, conversation):
        cid = conversation.conversation_id
        facilitator.start(cid, "ex_values_recovery")
        facilitator.complete(cid, REFLECTION)

        with pytest.raises(NoActiveExerciseError):
            facilitator.complete(cid, REFLECTION)

        assert store.get(cid).exercises_completed == 1
        assert len(store.list_completions(cid)) == 1

    def test_cancel_is_idempotent(self, facilitator, store, conversation):
        cid = conversation.conversation_id
        facilitator.start(cid, "ex_urge_evening")

        facilitator.cancel(cid)
        facilitator.cancel(cid)

        stored = store.get(cid)
        assert stored.active_exercise_id is None
        assert stored.state == ConversationState.SUPPORTIVE_PROCESSING
        assert stored.exercises_completed == 0


class TestExercisePrompt:
    """The per-phase instruction block."""

    def test_prompt_describes_current_phase(self, facilitator, conversation):
        cid = conversation.conversation_id
        facilitator.start(cid, "ex_urge_evening")
        facilitator.advance_phase(cid)

        prompt = build_exercise_prompt(facilitator.get_active(cid))
        assert "ACTIVE EXERCISE: Surfing an Evening Craving" in prompt
        assert "Current Phase: 2 of 4" in prompt
        assert "Locate It in the Body" in prompt
        assert "✓ 1. Notice the Urge" in prompt
        assert "→ **2. Locate It in the Body** (CURRENT)" in prompt
        assert "ASK ONE QUESTION AT A TIME" in prompt
        assert PHASE_ADVANCE_MARKER in prompt

    def test_final_phase_asks_for_reflection(self, facilitator, conversation):
        cid = conversation.conversation_id
        facilitator.start(cid, "ex_values_recovery")
        facilitator.advance_phase(cid)
        facilitator.advance_phase(cid)

        context = facilitator.get_active(cid)
        assert context.is_final_phase is True
        assert "final phase" in facilitator.build_prompt(context)


class TestFacilitationHelpers:

    @pytest.mark.parametrize("text", [
        "exit exercise",
        "Can we stop? This is a lot",
        "I want to stop",
        "please END EXERCISE",
    ])
    def test_exit_phrases(self, text):
        assert detect_exit(text) is True

    def test_ordinary_answer_is_not_exit(self):
        assert detect_exit("It feels tight in my chest") is False

    def test_reflection_thresholds(self):
        assert detect_reflection(REFLECTION) is True
        assert detect_reflection("It was good.") is False
        # Long enough in characters but too few words
        assert detect_reflection("Supercalifragilisticexpialidocious " * 2) is False

    def test_reflection_thresholds_are_configurable(self, store, catalog):
        facilitator = ExerciseFacilitator(store, catalog, reflection_min_chars=5, reflection_min_words=2)
        assert facilitator.detect_reflection("It helped") is True

    @pytest.mark.parametrize("text", [
        "yes",
        "Sure!",
        "let's do it",
        "I'd like to try the second one",
        "ok, let's start",
        "Exercise 2 please",
    ])
    def test_acceptance(self, text):
        assert detect_acceptance(text) is True

    @pytest.mark.parametrize("text", [
        "yes but I'm not sure it will help, tell me more about them",
        "I'd rather just talk",
    ])
    def test_not_acceptance(self, text):
        assert detect_acceptance(text) is False
