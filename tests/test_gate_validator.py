"""Unit Tests for the exercise suggestion gate and its detection helpers."""
import pytest
from core.errors import NotFoundError
from services.gate_validator import (
    FAILURE_REASONS,
    GateStatus,
    detect_concrete_challenge,
    detect_decline_in_message,
    detect_reflective_language,
    detect_structure_explanation,
    gate_summary,
    is_emotionally_regulated,
)


class TestGateValidation:
    """validate() derives status from the stored conditions."""

    def test_fresh_conversation_gate_is_closed(self, gate, conversation):
        status = gate.validate(conversation.conversation_id)
        assert status.all_conditions_met is False
        assert status.no_recent_decline is True
        assert status.failed_conditions == [reason for _, reason in FAILURE_REASONS[:4]]

    def test_all_five_conditions_open_the_gate(self, gate, conversation, gate_opener):
        gate_opener(conversation.conversation_id)
        status = gate.validate(conversation.conversation_id)
        assert status.all_conditions_met is True
        assert status.failed_conditions == []

    def test_failed_conditions_keep_fixed_order(self, gate, conversation):
        cid = conversation.conversation_id
        gate.update_conditions(cid, ai_reflected_accurately=True, structure_explained=True)
        gate.record_decline(cid)

        status = gate.validate(cid)
        assert status.failed_conditions == [
            "No concrete challenge articulated",
            "User may not be emotionally regulated",
            "User recently declined exercises",
        ]

    def test_unknown_conversation_raises(self, gate):
        with pytest.raises(NotFoundError):
            gate.validate("missing")

    def test_status_to_dict(self, gate, conversation):
        data = gate.validate(conversation.conversation_id).to_dict()
        assert set(data) == {
            "challenge_articulated", "ai_reflected_accurately", "user_emotionally_regulated",
            "structure_explained", "no_recent_decline", "all_conditions_met", "failed_conditions",
        }

    def test_gate_summary(self, gate, conversation, gate_opener):
        closed = gate.validate(conversation.conversation_id)
        assert gate_summary(closed).startswith("❌ Gate blocked")

        gate_opener(conversation.conversation_id)
        opened = gate.validate(conversation.conversation_id)
        assert gate_summary(opened).startswith("✅")


class TestConditionUpdates:
    """Partial updates touch only the named conditions."""

    def test_partial_update_leaves_others(self, gate, store, conversation):
        cid = conversation.conversation_id
        changed = gate.update_conditions(cid, challenge_articulated=True)

        assert changed == {"challenge_articulated": True}
        stored = store.get(cid).gate
        assert stored.challenge_articulated is True
        assert stored.ai_reflected_accurately is False
        assert stored.no_recent_decline is True

    def test_none_values_are_ignored(self, gate, store, conversation):
        cid = conversation.conversation_id
        gate.update_conditions(cid, challenge_articulated=True)
        changed = gate.update_conditions(cid, challenge_articulated=None, structure_explained=None)

        assert changed == {}
        assert store.get(cid).gate.challenge_articulated is True

    def test_unchanged_values_are_not_reported(self, gate, conversation):
        cid = conversation.conversation_id
        gate.update_conditions(cid, user_emotionally_regulated=True)
        assert gate.update_conditions(cid, user_emotionally_regulated=True) == {}

    def test_unknown_condition_is_rejected(self, gate, conversation):
        with pytest.raises(ValueError):
            gate.update_conditions(conversation.conversation_id, made_up=True)


class TestDeclineCooldown:
    """A decline closes condition 5 for 24 hours."""

    def test_record_decline(self, gate, store, conversation, clock):
        cid = conversation.conversation_id
        gate.record_decline(cid)

        stored = store.get(cid)
        assert stored.gate.no_recent_decline is False
        assert stored.last_declined_at == clock.now

    def test_no_reset_inside_window(self, gate, store, conversation, clock):
        cid = conversation.conversation_id
        gate.record_decline(cid)
        clock.advance(hours=23, minutes=59)

        assert gate.maybe_reset_decline(cid) is False
        assert store.get(cid).gate.no_recent_decline is False

    def test_reset_at_exactly_24_hours(self, gate, store, conversation, clock):
        cid = conversation.conversation_id
        gate.record_decline(cid)
        clock.advance(hours=24)

        assert gate.maybe_reset_decline(cid) is True
        assert store.get(cid).gate.no_recent_decline is True

    def test_reset_only_once(self, gate, conversation, clock):
        cid = conversation.conversation_id
        gate.record_decline(cid)
        clock.advance(hours=30)

        assert gate.maybe_reset_decline(cid) is True
        assert gate.maybe_reset_decline(cid) is False

    def test_no_decline_on_record(self, gate, conversation):
        assert gate.maybe_reset_decline(conversation.conversation_id) is False

    def test_unknown_conversation_is_not_reset(self, gate):
        assert gate.maybe_reset_decline("missing") is False

    def test_gate_reopens_after_cooldown(self, gate, conversation, clock, gate_opener):
        cid = conversation.conversation_id
        gate_opener(cid)
        gate.record_decline(cid)
        assert gate.validate(cid).all_conditions_met is False

        clock.advance(hours=24)
        gate.maybe_reset_decline(cid)
        assert gate.validate(cid).all_conditions_met is True


class TestDetectionHelpers:
    """Pure text heuristics feeding the gate."""

    @pytest.mark.parametrize("text", [
        "I'm struggling with cravings after work",
        "I relapsed on Saturday",
        "I feel so overwhelmed by my job",
        "It's hard to say no to my friends",
    ])
    def test_concrete_challenge(self, text):
        assert detect_concrete_challenge(text) is True

    def test_vague_message_is_not_a_challenge(self):
        assert detect_concrete_challenge("Hello, how does this work?") is False

    def test_reflective_language(self):
        assert detect_reflective_language("It sounds like evenings are the hardest time.") is True
        assert detect_reflective_language("Here is a list of tips.") is False

    def test_structure_explanation(self):
        assert detect_structure_explanation("A structured exercise might give you some distance.") is True
        assert detect_structure_explanation("We could go step by step.") is True
        assert detect_structure_explanation("Tell me more.") is False

    @pytest.mark.parametrize("text", [
        "I can't think straight",
        "I'm in a total panic",
        "why does this keep happening???",
        "I HATE EVERYTHING about today",
        "stop!!!",
    ])
    def test_dysregulation(self, text):
        assert is_emotionally_regulated(text) is False

    def test_calm_message_is_regulated(self):
        assert is_emotionally_regulated("I've been thinking about it calmly today.") is True

    @pytest.mark.parametrize("text", [
        "No thanks",
        "no",
        "Nah, maybe later.",
        "I'd rather just talk",
        "Not right now, I'm tired",
    ])
    def test_decline_phrases(self, text):
        assert detect_decline_in_message(text) is True

    @pytest.mark.parametrize("text", [
        "I know what you mean",
        "Nobody understands",
        "That passage stuck with me",
    ])
    def test_decline_requires_word_boundaries(self, text):
        assert detect_decline_in_message(text) is False


class TestGateStatus:

    def test_from_conditions(self):
        from models.conversation import GateConditions

        status = GateStatus.from_conditions(GateConditions(
            challenge_articulated=True,
            ai_reflected_accurately=True,
            user_emotionally_regulated=True,
            structure_explained=True,
        ))
        assert status.all_conditions_met is True
