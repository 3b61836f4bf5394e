"""Unit Tests for the exercise catalog search and the gated search tool."""
import pytest
from services.exercise_catalog import InMemoryExerciseCatalog
from tools.exercise_search import ExerciseSearchTool, SEARCH_EXERCISES_PARAMETERS, clamp_limit


class TestCatalogSearch:
    """Case-insensitive substring search over title, aspect and topic."""

    def test_catalog_file_loads(self, catalog):
        assert len(catalog.list_exercises()) == 6
        assert catalog.get_framework("urge_surfing").total_phases == 4

    def test_every_exercise_references_a_framework(self, catalog):
        for exercise in catalog.list_exercises():
            assert catalog.get_framework(exercise.framework) is not None

    def test_keyword_match(self, catalog):
        results = catalog.search(keywords=["CRAVING"])
        assert [e.id for e in results] == ["ex_urge_evening"]

    def test_any_keyword_matches(self, catalog):
        results = catalog.search(keywords=["craving", "anxious"], limit=5)
        assert {e.id for e in results} == {"ex_urge_evening", "ex_thought_anxiety"}

    def test_topic_and_framework_filters(self, catalog):
        results = catalog.search(topic="addiction", framework="thought_record")
        assert [e.id for e in results] == ["ex_thought_relapse_shame"]

    def test_limit(self, catalog):
        assert len(catalog.search(topic="Addiction Recovery", limit=2)) == 2

    def test_lookups_return_none_when_missing(self, catalog):
        assert catalog.get_exercise("missing") is None
        assert catalog.get_framework("missing") is None

    def test_empty_catalog(self):
        assert InMemoryExerciseCatalog().search(keywords=["anything"]) == []


class TestExerciseSearchTool:
    """The tool re-checks the gate on every execution."""

    def test_tool_schema(self):
        assert ExerciseSearchTool.name == "search_exercises"
        assert SEARCH_EXERCISES_PARAMETERS["required"] == ["keywords"]

    def test_closed_gate_returns_error_and_no_exercises(self, gate, catalog, conversation):
        tool = ExerciseSearchTool(gate, catalog, conversation.conversation_id)
        result = tool.execute(keywords=["craving"])

        assert "error" in result
        assert result["exercises"] == []
        assert "No concrete challenge articulated" in result["failed_conditions"]
        assert tool.found == []
        assert tool.invocations[0].gate_open is False

    def test_recent_decline_blocks_search(self, gate, catalog, conversation, gate_opener):
        cid = conversation.conversation_id
        gate_opener(cid)
        gate.record_decline(cid)

        result = ExerciseSearchTool(gate, catalog, cid).execute(keywords=["craving"])
        assert result["exercises"] == []
        assert result["failed_conditions"] == ["User recently declined exercises"]

    def test_open_gate_returns_exercises(self, gate, catalog, conversation, gate_opener):
        cid = conversation.conversation_id
        gate_opener(cid)
        tool = ExerciseSearchTool(gate, catalog, cid)

        result = tool.execute(keywords=["craving"])

        assert "error" not in result
        assert result["exercises"] == [{
            "id": "ex_urge_evening",
            "title": "Surfing an Evening Craving",
            "framework": "urge_surfing",
            "topic": "Addiction Recovery",
            "aspect": "Cravings and urges",
        }]
        assert [e.id for e in tool.found] == ["ex_urge_evening"]
        assert tool.invoked is True

    def test_gate_is_rechecked_on_each_call(self, gate, catalog, conversation, gate_opener):
        cid = conversation.conversation_id
        gate_opener(cid)
        tool = ExerciseSearchTool(gate, catalog, cid)

        assert tool.execute(keywords=["craving"])["exercises"]
        gate.update_conditions(cid, user_emotionally_regulated=False)
        assert tool.execute(keywords=["craving"])["exercises"] == []

    def test_unknown_conversation_is_refused(self, gate, catalog):
        result = ExerciseSearchTool(gate, catalog, "missing").execute(keywords=["craving"])
        assert result["exercises"] == []
        assert "error" in result

    def test_found_is_deduplicated(self, gate, catalog, conversation, gate_opener):
        cid = conversation.conversation_id
        gate_opener(cid)
        tool = ExerciseSearchTool(gate, catalog, cid)

        tool.execute(keywords=["craving"])
        tool.execute(keywords=["evening"])
        assert [e.id for e in tool.found] == ["ex_urge_evening"]


class TestClampLimit:

    @pytest.mark.parametrize("value, expected", [
        (3, 3),
        (0, 1),
        (-4, 1),
        (50, 5),
        ("2", 2),
        (None, 3),
        ("many", 3),
    ])
    def test_clamp(self, value, expected):
        assert clamp_limit(value) == expected
