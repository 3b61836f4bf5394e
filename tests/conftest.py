"""Shared fixtures for the conversation core tests.

Nothing here talks to Gemini: the language model is a scripted stand-in
that can call the tools it is offered, and time comes from a settable clock.
"""
import time
from datetime import datetime, timedelta, timezone
import pytest
from core.observability import metrics
from services.conversation_store import ConversationLocks, InMemoryConversationStore
from services.exercise_catalog import InMemoryExerciseCatalog
from services.exercise_facilitator import ExerciseFacilitator
from services.gate_validator import GateValidator
from services.language_model import ModelResult, ToolCall


class FakeClock:
    """Settable clock for cool-down tests."""

    def __init__(self, start: datetime = None):
        self.now = start or datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class ScriptedModel:
    """
    LanguageModel stand-in.

    Each scripted step is either reply text, an Exception to raise, or a dict
    {"text": ..., "search": {...}} that first executes `search_exercises`
    with the given arguments when the tool was offered.
    """

    def __init__(self, *steps, delay: float = 0.0):
        self.steps = list(steps)
        self.delay = delay
        self.calls = []

    def generate(self, system_prompt, history, tools=()):
        self.calls.append({
            "system_prompt": system_prompt,
            "history": [dict(m) for m in history],
            "tools": [t.name for t in tools],
        })
        if self.delay:
            time.sleep(self.delay)

        step = self.steps.pop(0) if self.steps else "I hear you. [STATE: SUPPORTIVE_PROCESSING]"
        if isinstance(step, Exception):
            raise step
        if isinstance(step, str):
            return ModelResult(text=step)

        tool_calls = []
        if "search" in step:
            for tool in tools:
                if tool.name == "search_exercises":
                    result = tool.execute(**step["search"])
                    tool_calls.append(ToolCall(name=tool.name, arguments=step["search"], result=result))
        return ModelResult(text=step.get("text", ""), tool_calls=tool_calls)


@pytest.fixture(autouse=True)
def reset_metrics():
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return InMemoryConversationStore(persist=False)


@pytest.fixture
def catalog():
    return InMemoryExerciseCatalog.from_file()


@pytest.fixture
def gate(store, clock):
    return GateValidator(store, clock=clock)


@pytest.fixture
def facilitator(store, catalog, clock):
    return ExerciseFacilitator(store, catalog, clock=clock)


@pytest.fixture
def locks():
    return ConversationLocks()


@pytest.fixture
def conversation(store):
    return store.create(user_id="user_1")


def open_gate(gate, conversation_id):
    """Set conditions 1-4; condition 5 is open by default."""
    gate.update_conditions(
        conversation_id,
        challenge_articulated=True,
        ai_reflected_accurately=True,
        user_emotionally_regulated=True,
        structure_explained=True,
    )


@pytest.fixture
def gate_opener(gate):
    return lambda conversation_id: open_gate(gate, conversation_id)


@pytest.fixture
def scripted_model():
    """Factory: scripted_model("reply", {...}, delay=0.1)."""
    return ScriptedModel
