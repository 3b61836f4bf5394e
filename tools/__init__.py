"""Sentient Guide Tools Module.

Deterministic building blocks the controller and the language model use.

Tools:
    detect: Classify a message into a crisis severity tier.
    response_for: Fixed, reviewed reply text for a severity.
    ExerciseSearchTool: The model's exercise-search tool, gate re-checked on every call.
"""
from tools.crisis_detection import (
    CrisisResult,
    RecommendedAction,
    Severity,
    detect,
    response_for,
)
from tools.exercise_search import ExerciseSearchTool, clamp_limit

__all__ = [
    "CrisisResult",
    "RecommendedAction",
    "Severity",
    "detect",
    "response_for",
    "ExerciseSearchTool",
    "clamp_limit",
]
