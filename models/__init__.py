"""Sentient Guide Data Models.

This module contains dataclasses for conversation state and the exercise catalog.

Models:
    ConversationState: Enum for the conversation state machine.
    GateConditions: The five exercise-suggestion gate booleans.
    Conversation: Per-conversation aggregate mutated by the controller.
    UserProfile: Onboarding baseline used to personalize the system context.
    AIResponse: What one turn returns to the caller.
    Phase, Framework, Exercise, ExerciseCompletion: Read-only catalog entries
        and the externally-owned completion record.
"""
from models.conversation import (
    ConversationState,
    GateConditions,
    Conversation,
    UserProfile,
    AIResponse,
)
from models.catalog import (
    Phase,
    Framework,
    Exercise,
    ExerciseCompletion,
)

__all__ = [
    "ConversationState",
    "GateConditions",
    "Conversation",
    "UserProfile",
    "AIResponse",
    "Phase",
    "Framework",
    "Exercise",
    "ExerciseCompletion",
]
