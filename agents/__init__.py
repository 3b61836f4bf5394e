"""Sentient Guide Agent Module.

This module contains the orchestrator of the conversation core.

Agents:
    ConversationController: Per-turn state machine around the language model,
        with crisis override, exercise gating and exercise facilitation.
"""
from agents.conversation_controller import (
    ConversationController,
    VALID_TRANSITIONS,
    validate_transition,
)

__all__ = [
    "ConversationController",
    "VALID_TRANSITIONS",
    "validate_transition",
]
