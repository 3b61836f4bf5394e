"""Error taxonomy for the conversation core.

NotFoundError and NoActiveExerciseError propagate to the caller.
ModelCallError is caught at the controller boundary and never reaches the user.
"""


class ConversationCoreError(Exception):
    """Base class for conversation core failures."""


class NotFoundError(ConversationCoreError):
    """A conversation, exercise or framework does not exist."""

    def __init__(self, kind: str, identifier: str):
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} {identifier} not found")


class NoActiveExerciseError(ConversationCoreError):
    """An exercise operation needs an active exercise and there is none."""

    def __init__(self, conversation_id: str, action: str = "continue"):
        self.conversation_id = conversation_id
        super().__init__(f"No active exercise to {action} in conversation {conversation_id}")


class ModelCallError(ConversationCoreError):
    """The language model call failed or timed out."""
