"""Sentient Self Guide - Terminal Edition

Runs the conversation core interactively:
- Conversation state machine (ConversationController)
- Crisis override and exercise suggestion gate
- Exercise facilitation with phase tracking
- Observability (Tracing, Metrics)
"""
import logging
from typing import Optional
from agents.conversation_controller import ConversationController
from config.settings import GOOGLE_API_KEY
from core.errors import NotFoundError
from core.observability import get_metrics_summary
from models.conversation import AIResponse, UserProfile
from services.conversation_store import get_conversation_store
from services.exercise_catalog import get_exercise_catalog
from services.language_model import get_language_model

logger = logging.getLogger(__name__)


class GuideSystem:
    """
    Wires the conversation core to the default collaborators for one user.

    Attributes:
        conversation_id: Active conversation (new unless an existing id is resumed).
        store: Conversation store (persisted to disk).
        catalog: Exercise catalog loaded from the bundled JSON file.
        controller: ConversationController for the active conversation.
    """

    def __init__(self, user_id: str = "default_user", conversation_id: Optional[str] = None,
                 profile: Optional[UserProfile] = None):
        self.store = get_conversation_store()
        self.catalog = get_exercise_catalog()

        if conversation_id and self.store.exists(conversation_id):
            self.conversation_id = conversation_id
            logger.info(f"Resumed conversation: {conversation_id}")
        else:
            self.conversation_id = self.store.create(user_id).conversation_id
            logger.info(f"Created new conversation: {self.conversation_id}")

        self.controller = ConversationController(
            self.conversation_id,
            self.store,
            self.catalog,
            language_model=get_language_model(),
            user_profile=profile or UserProfile(name="Friend"),
        )

    def process(self, user_text: str, exercise_id: Optional[str] = None) -> AIResponse:
        return self.controller.generate_response(user_text, exercise_id=exercise_id)

    def get_metrics(self) -> dict:
        """Observability metrics for this process."""
        return get_metrics_summary()


def _print_response(response: AIResponse):
    print(f"Guide: {response.content}")
    if response.suggested_exercises:
        print("\n  Suggested exercises:")
        for i, exercise in enumerate(response.suggested_exercises, start=1):
            print(f"   {i}. {exercise.title} [{exercise.framework}] ({exercise.id})")
    print(f"  [{response.new_state.value}]")


def main():
    print("=== Sentient Self Guide ===")

    if not GOOGLE_API_KEY:
        print("Warning: GOOGLE_API_KEY not found. Running in fallback mode.")

    try:
        guide = GuideSystem()
    except NotFoundError as e:
        print(f"Error: {e}")
        return

    print("\nType 'exit' to quit, 'metrics' for stats, or 'pick <exercise_id>' to choose a suggestion.\n")
    print("Guide: Hi, I'm your Sentient Self Guide. What's on your mind today?")

    while True:
        user_input = input("\nYou: ").strip()
        if not user_input:
            continue
        if user_input.lower() in ["exit", "quit"]:
            print("Guide: Take care of yourself. I'm here whenever you want to talk.")
            break
        if user_input.lower() == "metrics":
            print(get_metrics_summary())
            continue

        exercise_id = None
        if user_input.lower().startswith("pick "):
            exercise_id = user_input[5:].strip()
            user_input = "Let's do this one."

        _print_response(guide.process(user_input, exercise_id=exercise_id))


if __name__ == "__main__":
    main()
