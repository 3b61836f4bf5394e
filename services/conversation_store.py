"""Conversation Store Module

This module provides:
1. In-memory conversation storage (the persistence collaborator of the core)
2. Optional persistence to JSON, one file per conversation
3. Exercise completion records
4. A per-conversation lock registry so turns for one conversation never interleave
"""
import json
import logging
import threading
import uuid
from typing import Dict, List, Optional
from pathlib import Path
from datetime import datetime, timezone
from config.settings import CONVERSATION_STORAGE_PATH
from core.errors import NotFoundError
from models.conversation import Conversation, ConversationState
from models.catalog import ExerciseCompletion

logger = logging.getLogger(__name__)


class InMemoryConversationStore:
    """
    In-memory conversation store.

    Features:
    - Create/Get/Save conversations
    - Exercise completion records
    - Optional persistence to disk

    Every public call is atomic under a store-level lock. `get` returns a
    detached copy, so a caller's edits only land through `save`.
    """

    def __init__(self, persist: bool = False, storage_dir: Path = CONVERSATION_STORAGE_PATH):
        self._conversations: Dict[str, Conversation] = {}
        self._completions: Dict[str, List[ExerciseCompletion]] = {}
        self._persist = persist
        self._storage_dir = Path(storage_dir)
        self._lock = threading.RLock()

        if persist:
            self._storage_dir.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    # === Conversation Operations ===

    def create(self, user_id: str, conversation_id: str = None,
               state: ConversationState = ConversationState.INIT) -> Conversation:
        """Create a new conversation for a user."""
        if conversation_id is None:
            conversation_id = f"conv_{uuid.uuid4().hex[:12]}"

        conversation = Conversation(conversation_id=conversation_id, user_id=user_id, state=state)
        with self._lock:
            self._conversations[conversation_id] = conversation
            self._write(conversation)
        logger.info(f"Created conversation: {conversation_id}")
        return self._copy(conversation)

    def get(self, conversation_id: str) -> Conversation:
        """Get a conversation by ID. Raises NotFoundError when missing."""
        with self._lock:
            conversation = self._conversations.get(conversation_id)
            if conversation is None:
                raise NotFoundError("Conversation", conversation_id)
            return self._copy(conversation)

    def exists(self, conversation_id: str) -> bool:
        with self._lock:
            return conversation_id in self._conversations

    def save(self, conversation: Conversation) -> Conversation:
        """Persist a conversation. It must already exist."""
        with self._lock:
            if conversation.conversation_id not in self._conversations:
                raise NotFoundError("Conversation", conversation.conversation_id)
            conversation.updated_at = datetime.now(timezone.utc)
            stored = self._copy(conversation)
            self._conversations[conversation.conversation_id] = stored
            self._write(stored)
        return conversation

    def list_conversations(self, user_id: str = None) -> List[Conversation]:
        """List all conversations, optionally filtered by user."""
        with self._lock:
            conversations = [self._copy(c) for c in self._conversations.values()]
        if user_id:
            conversations = [c for c in conversations if c.user_id == user_id]
        return conversations

    # === Completion Records ===

    def create_completion(self, conversation_id: str, exercise_id: str,
                          reflection: str) -> ExerciseCompletion:
        """Record that an exercise was completed with a reflection."""
        with self._lock:
            conversation = self._conversations.get(conversation_id)
            if conversation is None:
                raise NotFoundError("Conversation", conversation_id)
            completion = ExerciseCompletion(
                completion_id=f"cmp_{uuid.uuid4().hex[:12]}",
                conversation_id=conversation_id,
                user_id=conversation.user_id,
                exercise_id=exercise_id,
                reflection=reflection,
            )
            self._completions.setdefault(conversation_id, []).append(completion)
            self._write(conversation)
        return completion

    def list_completions(self, conversation_id: str) -> List[ExerciseCompletion]:
        with self._lock:
            return list(self._completions.get(conversation_id, []))

    # === Persistence ===

    @staticmethod
    def _copy(conversation: Conversation) -> Conversation:
        return Conversation.from_dict(conversation.to_dict())

    def _write(self, conversation: Conversation):
        """Save conversation (and its completions) to disk."""
        if not self._persist:
            return
        payload = conversation.to_dict()
        payload["completions"] = [
            c.to_dict() for c in self._completions.get(conversation.conversation_id, [])
        ]
        path = self._storage_dir / f"{conversation.conversation_id}.json"
        with open(path, "w") as f:
            json.dump(payload, f, indent=2)

    def _load_from_disk(self):
        """Load all conversations from disk."""
        for path in self._storage_dir.glob("*.json"):
            try:
                with open(path) as f:
                    data = json.load(f)
                completions = data.pop("completions", [])
                conversation = Conversation.from_dict(data)
                self._conversations[conversation.conversation_id] = conversation
                self._completions[conversation.conversation_id] = [
                    ExerciseCompletion.from_dict(c) for c in completions
                ]
            except (OSError, ValueError, KeyError) as e:
                logger.warning(f"Failed to load conversation {path}: {e}")

        logger.info(f"Loaded {len(self._conversations)} conversations")


class ConversationLocks:
    """One lock per conversation id; turns for different conversations never contend."""

    def __init__(self):
        self._locks: Dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def lock_for(self, conversation_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(conversation_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[conversation_id] = lock
            return lock


# Global instances
_conversation_store = None
_conversation_locks = None


def get_conversation_store() -> InMemoryConversationStore:
    """Get or create the global conversation store."""
    global _conversation_store
    if _conversation_store is None:
        _conversation_store = InMemoryConversationStore(persist=True)
    return _conversation_store


def get_conversation_locks() -> ConversationLocks:
    """Get or create the global lock registry."""
    global _conversation_locks
    if _conversation_locks is None:
        _conversation_locks = ConversationLocks()
    return _conversation_locks
