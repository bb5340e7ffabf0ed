import logging
import threading
from typing import Dict, Optional, Tuple

from wander_chat.conversations.models import Conversation, Message, Role

logger = logging.getLogger(__name__)

ANONYMOUS_USER_ID = "anonymous-user"


def normalize_user_id(user_id: Optional[str]) -> str:
    """Map a missing or blank user id onto the shared anonymous conversation."""
    if user_id is None or not user_id.strip():
        return ANONYMOUS_USER_ID
    return user_id


class ConversationStore:
    """
    In-process registry of conversations keyed by user id.

    Lookups of existing keys are plain dict reads. Creating a conversation takes
    a short registry lock (double-checked, so concurrent callers for the same key
    get the same instance) and each conversation has its own append lock, so
    different users never wait on each other's writes.

    Nothing is persisted: history lives as long as the process. When
    ``max_conversations`` is set, creating a conversation past the cap evicts the
    least recently updated one.
    """

    def __init__(self, max_conversations: Optional[int] = None):
        if max_conversations is not None and max_conversations < 1:
            raise ValueError("max_conversations must be a positive integer")
        self._max_conversations = max_conversations
        self._conversations: Dict[str, Conversation] = {}
        self._registry_lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._conversations)

    def __contains__(self, user_id: str) -> bool:
        return user_id in self._conversations

    def get_or_create(self, user_id: str) -> Conversation:
        conversation = self._conversations.get(user_id)
        if conversation is not None:
            return conversation

        with self._registry_lock:
            conversation = self._conversations.get(user_id)
            if conversation is None:
                conversation = Conversation(user_id=user_id)
                self._conversations[user_id] = conversation
                logger.debug("Created conversation %s for user_id=%s", conversation.id, user_id)
                self._evict_if_needed(keep=user_id)
            return conversation

    def is_registered(self, conversation: Conversation) -> bool:
        """False once ``conversation`` has been evicted."""
        return self._conversations.get(conversation.user_id) is conversation

    def append_message(self, user_id: str, role: Role, content: str) -> Message:
        return self.append_to(self.get_or_create(user_id), role, content)

    def append_to(self, conversation: Conversation, role: Role, content: str) -> Message:
        """
        Append to a conversation the caller already holds.

        If it was evicted in the meantime the message goes with it; the key is
        not re-created.
        """
        message = Message(role=role, content=content)
        with conversation.lock:
            conversation.messages.append(message)
            conversation.updated_at = message.timestamp
        return message

    def messages(self, user_id: str) -> Tuple[Message, ...]:
        """
        Consistent snapshot of the conversation's messages, oldest first.
        Unknown user ids read as empty and are not registered.
        """
        conversation = self._conversations.get(user_id)
        if conversation is None:
            return ()
        with conversation.lock:
            return tuple(conversation.messages)

    def format_history(self, user_id: str) -> str:
        return "".join(f"{m.role}: {m.content}\n" for m in self.messages(user_id))

    def _evict_if_needed(self, keep: str) -> None:
        # Caller holds the registry lock.
        if self._max_conversations is None:
            return
        while len(self._conversations) > self._max_conversations:
            candidates = [c for c in self._conversations.values() if c.user_id != keep]
            if not candidates:
                return
            oldest = min(candidates, key=lambda c: c.updated_at)
            del self._conversations[oldest.user_id]
            logger.info(
                "Evicted conversation %s for user_id=%s (cap %d reached)",
                oldest.id, oldest.user_id, self._max_conversations,
            )
