from wander_chat.conversations.models import Conversation, Message, Role
from wander_chat.conversations.store import ANONYMOUS_USER_ID, ConversationStore, normalize_user_id

__all__ = ["ANONYMOUS_USER_ID", "Conversation", "ConversationStore", "Message", "Role", "normalize_user_id"]
