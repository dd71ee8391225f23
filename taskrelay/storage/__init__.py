"""Storage module -- conversation stores and their schemas.

Public API: ConversationStore protocol, both backends, open_store().
"""

from taskrelay.config import Settings
from taskrelay.storage.base import ConversationNotFound, ConversationStore
from taskrelay.storage.memory import InMemoryConversationStore
from taskrelay.storage.schemas import Conversation, Message, MessageRole, conversation_title


async def open_store(settings: Settings) -> ConversationStore:
    """Build the backend selected by settings.store_backend."""
    if settings.store_backend == "postgres":
        from taskrelay.storage.conversations import SqlConversationStore
        from taskrelay.storage.database import Database

        database = Database(settings)
        await database.connect()
        return SqlConversationStore(database)
    return InMemoryConversationStore()


__all__ = [
    "ConversationNotFound",
    "ConversationStore",
    "InMemoryConversationStore",
    "open_store",
    # Schemas
    "Conversation",
    "Message",
    "MessageRole",
    "conversation_title",
]
