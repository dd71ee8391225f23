"""ConversationStore interface consumed by the relay."""

from __future__ import annotations

from typing import Protocol

from taskrelay.storage.schemas import Conversation, Message, MessageRole


class ConversationNotFound(LookupError):
    def __init__(self, conversation_id: str) -> None:
        self.conversation_id = conversation_id
        super().__init__(f"Conversation not found: {conversation_id}")


class ConversationStore(Protocol):
    """Ordered per-conversation message log with conversation metadata.

    append_message() must update message_count, updated_at and preview
    atomically with the insert.
    """

    async def create_conversation(self, owner_id: str, title: str) -> Conversation: ...

    async def get_conversation(self, conversation_id: str) -> Conversation | None: ...

    async def list_conversations(self, owner_id: str) -> list[Conversation]: ...

    async def rename_conversation(self, conversation_id: str, title: str) -> None: ...

    async def delete_conversation(self, conversation_id: str) -> None: ...

    async def append_message(
        self,
        conversation_id: str,
        role: MessageRole,
        content: str,
        *,
        task_id: str | None = None,
        agents_used: list[str] | None = None,
        tokens_used: int | None = None,
    ) -> Message: ...

    async def list_messages(self, conversation_id: str) -> list[Message]: ...

    async def close(self) -> None: ...
