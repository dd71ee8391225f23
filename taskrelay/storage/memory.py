"""In-memory ConversationStore.

Default backend for development and tests. Contents vanish on restart.
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from uuid import uuid4

from taskrelay.storage.base import ConversationNotFound
from taskrelay.storage.schemas import PREVIEW_CHARS, Conversation, Message, MessageRole


class InMemoryConversationStore:
    def __init__(self) -> None:
        self._conversations: dict[str, Conversation] = {}
        self._messages: dict[str, list[Message]] = {}
        self._lock = asyncio.Lock()

    async def create_conversation(self, owner_id: str, title: str) -> Conversation:
        now = datetime.now(UTC)
        conversation = Conversation(
            id=str(uuid4()),
            owner_id=owner_id,
            title=title,
            created_at=now,
            updated_at=now,
        )
        async with self._lock:
            self._conversations[conversation.id] = conversation
            self._messages[conversation.id] = []
        return conversation.model_copy()

    async def get_conversation(self, conversation_id: str) -> Conversation | None:
        conversation = self._conversations.get(conversation_id)
        return conversation.model_copy() if conversation else None

    async def list_conversations(self, owner_id: str) -> list[Conversation]:
        owned = [c for c in self._conversations.values() if c.owner_id == owner_id]
        owned.sort(key=lambda c: c.updated_at, reverse=True)
        return [c.model_copy() for c in owned]

    async def rename_conversation(self, conversation_id: str, title: str) -> None:
        async with self._lock:
            conversation = self._conversations.get(conversation_id)
            if conversation is None:
                raise ConversationNotFound(conversation_id)
            conversation.title = title
            conversation.updated_at = datetime.now(UTC)

    async def delete_conversation(self, conversation_id: str) -> None:
        async with self._lock:
            self._conversations.pop(conversation_id, None)
            self._messages.pop(conversation_id, None)

    async def append_message(
        self,
        conversation_id: str,
        role: MessageRole,
        content: str,
        *,
        task_id: str | None = None,
        agents_used: list[str] | None = None,
        tokens_used: int | None = None,
    ) -> Message:
        async with self._lock:
            conversation = self._conversations.get(conversation_id)
            if conversation is None:
                raise ConversationNotFound(conversation_id)

            message = Message(
                id=str(uuid4()),
                conversation_id=conversation_id,
                role=role,
                content=content,
                created_at=datetime.now(UTC),
                task_id=task_id,
                agents_used=list(agents_used) if agents_used is not None else None,
                tokens_used=tokens_used,
            )
            log = self._messages[conversation_id]
            log.append(message)

            conversation.message_count = len(log)
            conversation.updated_at = message.created_at
            conversation.preview = content[:PREVIEW_CHARS]
        return message.model_copy()

    async def list_messages(self, conversation_id: str) -> list[Message]:
        return [m.model_copy() for m in self._messages.get(conversation_id, [])]

    async def close(self) -> None:
        pass
