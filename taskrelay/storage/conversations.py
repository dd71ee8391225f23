"""PostgreSQL-backed ConversationStore.

Appends lock the conversation row (SELECT ... FOR UPDATE) so the insert and
the metadata update land together and sequence numbers never collide.
"""

from __future__ import annotations

from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from taskrelay.storage.base import ConversationNotFound
from taskrelay.storage.database import Database
from taskrelay.storage.models import ConversationRow, MessageRow
from taskrelay.storage.schemas import PREVIEW_CHARS, Conversation, Message, MessageRole


def _parse_id(conversation_id: str) -> UUID | None:
    try:
        return UUID(conversation_id)
    except (ValueError, TypeError):
        return None


def _to_conversation(row: ConversationRow) -> Conversation:
    return Conversation(
        id=str(row.id),
        owner_id=row.owner_id,
        title=row.title,
        created_at=row.created_at,
        updated_at=row.updated_at,
        message_count=row.message_count,
        preview=row.preview,
    )


def _to_message(row: MessageRow) -> Message:
    return Message(
        id=str(row.id),
        conversation_id=str(row.conversation_id),
        role=row.role,
        content=row.content,
        created_at=row.created_at,
        task_id=row.task_id,
        agents_used=list(row.agents_used) if row.agents_used is not None else None,
        tokens_used=row.tokens_used,
    )


class SqlConversationStore:
    def __init__(self, database: Database, owns_database: bool = True) -> None:
        self.db = database
        self._owns_database = owns_database

    async def create_conversation(self, owner_id: str, title: str) -> Conversation:
        now = datetime.now(UTC)
        row = ConversationRow(owner_id=owner_id, title=title, message_count=0, created_at=now, updated_at=now)
        async with self.db.session() as session:
            session.add(row)
            await session.commit()
            return _to_conversation(row)

    async def get_conversation(self, conversation_id: str) -> Conversation | None:
        uid = _parse_id(conversation_id)
        if uid is None:
            return None
        async with self.db.session() as session:
            row = await session.get(ConversationRow, uid)
            return _to_conversation(row) if row else None

    async def list_conversations(self, owner_id: str) -> list[Conversation]:
        async with self.db.session() as session:
            result = await session.execute(
                select(ConversationRow)
                .where(ConversationRow.owner_id == owner_id)
                .order_by(ConversationRow.updated_at.desc())
            )
            return [_to_conversation(r) for r in result.scalars().all()]

    async def rename_conversation(self, conversation_id: str, title: str) -> None:
        async with self.db.session() as session:
            row = await self._lock_conversation(session, conversation_id)
            row.title = title
            row.updated_at = datetime.now(UTC)
            await session.commit()

    async def delete_conversation(self, conversation_id: str) -> None:
        uid = _parse_id(conversation_id)
        if uid is None:
            return
        async with self.db.session() as session:
            await session.execute(delete(MessageRow).where(MessageRow.conversation_id == uid))
            await session.execute(delete(ConversationRow).where(ConversationRow.id == uid))
            await session.commit()

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
        async with self.db.session() as session:
            conversation = await self._lock_conversation(session, conversation_id)
            now = datetime.now(UTC)
            row = MessageRow(
                conversation_id=conversation.id,
                seq=conversation.message_count + 1,
                role=role,
                content=content,
                task_id=task_id,
                agents_used=list(agents_used) if agents_used is not None else None,
                tokens_used=tokens_used,
                created_at=now,
            )
            session.add(row)

            conversation.message_count += 1
            conversation.updated_at = now
            conversation.preview = content[:PREVIEW_CHARS]
            await session.commit()
            return _to_message(row)

    async def list_messages(self, conversation_id: str) -> list[Message]:
        uid = _parse_id(conversation_id)
        if uid is None:
            return []
        async with self.db.session() as session:
            result = await session.execute(
                select(MessageRow).where(MessageRow.conversation_id == uid).order_by(MessageRow.seq)
            )
            return [_to_message(r) for r in result.scalars().all()]

    async def close(self) -> None:
        if self._owns_database:
            await self.db.disconnect()

    async def _lock_conversation(self, session: AsyncSession, conversation_id: str) -> ConversationRow:
        uid = _parse_id(conversation_id)
        row = None
        if uid is not None:
            result = await session.execute(
                select(ConversationRow).where(ConversationRow.id == uid).with_for_update()
            )
            row = result.scalar_one_or_none()
        if row is None:
            raise ConversationNotFound(conversation_id)
        return row
