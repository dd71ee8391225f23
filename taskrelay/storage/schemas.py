"""Pydantic DTOs for conversations and messages.

These are the public contract of every ConversationStore backend.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel

MessageRole = Literal["user", "assistant"]

PREVIEW_CHARS = 100


class Conversation(BaseModel):
    id: str
    owner_id: str
    title: str
    created_at: datetime
    updated_at: datetime
    message_count: int = 0
    preview: str | None = None


class Message(BaseModel):
    """One immutable entry in a conversation log."""

    id: str
    conversation_id: str
    role: MessageRole
    content: str
    created_at: datetime
    task_id: str | None = None
    agents_used: list[str] | None = None
    tokens_used: int | None = None


def conversation_title(text: str, limit: int = 50) -> str:
    """Derive a conversation title from its first message."""
    title = " ".join(text.split())
    if not title:
        return "New Conversation"
    if len(title) > limit:
        return title[: limit - 3].rstrip() + "..."
    return title
