"""Outbound relay events and their text/event-stream wire form.

Each event is one `data: <json>` frame followed by a blank line. The stream
always ends with the literal `data: [DONE]` frame.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from taskrelay.errors import MalformedUpstreamEvent

DONE_MARKER = "[DONE]"


@dataclass
class RelayEvent:
    """A single event pushed to the client."""

    type: str  # content, agents, meta, error, done
    content: str = ""
    agents: list[str] = field(default_factory=list)
    task_id: str | None = None
    tokens_used: int | None = None
    error: str = ""

    @classmethod
    def content_slice(cls, text: str) -> RelayEvent:
        return cls(type="content", content=text)

    @classmethod
    def agents_active(cls, agents: list[str]) -> RelayEvent:
        return cls(type="agents", agents=list(agents))

    @classmethod
    def meta(cls, task_id: str | None, agents_used: list[str] | None, tokens_used: int | None) -> RelayEvent:
        return cls(type="meta", task_id=task_id, agents=list(agents_used or []), tokens_used=tokens_used)

    @classmethod
    def failure(cls, message: str) -> RelayEvent:
        return cls(type="error", error=message)

    @classmethod
    def done(cls) -> RelayEvent:
        return cls(type="done")

    def to_payload(self) -> dict[str, Any]:
        """JSON payload for this event (the done marker has none)."""
        if self.type == "content":
            return {"type": "content", "content": self.content}
        if self.type == "agents":
            return {"type": "agents", "agents": self.agents}
        if self.type == "meta":
            return {
                "type": "meta",
                "task_id": self.task_id,
                "agents_used": self.agents,
                "tokens_used": self.tokens_used,
            }
        if self.type == "error":
            return {"type": "error", "error": self.error}
        raise ValueError(f"Event type '{self.type}' has no JSON payload")


def encode_sse(event: RelayEvent) -> str:
    """Encode one event as a text/event-stream frame."""
    if event.type == "done":
        return f"data: {DONE_MARKER}\n\n"
    return f"data: {json.dumps(event.to_payload())}\n\n"


def chunk_text(text: str, size: int) -> list[str]:
    """Split `text` into consecutive slices of at most `size` characters."""
    if size < 1:
        raise ValueError("chunk size must be >= 1")
    return [text[i : i + size] for i in range(0, len(text), size)]


def parse_sse_line(line: str) -> RelayEvent | None:
    """Parse one line of the event stream.

    Returns None for non-data lines, blank lines and unknown event types.
    Raises MalformedUpstreamEvent when a data payload is not a JSON object.
    """
    if not line.startswith("data:"):
        return None
    data = line[5:]
    if data.startswith(" "):
        data = data[1:]
    if data == DONE_MARKER:
        return RelayEvent.done()
    if not data.strip():
        return None

    try:
        payload = json.loads(data)
    except json.JSONDecodeError as e:
        raise MalformedUpstreamEvent(data) from e
    if not isinstance(payload, dict):
        raise MalformedUpstreamEvent(data)

    event_type = payload.get("type")
    if event_type == "content":
        return RelayEvent.content_slice(str(payload.get("content") or ""))
    if event_type == "agents":
        return RelayEvent.agents_active(payload.get("agents") or [])
    if event_type == "meta":
        return RelayEvent.meta(payload.get("task_id"), payload.get("agents_used"), payload.get("tokens_used"))
    if event_type == "error":
        return RelayEvent.failure(str(payload.get("error") or "Stream error"))
    return None
