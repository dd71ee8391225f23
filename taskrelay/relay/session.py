"""Relay session -- one chat turn from submission to a closed event stream.

States:
  ADMITTED -> SUBMITTED -> {IMMEDIATE | POLLING} -> CHUNKING -> PERSISTED -> CLOSED
  ERRORED is reachable from any non-terminal state and always ends in CLOSED.

Both completion paths funnel through the same chunk/persist/close steps, so
exactly one assistant message is written per turn (none when cancelled).

A producer task runs the state machine and writes events into a bounded
queue; stream() drains it. A slow consumer suspends the producer instead of
letting events pile up.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncGenerator
from enum import Enum
from typing import Any

from taskrelay.cancel import CancelToken
from taskrelay.config import Settings
from taskrelay.errors import Cancelled, TaskFailed
from taskrelay.orchestrator.client import OrchestratorClient
from taskrelay.orchestrator.poller import TaskPoller
from taskrelay.orchestrator.schemas import TaskStatus
from taskrelay.relay.events import RelayEvent, chunk_text
from taskrelay.storage.base import ConversationStore
from taskrelay.storage.schemas import Message

logger = logging.getLogger(__name__)

FALLBACK_MESSAGE = (
    "I'm having trouble connecting to my data sources right now. "
    "Please try again in a moment."
)
NO_RESPONSE_MESSAGE = "No response received."


class RelayState(str, Enum):
    ADMITTED = "admitted"
    SUBMITTED = "submitted"
    IMMEDIATE = "immediate"
    POLLING = "polling"
    CHUNKING = "chunking"
    PERSISTED = "persisted"
    ERRORED = "errored"
    CLOSED = "closed"


class RelaySession:
    """Drives a single admitted turn. Created by Relay.start_turn()."""

    def __init__(
        self,
        conversation_id: str,
        user_message: Message,
        history: list[Message],
        client: OrchestratorClient,
        poller: TaskPoller,
        store: ConversationStore,
        settings: Settings,
        cancel: CancelToken | None = None,
    ) -> None:
        self.conversation_id = conversation_id
        self.user_message = user_message
        self.history = history
        self.cancel_token = cancel or CancelToken()

        self.state = RelayState.ADMITTED
        self.states: list[RelayState] = [RelayState.ADMITTED]
        self.task_id: str | None = None
        self.answer: Message | None = None
        self.error: Exception | None = None
        self.cancelled = False

        self._client = client
        self._poller = poller
        self._store = store
        self._settings = settings
        self._channel: asyncio.Queue[RelayEvent] = asyncio.Queue(maxsize=settings.stream_buffer)
        self._forwarded_agents: list[str] | None = None
        self._streamed = False
        self._started = time.monotonic()

    def cancel(self) -> None:
        """Abort the turn. Nothing further is persisted."""
        self.cancel_token.cancel()

    # ------------------------------------------------------------------
    # Consumer side
    # ------------------------------------------------------------------

    async def stream(self) -> AsyncGenerator[RelayEvent, None]:
        """Run the turn and yield its events, ending with the done marker.

        Closing the generator early (client disconnect) cancels the turn.
        """
        if self._streamed:
            raise RuntimeError("RelaySession can only be streamed once")
        self._streamed = True

        producer = asyncio.create_task(self._produce(), name=f"relay-{self.conversation_id}")
        try:
            while True:
                event = await self._next_event(producer)
                if event is None:
                    # Producer exited; flush what it queued before leaving
                    while not self._channel.empty():
                        yield self._channel.get_nowait()
                    producer.result()
                    return
                yield event
                if event.type == "done":
                    break
            await producer
        finally:
            if not producer.done():
                producer.cancel()
                try:
                    await producer
                except asyncio.CancelledError:
                    pass

    async def _next_event(self, producer: asyncio.Task) -> RelayEvent | None:
        getter = asyncio.ensure_future(self._channel.get())
        try:
            await asyncio.wait({getter, producer}, return_when=asyncio.FIRST_COMPLETED)
        except BaseException:
            getter.cancel()
            raise
        if getter.done():
            return getter.result()
        # A pending get never consumed an item; anything queued stays put
        getter.cancel()
        return None

    # ------------------------------------------------------------------
    # Producer side
    # ------------------------------------------------------------------

    async def _produce(self) -> None:
        try:
            try:
                final = await self._resolve()
                await self._deliver(final)
            except Cancelled:
                self._on_cancelled()
            except Exception as e:
                await self._on_error(e)
        except asyncio.CancelledError:
            # Consumer went away mid-turn; treated like a caller abort
            self._on_cancelled()
            raise

        self._transition(RelayState.CLOSED)
        await self._channel.put(RelayEvent.done())
        logger.info(
            "Turn closed: conversation=%s task=%s outcome=%s (%.0fms)",
            self.conversation_id,
            self.task_id,
            self.outcome,
            (time.monotonic() - self._started) * 1000,
        )

    async def _resolve(self) -> TaskStatus:
        """Submit the instruction and obtain the final task result."""
        window = self.history[-self._settings.context_turns :]
        context: dict[str, Any] = {
            "conversation_history": [{"role": m.role, "content": m.content} for m in window],
        }

        self._transition(RelayState.SUBMITTED)
        submitted = await self.cancel_token.guard(
            self._client.submit(self.user_message.content, context)
        )
        self.task_id = submitted.task_id

        if submitted.status == "completed" and submitted.result is not None:
            self._transition(RelayState.IMMEDIATE)
            return submitted
        if submitted.status == "failed":
            raise TaskFailed(submitted.task_id, submitted.error or "Task failed")
        if not submitted.task_id:
            raise TaskFailed(None, "Orchestrator returned no task id")

        self._transition(RelayState.POLLING)
        final = await self._poller.poll_until_complete(
            submitted.task_id,
            self._on_progress,
            poll_interval=self._settings.poll_interval,
            timeout=self._settings.poll_timeout,
            cancel=self.cancel_token,
        )
        if final.task_id:
            self.task_id = final.task_id
        return final

    async def _on_progress(self, status: TaskStatus) -> None:
        await self._forward_agents(status.agents_used)

    async def _forward_agents(self, agents: list[str] | None) -> None:
        """Emit an agents event when the active agent set changes."""
        if not agents or agents == self._forwarded_agents:
            return
        self._forwarded_agents = list(agents)
        await self._send(RelayEvent.agents_active(agents))

    async def _deliver(self, final: TaskStatus) -> None:
        """Chunk the result into content events, then persist the answer."""
        await self._forward_agents(final.agents_used)

        self._transition(RelayState.CHUNKING)
        emitted: list[str] = []
        for piece in chunk_text(final.result or "", self._settings.chunk_size):
            await self._send(RelayEvent.content_slice(piece))
            emitted.append(piece)
            await self.cancel_token.sleep(self._settings.chunk_delay)

        await self._send(RelayEvent.meta(self.task_id, final.agents_used, final.tokens_used))

        await self._persist_answer(
            "".join(emitted) or NO_RESPONSE_MESSAGE,
            task_id=self.task_id,
            agents_used=final.agents_used,
            tokens_used=final.tokens_used,
        )
        self._transition(RelayState.PERSISTED)

    async def _on_error(self, exc: Exception) -> None:
        self._transition(RelayState.ERRORED)
        self.error = exc
        logger.error("Relay turn failed (conversation=%s task=%s): %s", self.conversation_id, self.task_id, exc)

        try:
            await self._send(RelayEvent.failure(str(exc) or exc.__class__.__name__))
        except Cancelled:
            self._on_cancelled()
            return

        if self.answer is None:
            try:
                await self._persist_answer(FALLBACK_MESSAGE, task_id=self.task_id)
            except Exception:
                logger.exception("Failed to persist fallback answer for %s", self.conversation_id)

    def _on_cancelled(self) -> None:
        self.cancelled = True
        logger.info("Relay turn cancelled (conversation=%s task=%s)", self.conversation_id, self.task_id)

    async def _persist_answer(self, content: str, **meta: Any) -> None:
        if self.answer is not None:
            raise RuntimeError("Assistant answer already persisted for this turn")
        self.answer = await self._store.append_message(self.conversation_id, "assistant", content, **meta)

    async def _send(self, event: RelayEvent) -> None:
        await self.cancel_token.guard(self._channel.put(event))

    def _transition(self, state: RelayState) -> None:
        logger.debug("Relay %s: %s -> %s", self.conversation_id, self.state.value, state.value)
        self.state = state
        self.states.append(state)

    @property
    def outcome(self) -> str:
        if self.cancelled:
            return "cancelled"
        if self.error is not None:
            return "errored"
        if self.answer is not None:
            return "answered"
        return "pending"
