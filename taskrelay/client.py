"""Streaming client for the relay /chat/stream endpoint.

Reads the event stream, reassembling content as it arrives. Data frames
that are not JSON are kept as literal content rather than dropped, so a
partial or garbled fragment never silently disappears from the transcript.

Usage:
    RELAY_API_URL=http://localhost:3000 python -m taskrelay.client "What's the status of job 12345?"

Environment:
    RELAY_API_URL          - Relay base URL (default: http://localhost:3000)
    RELAY_CONVERSATION_ID  - Continue an existing conversation (optional)
    RELAY_USER_ID          - User identity sent with the turn (optional)
"""

from __future__ import annotations

import asyncio
import logging
import os
import sys
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import httpx

from taskrelay.errors import AdmissionDenied, MalformedUpstreamEvent, RelayError
from taskrelay.relay.events import RelayEvent, parse_sse_line

logger = logging.getLogger(__name__)


@dataclass
class StreamedTurn:
    """Everything the client learned from one streamed turn."""

    conversation_id: str | None = None
    content: str = ""
    agents: list[str] = field(default_factory=list)
    task_id: str | None = None
    tokens_used: int | None = None
    error: str | None = None
    malformed_fragments: int = 0
    finished: bool = False  # termination marker seen


class StreamAccumulator:
    """Folds event-stream lines into a StreamedTurn."""

    def __init__(self, on_event: Callable[[RelayEvent], None] | None = None) -> None:
        self.turn = StreamedTurn()
        self._on_event = on_event

    def feed(self, line: str) -> bool:
        """Consume one line. Returns True once the termination marker arrives."""
        try:
            event = parse_sse_line(line)
        except MalformedUpstreamEvent as e:
            logger.warning("Keeping malformed stream fragment as content: %r", e.raw[:80])
            self.turn.malformed_fragments += 1
            event = RelayEvent.content_slice(e.raw)
        if event is None:
            return False

        if event.type == "content":
            self.turn.content += event.content
        elif event.type == "agents":
            self.turn.agents = list(event.agents)
        elif event.type == "meta":
            self.turn.task_id = event.task_id
            self.turn.tokens_used = event.tokens_used
            if event.agents:
                self.turn.agents = list(event.agents)
        elif event.type == "error":
            self.turn.error = event.error
        elif event.type == "done":
            self.turn.finished = True

        if self._on_event is not None:
            self._on_event(event)
        return self.turn.finished


class RelayStreamClient:
    """Sends chat turns to a relay and consumes the streamed reply."""

    def __init__(self, base_url: str = "http://localhost:3000", http: httpx.AsyncClient | None = None) -> None:
        self.base_url = base_url.rstrip("/")
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(timeout=httpx.Timeout(connect=10, read=330, write=10, pool=10))

    async def send(
        self,
        message: str,
        conversation_id: str | None = None,
        user_id: str | None = None,
        on_event: Callable[[RelayEvent], None] | None = None,
    ) -> StreamedTurn:
        """Relay one message and return the assembled turn.

        Raises:
            AdmissionDenied: the relay rate-limited this user (HTTP 429).
            RelayError: any other non-200 response.
        """
        payload: dict[str, Any] = {"message": message}
        if conversation_id:
            payload["conversation_id"] = conversation_id
        if user_id:
            payload["user_id"] = user_id

        accumulator = StreamAccumulator(on_event)
        async with self._http.stream("POST", f"{self.base_url}/chat/stream", json=payload) as response:
            if response.status_code == 429:
                await response.aread()
                retry_after = float(response.headers.get("retry-after", "0"))
                raise AdmissionDenied(user_id or "", retry_after)
            if response.status_code != 200:
                error_body = await response.aread()
                raise RelayError(f"Relay error {response.status_code}: {error_body.decode()[:200]}")

            accumulator.turn.conversation_id = response.headers.get("x-conversation-id")
            async for line in response.aiter_lines():
                if accumulator.feed(line):
                    break

        if not accumulator.turn.finished:
            logger.warning("Stream ended without termination marker")
        return accumulator.turn

    async def close(self) -> None:
        if self._owns_http:
            await self._http.aclose()


async def main() -> None:
    """Entry point."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    if len(sys.argv) < 2:
        print("Usage: taskrelay-chat <message>", file=sys.stderr)
        sys.exit(2)
    message = " ".join(sys.argv[1:])

    def show(event: RelayEvent) -> None:
        if event.type == "content":
            print(event.content, end="", flush=True)
        elif event.type == "agents":
            print(f"[agents: {', '.join(event.agents)}]", file=sys.stderr)

    client = RelayStreamClient(os.environ.get("RELAY_API_URL", "http://localhost:3000"))
    try:
        turn = await client.send(
            message,
            conversation_id=os.environ.get("RELAY_CONVERSATION_ID"),
            user_id=os.environ.get("RELAY_USER_ID"),
            on_event=show,
        )
    except AdmissionDenied:
        print("You've reached the message limit. Please wait a few minutes.", file=sys.stderr)
        sys.exit(1)
    except (RelayError, httpx.HTTPError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    finally:
        await client.close()

    print()
    if turn.error:
        print(f"Error: {turn.error}", file=sys.stderr)
    print(f"conversation={turn.conversation_id} task={turn.task_id} tokens={turn.tokens_used}", file=sys.stderr)


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
