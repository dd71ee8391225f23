"""Relay module -- admission, per-turn sessions and the event stream."""

from taskrelay.relay.events import DONE_MARKER, RelayEvent, chunk_text, encode_sse, parse_sse_line
from taskrelay.relay.rate_limit import RateLimiter, RateWindow
from taskrelay.relay.service import Relay
from taskrelay.relay.session import (
    FALLBACK_MESSAGE,
    NO_RESPONSE_MESSAGE,
    RelaySession,
    RelayState,
)

__all__ = [
    "Relay",
    "RelaySession",
    "RelayState",
    "RateLimiter",
    "RateWindow",
    "FALLBACK_MESSAGE",
    "NO_RESPONSE_MESSAGE",
    # Events
    "DONE_MARKER",
    "RelayEvent",
    "chunk_text",
    "encode_sse",
    "parse_sse_line",
]
