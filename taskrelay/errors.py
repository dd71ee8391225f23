"""Error taxonomy for the relay.

Every error is scoped to a single turn. AdmissionDenied is raised before
anything is persisted; the rest happen after the user message is stored and
resolve to an assistant fallback message, except Cancelled.
"""

from __future__ import annotations


class RelayError(Exception):
    """Base class for relay errors."""


class AdmissionDenied(RelayError):
    """Rate limit rejected the turn."""

    def __init__(self, user_id: str, retry_after: float) -> None:
        self.user_id = user_id
        self.retry_after = retry_after
        super().__init__(f"Rate limit exceeded for {user_id}, retry in {retry_after:.0f}s")


class OrchestratorUnavailable(RelayError):
    """Transport failure or non-2xx response from the orchestrator."""

    def __init__(self, message: str, status_code: int | None = None, body: str = "") -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(message)


class TaskFailed(RelayError):
    """The orchestrator reported the task as failed."""

    def __init__(self, task_id: str | None, error: str) -> None:
        self.task_id = task_id
        self.error = error
        super().__init__(error)


class TaskTimedOut(RelayError):
    """Polling deadline elapsed before the task completed."""

    def __init__(self, task_id: str, timeout: float) -> None:
        self.task_id = task_id
        self.timeout = timeout
        super().__init__(f"Task {task_id} timed out after {timeout:g}s")


class Cancelled(RelayError):
    """The caller aborted the turn."""

    def __init__(self, message: str = "Cancelled") -> None:
        super().__init__(message)


class MalformedUpstreamEvent(RelayError):
    """A stream frame whose payload is not the expected JSON shape."""

    def __init__(self, raw: str) -> None:
        self.raw = raw
        super().__init__(f"Malformed stream event: {raw[:200]}")
