"""Pydantic DTOs for the orchestrator task API."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel

TaskState = Literal["pending", "running", "completed", "failed"]
HealthState = Literal["healthy", "degraded", "down"]


class CallTiming(BaseModel):
    """Wall-clock duration of one orchestrator call, attached by the client."""

    duration_ms: float


class TaskRequest(BaseModel):
    instruction: str
    context: dict | None = None


class TaskStatus(BaseModel):
    """Status (or full result) of one orchestrator task."""

    task_id: str | None = None
    status: TaskState
    result: str | None = None
    agents_used: list[str] | None = None
    tokens_used: int | None = None
    error: str | None = None
    timing: CallTiming | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in ("completed", "failed")


class Health(BaseModel):
    status: HealthState
    uptime: float = 0
    agents_available: int = 0
    timing: CallTiming | None = None


class AgentRoster(BaseModel):
    agents: list[str]
    timing: CallTiming | None = None
