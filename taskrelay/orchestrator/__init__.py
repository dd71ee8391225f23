"""Orchestrator module -- client and poller for the remote task API."""

from taskrelay.orchestrator.client import OrchestratorClient
from taskrelay.orchestrator.poller import ProgressCallback, TaskPoller
from taskrelay.orchestrator.schemas import (
    AgentRoster,
    CallTiming,
    Health,
    HealthState,
    TaskRequest,
    TaskState,
    TaskStatus,
)

__all__ = [
    "OrchestratorClient",
    "TaskPoller",
    "ProgressCallback",
    # Schemas
    "AgentRoster",
    "CallTiming",
    "Health",
    "HealthState",
    "TaskRequest",
    "TaskState",
    "TaskStatus",
]
