"""Shared fixtures: fast settings, an in-memory store and a scripted orchestrator."""

from __future__ import annotations

import pytest
import pytest_asyncio

from taskrelay.config import Settings
from taskrelay.orchestrator.schemas import AgentRoster, Health, TaskStatus
from taskrelay.relay.rate_limit import RateLimiter
from taskrelay.relay.service import Relay
from taskrelay.storage.memory import InMemoryConversationStore

# ---------------------------------------------------------------------------
# Scripted orchestrator
# ---------------------------------------------------------------------------


class ScriptedOrchestrator:
    """Stands in for OrchestratorClient, replaying canned responses.

    `statuses` is consumed one per status() call; the last entry repeats
    once the script runs out. Any entry may be an exception to raise.
    """

    def __init__(
        self,
        submit: TaskStatus | Exception | None = None,
        statuses: list[TaskStatus | Exception] | None = None,
        result: TaskStatus | Exception | None = None,
    ) -> None:
        self.submit_response = submit or TaskStatus(task_id="t1", status="pending")
        self.statuses = list(statuses or [])
        self.result_response = result
        self.calls: list[tuple] = []
        self.closed = False

    def count(self, name: str) -> int:
        return sum(1 for call in self.calls if call[0] == name)

    async def submit(self, instruction, context=None):
        self.calls.append(("submit", instruction, context))
        return _replay(self.submit_response)

    async def status(self, task_id):
        self.calls.append(("status", task_id))
        item = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
        return _replay(item)

    async def result(self, task_id):
        self.calls.append(("result", task_id))
        return _replay(self.result_response)

    async def health(self):
        return Health(status="healthy", uptime=12.5, agents_available=3)

    async def agents(self):
        return AgentRoster(agents=["erp-lookup", "scheduler"])

    async def close(self):
        self.closed = True


def _replay(item):
    if isinstance(item, Exception):
        raise item
    return item


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


def make_settings(**overrides) -> Settings:
    """Settings tuned for tests: no chunk delay, fast polling, no .env."""
    values = {
        "chunk_delay": 0.0,
        "poll_interval": 0.01,
        "poll_timeout": 2.0,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def orchestrator():
    return ScriptedOrchestrator(
        submit=TaskStatus(task_id="t1", status="completed", result="OK", agents_used=["erp-lookup"], tokens_used=5),
    )


@pytest_asyncio.fixture
async def store():
    s = InMemoryConversationStore()
    yield s
    await s.close()


@pytest.fixture
def relay(orchestrator, store, settings):
    return Relay(orchestrator, store, settings, limiter=RateLimiter(settings.rate_limit, settings.rate_window))


@pytest.fixture
def settings_factory():
    return make_settings
