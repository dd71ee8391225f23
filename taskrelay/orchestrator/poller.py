"""Task poller -- drives an asynchronous orchestrator task to completion.

Polling is strictly sequential: one status call in flight per task. The
progress callback fires on every observation, changed or not, so progress
UIs can re-render.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable

from taskrelay.cancel import CancelToken
from taskrelay.errors import TaskFailed, TaskTimedOut
from taskrelay.orchestrator.client import OrchestratorClient
from taskrelay.orchestrator.schemas import TaskStatus

logger = logging.getLogger(__name__)

# Callback type: sync or async function taking a TaskStatus
ProgressCallback = Callable[[TaskStatus], Awaitable[None] | None]


class TaskPoller:
    """Polls task status until completed, failed, timed out or cancelled."""

    def __init__(
        self,
        client: OrchestratorClient,
        poll_interval: float = 1.0,
        timeout: float = 300.0,
    ) -> None:
        self._client = client
        self.poll_interval = poll_interval
        self.timeout = timeout

    async def poll_until_complete(
        self,
        task_id: str,
        on_update: ProgressCallback | None = None,
        poll_interval: float | None = None,
        timeout: float | None = None,
        cancel: CancelToken | None = None,
    ) -> TaskStatus:
        """Poll `task_id` and return its full result once completed.

        Raises:
            TaskFailed: upstream reported failure, or the fetched result is
                not a completed payload with a result.
            TaskTimedOut: `timeout` seconds elapsed without completion.
            Cancelled: `cancel` fired; no further network call is made.
            OrchestratorUnavailable: a status or result call failed.
        """
        interval = self.poll_interval if poll_interval is None else poll_interval
        limit = self.timeout if timeout is None else timeout
        cancel = cancel or CancelToken()

        loop = asyncio.get_running_loop()
        deadline = loop.time() + limit
        polls = 0

        while loop.time() < deadline:
            cancel.raise_if_cancelled()
            status = await cancel.guard(self._client.status(task_id))
            polls += 1

            if on_update is not None:
                outcome = on_update(status)
                if inspect.isawaitable(outcome):
                    await outcome

            if status.status == "completed":
                # Status payloads may omit the result; fetch it explicitly
                logger.debug("Task %s completed after %d polls", task_id, polls)
                final = await cancel.guard(self._client.result(task_id))
                if final.status == "failed":
                    raise TaskFailed(task_id, final.error or "Task failed")
                if final.status != "completed" or final.result is None:
                    raise TaskFailed(task_id, f"Task result unavailable (status={final.status})")
                return final

            if status.status == "failed":
                raise TaskFailed(task_id, status.error or "Task failed")

            remaining = deadline - loop.time()
            if remaining <= 0:
                break
            await cancel.sleep(min(interval, remaining))

        logger.warning("Task %s timed out after %d polls (%.1fs)", task_id, polls, limit)
        raise TaskTimedOut(task_id, limit)
