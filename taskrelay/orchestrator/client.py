"""Orchestrator client -- typed wrapper around the remote task API.

Endpoints used:
  POST /task/execute        - Submit an instruction
  GET  /task/{id}/status    - Current task status (may omit the result)
  GET  /task/{id}/result    - Full task result
  GET  /health              - Orchestrator health
  GET  /agents              - Names of available agents

Every failure (transport, timeout, non-2xx, unparseable body) surfaces as
OrchestratorUnavailable so callers only handle one condition.
"""

from __future__ import annotations

import logging
import time
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from taskrelay.config import Settings
from taskrelay.errors import OrchestratorUnavailable
from taskrelay.orchestrator.schemas import (
    AgentRoster,
    CallTiming,
    Health,
    TaskRequest,
    TaskStatus,
)

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

# Upstream bodies are embedded in error messages; keep them readable
_MAX_BODY_CHARS = 500


class OrchestratorClient:
    """Async client for the task orchestrator.

    Owns its httpx.AsyncClient unless one is injected (tests pass one
    built on httpx.MockTransport).
    """

    def __init__(self, settings: Settings, http: httpx.AsyncClient | None = None) -> None:
        self._owns_http = http is None
        if http is None:
            http = httpx.AsyncClient(
                base_url=settings.orchestrator_url,
                headers={"content-type": "application/json"},
                timeout=httpx.Timeout(
                    connect=settings.orchestrator_timeout_connect,
                    read=settings.orchestrator_timeout_read,
                    write=10.0,
                    pool=10.0,
                ),
                limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
            )
        self._http = http

    async def close(self) -> None:
        """Close the underlying httpx client if we created it."""
        if self._owns_http:
            await self._http.aclose()

    # ------------------------------------------------------------------
    # Task API
    # ------------------------------------------------------------------

    async def submit(self, instruction: str, context: dict[str, Any] | None = None) -> TaskStatus:
        """Submit an instruction. May complete synchronously."""
        body = TaskRequest(instruction=instruction, context=context)
        return await self._call(
            TaskStatus, "POST", "/task/execute", json=body.model_dump(exclude_none=True)
        )

    async def status(self, task_id: str) -> TaskStatus:
        return await self._call(TaskStatus, "GET", f"/task/{task_id}/status")

    async def result(self, task_id: str) -> TaskStatus:
        return await self._call(TaskStatus, "GET", f"/task/{task_id}/result")

    async def health(self) -> Health:
        return await self._call(Health, "GET", "/health")

    async def agents(self) -> AgentRoster:
        """Agent names. The endpoint returns a bare JSON list."""
        data, timing = await self._request("GET", "/agents")
        if isinstance(data, dict):
            data = data.get("agents")
        return self._parse(AgentRoster, {"agents": data}, timing, "/agents")

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _call(self, model: type[ModelT], method: str, path: str, **kwargs: Any) -> ModelT:
        data, timing = await self._request(method, path, **kwargs)
        if not isinstance(data, dict):
            raise OrchestratorUnavailable(
                f"Orchestrator returned unexpected payload for {path}",
                status_code=200,
                body=str(data)[:_MAX_BODY_CHARS],
            )
        return self._parse(model, data, timing, path)

    @staticmethod
    def _parse(model: type[ModelT], data: dict[str, Any], timing: CallTiming, path: str) -> ModelT:
        try:
            return model.model_validate({**data, "timing": timing})
        except ValidationError as e:
            raise OrchestratorUnavailable(
                f"Orchestrator returned invalid payload for {path}: {e.error_count()} error(s)",
                status_code=200,
                body=str(data)[:_MAX_BODY_CHARS],
            ) from e

    async def _request(self, method: str, path: str, **kwargs: Any) -> tuple[Any, CallTiming]:
        """Perform one HTTP call, returning decoded JSON and its timing."""
        start = time.monotonic()
        try:
            response = await self._http.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            raise OrchestratorUnavailable(f"Orchestrator request timed out: {method} {path}") from e
        except httpx.HTTPError as e:
            raise OrchestratorUnavailable(f"Orchestrator unreachable: {e}") from e

        duration_ms = (time.monotonic() - start) * 1000
        logger.debug("%s %s -> %d in %.1fms", method, path, response.status_code, duration_ms)

        if not response.is_success:
            body = response.text[:_MAX_BODY_CHARS] or "Unknown error"
            raise OrchestratorUnavailable(
                f"Orchestrator error {response.status_code}: {body}",
                status_code=response.status_code,
                body=body,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise OrchestratorUnavailable(
                f"Orchestrator returned non-JSON body for {path}",
                status_code=response.status_code,
                body=response.text[:_MAX_BODY_CHARS],
            ) from e
        return data, CallTiming(duration_ms=duration_ms)
