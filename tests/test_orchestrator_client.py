"""Tests for OrchestratorClient against httpx.MockTransport."""

import json

import httpx
import pytest

from taskrelay.errors import OrchestratorUnavailable
from taskrelay.orchestrator.client import OrchestratorClient


def _client(handler, settings) -> OrchestratorClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://orchestrator.test")
    return OrchestratorClient(settings, http=http)


# ---------------------------------------------------------------------------
# Task API
# ---------------------------------------------------------------------------


class TestSubmit:
    @pytest.mark.asyncio
    async def test_posts_instruction_and_context(self, settings):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"task_id": "t1", "status": "pending"})

        client = _client(handler, settings)
        status = await client.submit("What's the status of job 12345?", {"conversation_history": []})

        assert status.task_id == "t1"
        assert status.status == "pending"
        assert status.timing is not None
        assert seen[0].method == "POST"
        assert seen[0].url.path == "/task/execute"
        assert json.loads(seen[0].content) == {
            "instruction": "What's the status of job 12345?",
            "context": {"conversation_history": []},
        }

    @pytest.mark.asyncio
    async def test_omits_missing_context(self, settings):
        bodies = []

        def handler(request):
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json={"task_id": "t1", "status": "pending"})

        await _client(handler, settings).submit("hi")
        assert bodies == [{"instruction": "hi"}]

    @pytest.mark.asyncio
    async def test_immediate_completion(self, settings):
        def handler(request):
            return httpx.Response(
                200,
                json={
                    "task_id": "t1",
                    "status": "completed",
                    "result": "Job 12345 is in production, 60% complete.",
                    "agents_used": ["erp-lookup"],
                    "tokens_used": 42,
                },
            )

        status = await _client(handler, settings).submit("job 12345?")
        assert status.is_terminal
        assert status.result.startswith("Job 12345")
        assert status.agents_used == ["erp-lookup"]
        assert status.tokens_used == 42


class TestStatusAndResult:
    @pytest.mark.asyncio
    async def test_paths(self, settings):
        paths = []

        def handler(request):
            paths.append(request.url.path)
            return httpx.Response(200, json={"task_id": "t1", "status": "running"})

        client = _client(handler, settings)
        await client.status("t1")
        await client.result("t1")
        assert paths == ["/task/t1/status", "/task/t1/result"]


class TestHealthAndAgents:
    @pytest.mark.asyncio
    async def test_health(self, settings):
        def handler(request):
            return httpx.Response(200, json={"status": "degraded", "uptime": 99.5, "agents_available": 2})

        health = await _client(handler, settings).health()
        assert health.status == "degraded"
        assert health.agents_available == 2

    @pytest.mark.asyncio
    async def test_agents_bare_list(self, settings):
        def handler(request):
            return httpx.Response(200, json=["erp-lookup", "scheduler"])

        roster = await _client(handler, settings).agents()
        assert roster.agents == ["erp-lookup", "scheduler"]

    @pytest.mark.asyncio
    async def test_agents_wrapped(self, settings):
        def handler(request):
            return httpx.Response(200, json={"agents": ["erp-lookup"]})

        assert (await _client(handler, settings).agents()).agents == ["erp-lookup"]


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------


class TestFailures:
    @pytest.mark.asyncio
    async def test_non_2xx_carries_status_and_body(self, settings):
        def handler(request):
            return httpx.Response(503, text="maintenance")

        with pytest.raises(OrchestratorUnavailable) as exc_info:
            await _client(handler, settings).status("t1")

        assert exc_info.value.status_code == 503
        assert exc_info.value.body == "maintenance"
        assert str(exc_info.value) == "Orchestrator error 503: maintenance"

    @pytest.mark.asyncio
    async def test_empty_error_body(self, settings):
        def handler(request):
            return httpx.Response(500)

        with pytest.raises(OrchestratorUnavailable, match="Unknown error"):
            await _client(handler, settings).health()

    @pytest.mark.asyncio
    async def test_connect_error(self, settings):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(OrchestratorUnavailable, match="unreachable"):
            await _client(handler, settings).submit("hi")

    @pytest.mark.asyncio
    async def test_timeout(self, settings):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(OrchestratorUnavailable, match="timed out"):
            await _client(handler, settings).status("t1")

    @pytest.mark.asyncio
    async def test_non_json_body(self, settings):
        def handler(request):
            return httpx.Response(200, text="<html>proxy</html>")

        with pytest.raises(OrchestratorUnavailable, match="non-JSON"):
            await _client(handler, settings).status("t1")

    @pytest.mark.asyncio
    async def test_invalid_payload_shape(self, settings):
        def handler(request):
            return httpx.Response(200, json={"task_id": "t1", "status": "exploded"})

        with pytest.raises(OrchestratorUnavailable, match="invalid payload"):
            await _client(handler, settings).status("t1")


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_injected_client_not_closed(self, settings):
        http = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200, json={})))
        client = OrchestratorClient(settings, http=http)
        await client.close()
        assert not http.is_closed
        await http.aclose()

    @pytest.mark.asyncio
    async def test_owned_client_closed(self, settings):
        client = OrchestratorClient(settings)
        await client.close()
        assert client._http.is_closed
