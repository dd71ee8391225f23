"""REST/SSE transport for the relay.

Endpoints:
  POST   /chat/stream             - Relay one chat turn as text/event-stream
  DELETE /chat/{conversation_id}  - Cancel the in-flight turn of a conversation
  GET    /health                  - Orchestrator health (proxied)
  GET    /agents                  - Orchestrator agent roster (proxied)
"""

from __future__ import annotations

import logging
from typing import Any

from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse, StreamingResponse
from starlette.routing import Route

from taskrelay.api.inflight import InflightTurns
from taskrelay.config import Settings
from taskrelay.errors import AdmissionDenied, OrchestratorUnavailable
from taskrelay.relay.events import RelayEvent, encode_sse
from taskrelay.relay.service import Relay
from taskrelay.storage.base import ConversationNotFound

logger = logging.getLogger(__name__)

RATE_LIMIT_NOTICE = "You've reached the message limit. Please wait a few minutes."


def create_app(
    relay: Relay,
    settings: Settings,
    lifespan: Any | None = None,
    inflight: InflightTurns | None = None,
) -> Starlette:
    """Create the Starlette ASGI app with all routes."""
    turns = inflight if inflight is not None else InflightTurns()

    async def chat_stream(request: Request) -> StreamingResponse | JSONResponse:
        """POST /chat/stream - SSE relay of one turn."""
        try:
            body = await request.json()
        except Exception:
            return JSONResponse({"error": "Invalid JSON body"}, status_code=400)
        if not isinstance(body, dict):
            return JSONResponse({"error": "Invalid JSON body"}, status_code=400)

        message = body.get("message")
        if not isinstance(message, str) or not message.strip():
            return JSONResponse({"error": "Missing required field: message"}, status_code=400)

        conversation_id = body.get("conversation_id")
        user_id = body.get("user_id") or settings.default_user_id

        try:
            session = await relay.start_turn(user_id, message, conversation_id)
        except AdmissionDenied as e:
            return JSONResponse(
                {
                    "error": "Rate limit exceeded",
                    "message": RATE_LIMIT_NOTICE,
                    "retry_after": round(e.retry_after),
                },
                status_code=429,
                headers={"Retry-After": str(round(e.retry_after))},
            )
        except ConversationNotFound as e:
            return JSONResponse({"error": str(e)}, status_code=404)
        except Exception as e:
            logger.error("Chat start error: %s", e)
            return JSONResponse({"error": str(e)}, status_code=500)

        turns.track(session)

        async def event_generator():
            try:
                async for event in session.stream():
                    yield encode_sse(event)
            except Exception as e:
                logger.error("Stream error: %s", e)
                yield encode_sse(RelayEvent.failure(str(e)))
                yield encode_sse(RelayEvent.done())
            finally:
                turns.release(session)

        return StreamingResponse(
            event_generator(),
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "X-Accel-Buffering": "no",
                "X-Conversation-Id": session.conversation_id,
            },
        )

    async def cancel_turn(request: Request) -> JSONResponse:
        """DELETE /chat/{conversation_id} - Cancel the in-flight turn."""
        conversation_id = request.path_params["conversation_id"]
        if turns.supersede(conversation_id):
            return JSONResponse({"status": "cancelled", "conversation_id": conversation_id})
        return JSONResponse({"status": "idle", "conversation_id": conversation_id}, status_code=404)

    async def health(request: Request) -> JSONResponse:
        """GET /health - Orchestrator health."""
        try:
            report = await relay.health()
            return JSONResponse({**report.model_dump(mode="json"), "active_turns": len(turns)})
        except OrchestratorUnavailable as e:
            return JSONResponse({"status": "down", "error": str(e)}, status_code=503)

    async def agents(request: Request) -> JSONResponse:
        """GET /agents - Agent roster."""
        try:
            roster = await relay.agents()
            return JSONResponse(roster.model_dump(mode="json"))
        except OrchestratorUnavailable as e:
            return JSONResponse({"error": str(e)}, status_code=503)

    routes = [
        Route("/chat/stream", chat_stream, methods=["POST"]),
        Route("/chat/{conversation_id}", cancel_turn, methods=["DELETE"]),
        Route("/health", health),
        Route("/agents", agents),
    ]

    kwargs: dict[str, Any] = {"routes": routes}
    if lifespan is not None:
        kwargs["lifespan"] = lifespan
    return Starlette(**kwargs)
