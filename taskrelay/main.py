"""Task relay entry point.

Initializes all components and starts the server:
  Settings -> OrchestratorClient -> ConversationStore -> Relay -> App -> Uvicorn

Uses Starlette lifespan so the HTTP pool and database engine live on the
same event loop as uvicorn.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import uvicorn
from starlette.applications import Starlette

from taskrelay.api.inflight import InflightTurns
from taskrelay.config import Settings
from taskrelay.orchestrator.client import OrchestratorClient
from taskrelay.relay.service import Relay
from taskrelay.storage import open_store

logger = logging.getLogger(__name__)


async def create_components(settings: Settings) -> dict:
    """Initialize all components in dependency order.

    1. OrchestratorClient - pooled HTTP client
    2. ConversationStore - memory or postgres, per settings.store_backend
    3. Relay - rate limiter, poller and session factory
    """
    client = OrchestratorClient(settings)
    try:
        store = await open_store(settings)
    except Exception:
        await client.close()
        raise

    relay = Relay(client, store, settings)
    return {"client": client, "store": store, "relay": relay}


async def shutdown_components(components: dict, inflight: InflightTurns | None = None) -> None:
    """Graceful shutdown: cancel open turns, then release connections."""
    logger.info("Shutting down task relay...")

    if inflight is not None:
        for conversation_id in list(inflight.conversation_ids()):
            inflight.supersede(conversation_id)

    relay = components.get("relay")
    if relay:
        await relay.close()

    logger.info("Task relay shutdown complete.")


def build_app(settings: Settings) -> Starlette:
    """Build the Starlette app with component lifecycle bound to lifespan."""
    components: dict = {}
    inflight = InflightTurns()

    @asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        components.update(await create_components(settings))
        app.state.components = components

        logger.info(
            "Task relay started: orchestrator=%s store=%s",
            settings.orchestrator_url,
            settings.store_backend,
        )
        logger.info(
            "Relay: poll_interval=%.2fs poll_timeout=%.0fs chunk_size=%d rate_limit=%d/%.0fs",
            settings.poll_interval,
            settings.poll_timeout,
            settings.chunk_size,
            settings.rate_limit,
            settings.rate_window,
        )
        yield

        await shutdown_components(components, inflight)

    from taskrelay.api.rest import create_app

    return create_app(
        relay=_lazy_component(components, "relay"),
        settings=settings,
        lifespan=lifespan,
        inflight=inflight,
    )


class _LazyProxy:
    """Proxy that defers attribute access to a dict-backed component.

    Lets create_app() receive the relay before lifespan has built it.
    """

    def __init__(self, components: dict, key: str) -> None:
        object.__setattr__(self, "_components", components)
        object.__setattr__(self, "_key", key)

    def _resolve(self):
        components = object.__getattribute__(self, "_components")
        key = object.__getattribute__(self, "_key")
        obj = components.get(key)
        if obj is None:
            raise RuntimeError(f"Component '{key}' not yet initialized (lifespan not started)")
        return obj

    def __getattr__(self, name):
        return getattr(self._resolve(), name)


def _lazy_component(components: dict, key: str) -> _LazyProxy:
    return _LazyProxy(components, key)


def main() -> None:
    """Entry point: parse settings, build app, run server."""
    settings = Settings()

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    app = build_app(settings)
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level)


if __name__ == "__main__":
    main()
