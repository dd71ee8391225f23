"""Relay -- entry point for chat turns.

Owns the rate limiter, the conversation store and the orchestrator client,
and hands out one RelaySession per admitted turn.
"""

from __future__ import annotations

import logging

from taskrelay.cancel import CancelToken
from taskrelay.config import Settings
from taskrelay.orchestrator.client import OrchestratorClient
from taskrelay.orchestrator.poller import TaskPoller
from taskrelay.orchestrator.schemas import AgentRoster, Health
from taskrelay.relay.rate_limit import RateLimiter
from taskrelay.relay.session import RelaySession
from taskrelay.storage.base import ConversationNotFound, ConversationStore
from taskrelay.storage.schemas import conversation_title

logger = logging.getLogger(__name__)


class Relay:
    def __init__(
        self,
        client: OrchestratorClient,
        store: ConversationStore,
        settings: Settings,
        limiter: RateLimiter | None = None,
        poller: TaskPoller | None = None,
    ) -> None:
        self.client = client
        self.store = store
        self.settings = settings
        self.limiter = limiter or RateLimiter(settings.rate_limit, settings.rate_window)
        self.poller = poller or TaskPoller(client, settings.poll_interval, settings.poll_timeout)

    async def start_turn(
        self,
        user_id: str,
        message: str,
        conversation_id: str | None = None,
        cancel: CancelToken | None = None,
    ) -> RelaySession:
        """Admit a turn, persist the user message and return its session.

        Steps:
        1. Rate limit (AdmissionDenied, nothing written)
        2. Look up the conversation, or create one for a new thread
        3. Append the user message
        4. Snapshot the history the orchestrator will see as context

        Raises:
            AdmissionDenied: user is over the rate limit.
            ConversationNotFound: `conversation_id` does not exist.
        """
        self.limiter.admit(user_id)

        if conversation_id is None:
            conversation = await self.store.create_conversation(user_id, conversation_title(message))
            logger.info("Created conversation %s for %s", conversation.id, user_id)
        else:
            conversation = await self.store.get_conversation(conversation_id)
            if conversation is None:
                raise ConversationNotFound(conversation_id)

        user_message = await self.store.append_message(conversation.id, "user", message)
        history = await self.store.list_messages(conversation.id)

        return RelaySession(
            conversation_id=conversation.id,
            user_message=user_message,
            history=history,
            client=self.client,
            poller=self.poller,
            store=self.store,
            settings=self.settings,
            cancel=cancel,
        )

    async def health(self) -> Health:
        return await self.client.health()

    async def agents(self) -> AgentRoster:
        return await self.client.agents()

    async def close(self) -> None:
        await self.client.close()
        await self.store.close()
