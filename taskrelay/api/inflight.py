"""In-flight turn registry: at most one active turn per conversation.

Sessions do not serialize turns themselves. The transport registers each
session here and a new turn cancels whatever was still running on the same
conversation.
"""

from __future__ import annotations

import logging

from taskrelay.relay.session import RelaySession

logger = logging.getLogger(__name__)


class InflightTurns:
    def __init__(self) -> None:
        self._active: dict[str, RelaySession] = {}

    def supersede(self, conversation_id: str) -> bool:
        """Cancel the active turn on `conversation_id`, if any."""
        session = self._active.pop(conversation_id, None)
        if session is None:
            return False
        session.cancel()
        logger.info("Superseded in-flight turn on conversation %s", conversation_id)
        return True

    def track(self, session: RelaySession) -> None:
        self.supersede(session.conversation_id)
        self._active[session.conversation_id] = session

    def release(self, session: RelaySession) -> None:
        """Forget `session` unless a newer turn already replaced it."""
        if self._active.get(session.conversation_id) is session:
            del self._active[session.conversation_id]

    def get(self, conversation_id: str) -> RelaySession | None:
        return self._active.get(conversation_id)

    def conversation_ids(self) -> list[str]:
        return list(self._active)

    def __len__(self) -> int:
        return len(self._active)
