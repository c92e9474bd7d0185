"""In-memory human-agent queue with idempotent enqueue."""

import logging

from helpdesk.schemas.connector_schema import HandoffAck, HandoffRequest

logger = logging.getLogger(__name__)


class InMemoryHumanQueue:
    """Holds one entry per session instance and handoff reason."""

    def __init__(self) -> None:
        self._entries: dict[str, HandoffRequest] = {}
        self._order: list[str] = []

    async def enqueue(self, request: HandoffRequest) -> HandoffAck:
        key = request.idempotency_key
        if key not in self._entries:
            self._order.append(key)
            logger.info("Handoff queued for %s (reason: %s)", request.session_key, request.reason.value)
        else:
            logger.debug("Handoff %s already queued; transcript refreshed", key)
        self._entries[key] = request
        return HandoffAck(delivered=True, queue_position=self._order.index(key) + 1)

    def entries(self) -> list[HandoffRequest]:
        return [self._entries[key] for key in self._order]

    def __len__(self) -> int:
        return len(self._order)
