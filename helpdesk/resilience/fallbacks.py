"""
Deterministic fallbacks for every external dependency.

Each dependency degrades to a fixed behaviour when its breaker is open or
a call fails:

- classifier   -> static fallback intent (the dialog answers with a canned reply)
- knowledge    -> no snippets
- tickets      -> request parked in the outbox and acknowledged as queued
- human_queue  -> undelivered acknowledgment; the session stays HandoffPending
- sentiment    -> no score
- enrichment   -> SlotResolutionTimeout; the dialog asks the user to rephrase
"""

import logging
import time
from collections import deque
from typing import Any, Callable, Optional

from helpdesk.config import AppConfig
from helpdesk.errors import SlotResolutionTimeout
from helpdesk.resilience.registry import BreakerRegistry
from helpdesk.schemas.connector_schema import (
    HandoffAck,
    IntentResult,
    KnowledgeSnippet,
    TicketReceipt,
    TicketRequest,
)

logger = logging.getLogger(__name__)

CLASSIFIER = "classifier"
KNOWLEDGE = "knowledge"
TICKETS = "tickets"
HUMAN_QUEUE = "human_queue"
SENTIMENT = "sentiment"
ENRICHMENT = "enrichment"


def classifier_fallback(*args: Any, **kwargs: Any) -> IntentResult:
    return IntentResult.fallback()


def knowledge_fallback(*args: Any, **kwargs: Any) -> list[KnowledgeSnippet]:
    return []


def human_queue_fallback(*args: Any, **kwargs: Any) -> HandoffAck:
    return HandoffAck(delivered=False, queued_for_retry=True)


def sentiment_fallback(*args: Any, **kwargs: Any) -> Optional[float]:
    return None


def enrichment_fallback(slot_name: str, *args: Any, **kwargs: Any) -> str:
    raise SlotResolutionTimeout(slot_name)


class TicketOutbox:
    """Parks ticket requests while the ticket backend is degraded."""

    def __init__(self) -> None:
        self._pending: deque[TicketRequest] = deque()

    def __call__(self, request: TicketRequest, *args: Any, **kwargs: Any) -> TicketReceipt:
        self._pending.append(request)
        logger.warning("Ticket '%s' queued for retry (%d pending)", request.title, len(self._pending))
        return TicketReceipt(queued_for_retry=True)

    @property
    def pending(self) -> list[TicketRequest]:
        return list(self._pending)

    async def flush(self, registry: BreakerRegistry, connector: Any) -> list[TicketReceipt]:
        """Replay parked requests; ones that fail again are re-parked by the fallback."""
        batch = list(self._pending)
        self._pending.clear()
        receipts = []
        for request in batch:
            receipts.append(await registry.call(TICKETS, connector.create_ticket, request))
        created = sum(1 for r in receipts if r.ticket_id)
        logger.info("Ticket outbox flushed: %d created, %d re-queued", created, len(batch) - created)
        return receipts


def build_registry(
    config: AppConfig,
    outbox: Optional[TicketOutbox] = None,
    clock: Callable[[], float] = time.monotonic,
) -> BreakerRegistry:
    """Create a registry with every dependency and its fallback registered."""
    registry = BreakerRegistry(clock=clock)
    registry.register(config.classifier, classifier_fallback)
    registry.register(config.knowledge, knowledge_fallback)
    registry.register(config.tickets, outbox if outbox is not None else TicketOutbox())
    registry.register(config.human_queue, human_queue_fallback)
    registry.register(config.sentiment, sentiment_fallback)
    registry.register(config.enrichment, enrichment_fallback)
    return registry
