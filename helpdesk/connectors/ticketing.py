"""
In-memory ticketing backend.

In production, this would integrate with an ITSM platform
(ServiceNow, Jira Service Management, Freshservice, ...).
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional, TypedDict

from helpdesk.schemas.connector_schema import TicketReceipt, TicketRequest

logger = logging.getLogger(__name__)


class TicketRecord(TypedDict):
    """Full ticket record stored in the system."""

    ticket_id: str
    title: str
    description: str
    requester_id: str
    priority: str
    status: str
    created_at: str


class InMemoryTicketSystem:
    """Creates tickets with ``INC-`` identifiers.

    A request carrying an ``idempotency_key`` that was already seen returns
    the ticket created the first time.
    """

    def __init__(self) -> None:
        self._tickets: dict[str, TicketRecord] = {}
        self._by_key: dict[str, str] = {}

    async def create_ticket(self, request: TicketRequest) -> TicketReceipt:
        missing = [
            name
            for name, value in [("title", request.title), ("requester_id", request.requester_id)]
            if not value
        ]
        if missing:
            raise ValueError(f"Missing required ticket fields: {', '.join(missing)}")

        if request.idempotency_key in self._by_key:
            ticket_id = self._by_key[request.idempotency_key]
            logger.debug("Ticket request %s already created %s", request.idempotency_key, ticket_id)
            return TicketReceipt(ticket_id=ticket_id)

        ticket_id = f"INC-{uuid.uuid4().hex[:6].upper()}"
        self._tickets[ticket_id] = TicketRecord(
            ticket_id=ticket_id,
            title=request.title,
            description=request.description,
            requester_id=request.requester_id,
            priority=request.priority.value,
            status="open",
            created_at=datetime.now(timezone.utc).isoformat(),
        )
        if request.idempotency_key:
            self._by_key[request.idempotency_key] = ticket_id
        logger.info("Ticket created: %s (%s)", ticket_id, request.title)
        return TicketReceipt(ticket_id=ticket_id)

    def get_ticket(self, ticket_id: str) -> Optional[TicketRecord]:
        return self._tickets.get(ticket_id)

    def list_tickets(self) -> list[TicketRecord]:
        return list(self._tickets.values())
