"""
Capability contracts for the external collaborators.

The orchestrator never assumes a vendor: any object with these async
methods can be plugged in. Every call is made through the breaker
registry, which enforces the caller's deadline.
"""

from typing import Any, Mapping, Optional, Protocol, runtime_checkable

from helpdesk.schemas.connector_schema import (
    HandoffAck,
    HandoffRequest,
    IntentResult,
    KnowledgeSnippet,
    TicketReceipt,
    TicketRequest,
)


@runtime_checkable
class IntentClassifier(Protocol):
    async def classify(self, text: str, prior_context: Mapping[str, Any]) -> IntentResult:
        ...


@runtime_checkable
class KnowledgeConnector(Protocol):
    async def search(self, query_text: str, top_k: int) -> list[KnowledgeSnippet]:
        ...


@runtime_checkable
class TicketConnector(Protocol):
    """A repeated ``idempotency_key`` must not open a second ticket."""

    async def create_ticket(self, request: TicketRequest) -> TicketReceipt:
        ...


@runtime_checkable
class HumanQueueConnector(Protocol):
    """Must be idempotent: the same session instance and reason yield one entry."""

    async def enqueue(self, request: HandoffRequest) -> HandoffAck:
        ...


@runtime_checkable
class SentimentAnalyzer(Protocol):
    async def score(self, text: str) -> Optional[float]:
        ...


@runtime_checkable
class EntityEnricher(Protocol):
    async def enrich(self, slot_name: str, text: str) -> str:
        ...
