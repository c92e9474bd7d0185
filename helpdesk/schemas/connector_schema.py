"""Request and response payloads for the external collaborator contracts."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from helpdesk.schemas.envelope_schema import MessageEnvelope
from helpdesk.schemas.session_schema import HandoffReason
from helpdesk.utils import utcnow

FALLBACK_INTENT = "__fallback__"


class IntentResult(BaseModel):
    """Classifier output for one utterance; lives for a single turn."""

    intent_name: str
    confidence: float = Field(ge=0.0, le=1.0)
    entities: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def fallback(cls) -> "IntentResult":
        return cls(intent_name=FALLBACK_INTENT, confidence=0.0)

    @property
    def is_fallback(self) -> bool:
        return self.intent_name == FALLBACK_INTENT


class KnowledgeSnippet(BaseModel):
    snippet: str
    source_id: str
    relevance_score: float = 0.0


class TicketPriority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"


class TicketRequest(BaseModel):
    title: str
    description: str
    requester_id: str
    priority: TicketPriority = TicketPriority.NORMAL
    idempotency_key: Optional[str] = None


class TicketReceipt(BaseModel):
    """Either a created ticket or an acknowledgment that it was queued for retry."""

    ticket_id: Optional[str] = None
    queued_for_retry: bool = False


class HandoffRequest(BaseModel):
    """Transfer of a conversation to the human-agent queue."""

    session_key: str
    reason: HandoffReason
    session_id: str = ""
    transcript_snapshot: tuple[MessageEnvelope, ...] = ()
    requested_at: datetime = Field(default_factory=utcnow)

    @property
    def idempotency_key(self) -> str:
        return f"{self.session_key}:{self.session_id}:{self.reason.value}"


class HandoffAck(BaseModel):
    delivered: bool
    queue_position: Optional[int] = None
    queued_for_retry: bool = False
