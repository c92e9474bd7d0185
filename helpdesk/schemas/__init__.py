from helpdesk.schemas.connector_schema import (
    HandoffAck,
    HandoffRequest,
    IntentResult,
    KnowledgeSnippet,
    TicketPriority,
    TicketReceipt,
    TicketRequest,
)
from helpdesk.schemas.envelope_schema import Attachment, Channel, Direction, MessageEnvelope
from helpdesk.schemas.session_schema import DialogState, HandoffReason, Session

__all__ = [
    "Attachment",
    "Channel",
    "Direction",
    "MessageEnvelope",
    "DialogState",
    "HandoffReason",
    "Session",
    "IntentResult",
    "KnowledgeSnippet",
    "TicketPriority",
    "TicketRequest",
    "TicketReceipt",
    "HandoffRequest",
    "HandoffAck",
]
