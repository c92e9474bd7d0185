"""Per-conversation session state owned by the session store."""

import uuid
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from helpdesk.schemas.envelope_schema import Channel, MessageEnvelope


class DialogState(str, Enum):
    """All possible states in a conversation lifecycle."""
    IDLE = "idle"
    AWAITING_INTENT = "awaiting_intent"
    RESOLVING = "resolving"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    RESPONDING = "responding"
    HANDOFF_PENDING = "handoff_pending"
    CLOSED = "closed"
    EXPIRED = "expired"


TERMINAL_STATES = frozenset({DialogState.CLOSED, DialogState.EXPIRED})


class HandoffReason(str, Enum):
    EXPLICIT = "explicit"
    LOW_CONFIDENCE = "lowConfidence"
    NEGATIVE_SENTIMENT = "negativeSentiment"
    REPEATED_NO_MATCH = "repeatedNoMatch"
    SLOT_RETRIES_EXCEEDED = "slotRetriesExceeded"


class Session(BaseModel):
    """
    Conversational state for one ``session_key``.

    Only the dialog manager mutates a session, and only inside a router
    worker, so at most one mutation per key is ever in flight. ``version``
    is bumped by the store on every successful write. ``session_id`` tells
    apart successive sessions that reuse the same key.
    """

    session_key: str
    channel: Channel
    session_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    user_id: str = ""
    state: DialogState = DialogState.IDLE
    context: dict[str, Any] = Field(default_factory=dict)
    transcript: list[MessageEnvelope] = Field(default_factory=list)
    consecutive_no_match_count: int = 0
    last_sentiment_score: Optional[float] = None
    pending_intent: Optional[str] = None
    pending_slot: Optional[str] = None
    slot_retries: int = 0
    confirmation_attempts: int = 0
    handoff_reason: Optional[HandoffReason] = None
    created_at: datetime
    last_activity_at: datetime
    expires_at: datetime
    version: int = 0

    @classmethod
    def start(
        cls,
        session_key: str,
        channel: Channel,
        user_id: str,
        now: datetime,
        ttl_sec: float,
    ) -> "Session":
        return cls(
            session_key=session_key,
            channel=channel,
            user_id=user_id,
            created_at=now,
            last_activity_at=now,
            expires_at=now + timedelta(seconds=ttl_sec),
        )

    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now

    def touch(self, now: datetime, ttl_sec: float) -> None:
        """Record activity and push the inactivity deadline forward."""
        self.last_activity_at = now
        self.expires_at = now + timedelta(seconds=ttl_sec)

    def append_to_transcript(self, envelope: MessageEnvelope, retention: int) -> None:
        """Append an envelope, keeping only the newest ``retention`` entries."""
        self.transcript.append(envelope)
        if len(self.transcript) > retention:
            del self.transcript[: len(self.transcript) - retention]

    def clear_pending(self) -> None:
        self.pending_intent = None
        self.pending_slot = None
        self.slot_retries = 0
