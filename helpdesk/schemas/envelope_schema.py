"""Canonical message envelope shared by every channel."""

import base64
import binascii
import uuid
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from helpdesk.utils import utcnow


class Channel(str, Enum):
    WEB = "web"
    CHAT_PLATFORM = "chat-platform"
    EMAIL = "email"
    API = "api"


class Direction(str, Enum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"


class Attachment(BaseModel):
    """Opaque binary payload carried alongside a message; never interpreted."""

    model_config = ConfigDict(frozen=True)

    name: str = "attachment"
    media_type: str = "application/octet-stream"
    data: bytes = b""

    @field_validator("data", mode="before")
    @classmethod
    def _decode_base64(cls, value: Any) -> Any:
        if isinstance(value, str):
            try:
                return base64.b64decode(value, validate=True)
            except (binascii.Error, ValueError) as exc:
                raise ValueError("attachment data must be base64") from exc
        return value

    @field_serializer("data", when_used="json")
    def _encode_base64(self, value: bytes) -> str:
        return base64.b64encode(value).decode("ascii")


def new_correlation_id() -> str:
    return uuid.uuid4().hex[:16]


class MessageEnvelope(BaseModel):
    """Immutable unit of inbound or outbound communication."""

    model_config = ConfigDict(frozen=True)

    channel: Channel
    session_key: str
    direction: Direction
    text: str = ""
    attachments: tuple[Attachment, ...] = ()
    user_id: str = ""
    timestamp: datetime = Field(default_factory=utcnow)
    correlation_id: str = Field(default_factory=new_correlation_id)
    metadata: dict[str, Any] = Field(default_factory=dict)

    def reply(self, text: str, **metadata: Any) -> "MessageEnvelope":
        """Build the outbound envelope answering this inbound one."""
        return MessageEnvelope(
            channel=self.channel,
            session_key=self.session_key,
            direction=Direction.OUTBOUND,
            text=text,
            user_id=self.user_id,
            correlation_id=self.correlation_id,
            metadata={**self.metadata, **metadata},
        )
