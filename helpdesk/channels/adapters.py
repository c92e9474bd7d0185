"""
Channel adapters: translate channel payloads to and from envelope fields.

Each adapter only knows its own wire shape. ``parse`` returns the fields
the gateway needs to build an envelope; ``render`` turns an outbound
envelope into the payload the channel's delivery collaborator sends.

In production these payloads come from the web widget backend, the chat
platform's bot endpoint and the mailbox poller.
"""

import base64
import binascii
import json
import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Optional

from helpdesk.errors import MalformedInputError
from helpdesk.schemas.envelope_schema import Attachment, Channel, MessageEnvelope

logger = logging.getLogger(__name__)

CARD_ACTION_INVOKE = "adaptiveCard/action"
_QUOTE_HEADER = re.compile(r"^On .+ wrote:\s*$")


class ChannelAdapter(ABC):
    """Wire format of one channel."""

    channel: Channel

    @abstractmethod
    def parse(self, raw: dict[str, Any]) -> dict[str, Any]:
        """Return ``user_id``, ``text``, ``attachments`` and optional extras."""

    @abstractmethod
    def render(self, envelope: MessageEnvelope) -> dict[str, Any]:
        ...

    def render_error(self, text: str, envelope: Optional[MessageEnvelope] = None) -> dict[str, Any]:
        payload = {"type": "error", "text": text}
        if envelope is not None:
            payload["correlationId"] = envelope.correlation_id
        return payload

    def session_key(self, user_id: str) -> str:
        return f"{self.channel.value}:{user_id}"


def _require_str(raw: dict[str, Any], field: str, channel: Channel) -> str:
    value = raw.get(field)
    if not isinstance(value, str) or not value.strip():
        raise MalformedInputError(f"{channel.value} event is missing '{field}'")
    return value.strip()


def _optional_text(raw: dict[str, Any], field: str, channel: Channel) -> str:
    value = raw.get(field, "")
    if value is None:
        return ""
    if not isinstance(value, str):
        raise MalformedInputError(f"{channel.value} event field '{field}' must be text")
    return value


def _decode_attachments(items: Any, channel: Channel) -> tuple[Attachment, ...]:
    if items is None:
        return ()
    if not isinstance(items, list):
        raise MalformedInputError(f"{channel.value} attachments must be a list")
    attachments = []
    for item in items:
        if not isinstance(item, dict):
            raise MalformedInputError(f"{channel.value} attachment must be an object")
        try:
            data = base64.b64decode(item.get("data", ""), validate=True)
        except (binascii.Error, ValueError, TypeError) as exc:
            raise MalformedInputError(
                f"{channel.value} attachment '{item.get('name', '?')}' is not valid base64"
            ) from exc
        attachments.append(Attachment(
            name=item.get("name") or "attachment",
            media_type=item.get("contentType") or "application/octet-stream",
            data=data,
        ))
    return tuple(attachments)


def _encode_attachments(envelope: MessageEnvelope) -> list[dict[str, str]]:
    return [
        {
            "name": a.name,
            "contentType": a.media_type,
            "data": base64.b64encode(a.data).decode("ascii"),
        }
        for a in envelope.attachments
    ]


class WebWidgetAdapter(ChannelAdapter):
    """Website chat widget: ``{"visitorId", "text", "attachments"?}``."""

    channel = Channel.WEB

    def parse(self, raw: dict[str, Any]) -> dict[str, Any]:
        return {
            "user_id": _require_str(raw, "visitorId", self.channel),
            "text": _optional_text(raw, "text", self.channel),
            "attachments": _decode_attachments(raw.get("attachments"), self.channel),
        }

    def render(self, envelope: MessageEnvelope) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "type": "message",
            "visitorId": envelope.user_id,
            "text": envelope.text,
            "correlationId": envelope.correlation_id,
        }
        if envelope.attachments:
            payload["attachments"] = _encode_attachments(envelope)
        return payload


class ChatPlatformAdapter(ChannelAdapter):
    """
    Bot-Framework style activities.

    ``message`` activities carry ``text``; ``invoke`` activities named
    ``adaptiveCard/action`` carry the submitted card data in
    ``value.action.data`` (or ``value`` directly), which becomes the text.
    """

    channel = Channel.CHAT_PLATFORM

    def parse(self, raw: dict[str, Any]) -> dict[str, Any]:
        activity_type = raw.get("type")
        sender = raw.get("from")
        if not isinstance(sender, dict):
            raise MalformedInputError("chat-platform activity is missing 'from'")
        user_id = _require_str(sender, "id", self.channel)
        conversation = raw.get("conversation") or {}

        if activity_type == "message":
            text = _optional_text(raw, "text", self.channel)
        elif activity_type == "invoke" and raw.get("name") == CARD_ACTION_INVOKE:
            text = self._card_text(raw.get("value"))
        else:
            raise MalformedInputError(
                f"Unsupported chat-platform activity: {activity_type!r} {raw.get('name', '')}".strip()
            )

        return {
            "user_id": user_id,
            "text": text,
            "attachments": (),
            "metadata": {
                "conversation_id": conversation.get("id", ""),
                "activity_id": raw.get("id", ""),
            },
        }

    def _card_text(self, value: Any) -> str:
        if not isinstance(value, dict):
            raise MalformedInputError("adaptive card action has no submitted value")
        action = value.get("action")
        data = action.get("data", value) if isinstance(action, dict) else value
        if isinstance(data, dict):
            text = data.get("text") or data.get("choice")
            if isinstance(text, str):
                return text
            return json.dumps(data, sort_keys=True)
        return str(data)

    def render(self, envelope: MessageEnvelope) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "type": "message",
            "text": envelope.text,
            "recipient": {"id": envelope.user_id},
        }
        conversation_id = envelope.metadata.get("conversation_id")
        if conversation_id:
            payload["conversation"] = {"id": conversation_id}
        activity_id = envelope.metadata.get("activity_id")
        if activity_id:
            payload["replyToId"] = activity_id
        return payload


class EmailAdapter(ChannelAdapter):
    """Mailbox poller: ``{"from", "subject", "body"}``; quoted replies are dropped."""

    channel = Channel.EMAIL

    def parse(self, raw: dict[str, Any]) -> dict[str, Any]:
        sender = _require_str(raw, "from", self.channel).lower()
        if "@" not in sender:
            raise MalformedInputError(f"email sender is not an address: {sender!r}")
        subject = _optional_text(raw, "subject", self.channel).strip()
        body = strip_quoted_reply(_optional_text(raw, "body", self.channel))
        return {
            "user_id": sender,
            "text": body or subject,
            "attachments": _decode_attachments(raw.get("attachments"), self.channel),
            "metadata": {"subject": subject},
        }

    def render(self, envelope: MessageEnvelope) -> dict[str, Any]:
        subject = envelope.metadata.get("subject") or "Your help desk request"
        if not subject.lower().startswith("re:"):
            subject = f"Re: {subject}"
        payload: dict[str, Any] = {"to": envelope.user_id, "subject": subject, "body": envelope.text}
        if envelope.attachments:
            payload["attachments"] = _encode_attachments(envelope)
        return payload

    def render_error(self, text: str, envelope: Optional[MessageEnvelope] = None) -> dict[str, Any]:
        if envelope is None:
            return {"subject": "Your help desk request", "body": text}
        return {**self.render(envelope), "body": text}


class ApiAdapter(ChannelAdapter):
    """Direct API clients: ``{"userId", "text", "correlationId"?}``."""

    channel = Channel.API

    def parse(self, raw: dict[str, Any]) -> dict[str, Any]:
        parsed: dict[str, Any] = {
            "user_id": _require_str(raw, "userId", self.channel),
            "text": _optional_text(raw, "text", self.channel),
            "attachments": _decode_attachments(raw.get("attachments"), self.channel),
        }
        correlation_id = raw.get("correlationId")
        if isinstance(correlation_id, str) and correlation_id:
            parsed["correlation_id"] = correlation_id
        return parsed

    def render(self, envelope: MessageEnvelope) -> dict[str, Any]:
        return {
            "userId": envelope.user_id,
            "text": envelope.text,
            "correlationId": envelope.correlation_id,
            "state": envelope.metadata.get("state"),
            "attachments": _encode_attachments(envelope),
        }


def strip_quoted_reply(body: str) -> str:
    """Drop ``>`` quoted lines and everything after an ``On ... wrote:`` header."""
    kept = []
    for line in body.splitlines():
        if _QUOTE_HEADER.match(line.strip()):
            break
        if line.lstrip().startswith(">"):
            continue
        kept.append(line)
    return "\n".join(kept).strip()


DEFAULT_ADAPTERS: tuple[type[ChannelAdapter], ...] = (
    WebWidgetAdapter,
    ChatPlatformAdapter,
    EmailAdapter,
    ApiAdapter,
)
