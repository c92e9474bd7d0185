"""
Channel gateway: the translation boundary between channels and the router.

``normalize`` turns a channel payload into an inbound ``MessageEnvelope``
or raises ``MalformedInputError``; ``render`` turns an outbound envelope
back into the channel's payload. The gateway holds no conversation state.
"""

import logging
from typing import Any, Iterable, Optional, Union

from pydantic import ValidationError

from helpdesk.channels.adapters import DEFAULT_ADAPTERS, ChannelAdapter
from helpdesk.errors import MalformedInputError
from helpdesk.schemas.envelope_schema import Channel, Direction, MessageEnvelope

logger = logging.getLogger(__name__)


class ChannelGateway:
    """One adapter per channel."""

    def __init__(self, adapters: Optional[Iterable[ChannelAdapter]] = None) -> None:
        if adapters is None:
            adapters = [adapter_cls() for adapter_cls in DEFAULT_ADAPTERS]
        self._adapters: dict[Channel, ChannelAdapter] = {a.channel: a for a in adapters}

    def adapter(self, channel: Union[Channel, str]) -> ChannelAdapter:
        try:
            return self._adapters[Channel(channel)]
        except (KeyError, ValueError):
            raise MalformedInputError(f"Unsupported channel: {channel!r}") from None

    def normalize(self, raw_event: Any, channel: Union[Channel, str]) -> MessageEnvelope:
        adapter = self.adapter(channel)
        if not isinstance(raw_event, dict):
            raise MalformedInputError(
                f"{adapter.channel.value} event must be an object, got {type(raw_event).__name__}"
            )

        parsed = adapter.parse(raw_event)
        text = parsed.get("text", "").strip()
        attachments = parsed.get("attachments", ())
        if not text and not attachments:
            raise MalformedInputError(f"{adapter.channel.value} event has no text or attachments")

        fields: dict[str, Any] = {
            "channel": adapter.channel,
            "session_key": adapter.session_key(parsed["user_id"]),
            "direction": Direction.INBOUND,
            "text": text,
            "attachments": attachments,
            "user_id": parsed["user_id"],
            "metadata": parsed.get("metadata", {}),
        }
        if parsed.get("correlation_id"):
            fields["correlation_id"] = parsed["correlation_id"]
        try:
            envelope = MessageEnvelope(**fields)
        except ValidationError as exc:
            raise MalformedInputError(f"Invalid {adapter.channel.value} event: {exc}") from exc

        logger.debug("Normalized %s event for %s", adapter.channel.value, envelope.session_key)
        return envelope

    def render(self, envelope: MessageEnvelope, channel: Union[Channel, str, None] = None) -> dict[str, Any]:
        return self.adapter(channel or envelope.channel).render(envelope)

    def render_error(
        self,
        text: str,
        channel: Union[Channel, str],
        envelope: Optional[MessageEnvelope] = None,
    ) -> dict[str, Any]:
        try:
            adapter = self.adapter(channel)
        except MalformedInputError:
            return {"type": "error", "text": text}
        return adapter.render_error(text, envelope)
