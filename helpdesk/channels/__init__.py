from helpdesk.channels.adapters import (
    ApiAdapter,
    ChannelAdapter,
    ChatPlatformAdapter,
    EmailAdapter,
    WebWidgetAdapter,
)
from helpdesk.channels.gateway import ChannelGateway

__all__ = [
    "ChannelGateway",
    "ChannelAdapter",
    "WebWidgetAdapter",
    "ChatPlatformAdapter",
    "EmailAdapter",
    "ApiAdapter",
]
