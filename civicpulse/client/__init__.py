"""Python client for the issue chat: REST calls, live channel, local mirror."""

from civicpulse.client.api import ChatApiClient, ChatApiError
from civicpulse.client.buffer import LiveTail, MessageBuffer
from civicpulse.client.live import LiveChannelClient
from civicpulse.client.session import ChatSession

__all__ = [
    "ChatApiClient",
    "ChatApiError",
    "ChatSession",
    "LiveChannelClient",
    "LiveTail",
    "MessageBuffer",
]
