"""Live channel frames.

Every frame, in both directions, is a JSON envelope
`{"event": <LiveEvent>, "data": <payload>}`.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel


class LiveEvent(str, Enum):
    """Event names on the live channel."""

    # server → client
    CONSENT_REQUEST = "issueConsentRequest"
    CONSENT_UPDATED = "issueConsentUpdated"
    CHAT_MESSAGE = "issueChatMessage"

    # client → server
    REGISTER_USER = "registerUser"


class LiveFrame(BaseModel):
    event: LiveEvent
    data: Any = None

    def to_json(self) -> dict[str, Any]:
        return {"event": self.event.value, "data": self.data}
