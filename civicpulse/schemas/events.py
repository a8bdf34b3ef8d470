"""SystemEvent schema — the internal event type behind the audit trail.

Every consent transition, merge, chat post and live connection change emits a
SystemEvent. Subscribers (the audit logger) consume them asynchronously.
These are internal events, distinct from the live channel frames pushed to
clients (see `civicpulse.schemas.live`).
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class EventType(str, Enum):
    """All event types emitted by the system."""

    # Merge & consent
    ISSUE_MERGED = "issue.merged"
    CONSENT_REQUESTED = "consent.requested"
    CONSENT_GRANTED = "consent.granted"
    CONSENT_DENIED = "consent.denied"

    # Chat
    CHAT_MESSAGE_POSTED = "chat.message_posted"
    CHAT_MESSAGE_REJECTED = "chat.message_rejected"

    # Live channel
    LIVE_CONNECTED = "live.connected"
    LIVE_DISCONNECTED = "live.disconnected"
    LIVE_AUTH_FAILED = "live.auth_failed"

    # System
    SYSTEM_STARTUP = "system.startup"
    SYSTEM_SHUTDOWN = "system.shutdown"
    SYSTEM_ERROR = "system.error"


class SystemEvent(BaseModel):
    """Core event that flows through the event system.

    Immutable once created. Consumed by:
    - audit_on_event → writes to audit_log table
    """

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    event_type: EventType
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    # Context (optional, not every event concerns an issue)
    issue_id: uuid.UUID | None = None
    actor_id: str | None = None
    actor_role: str | None = None

    # Flexible payload
    data: dict[str, Any] = Field(default_factory=dict)

    # Metadata
    source_module: str | None = Field(default=None, description="Module that emitted this event")

    model_config = {"frozen": True}
