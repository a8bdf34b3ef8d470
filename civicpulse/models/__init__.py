"""SQLAlchemy ORM models for Civic Pulse.

Import all models here so Alembic and Base.metadata.create_all() discover them.
"""

from __future__ import annotations

from civicpulse.models.audit import AuditLog
from civicpulse.models.base import Base
from civicpulse.models.chat_message import IssueChatMessage
from civicpulse.models.consent import IssueConsent
from civicpulse.models.enums import (
    ConsentState,
    DenialReason,
    IssueCategory,
    IssueStatus,
    UserRole,
)
from civicpulse.models.issue import Issue
from civicpulse.models.user import User

__all__ = [
    # Base
    "Base",
    # Models
    "User",
    "Issue",
    "IssueConsent",
    "IssueChatMessage",
    "AuditLog",
    # Enums
    "UserRole",
    "IssueStatus",
    "IssueCategory",
    "ConsentState",
    "DenialReason",
]
