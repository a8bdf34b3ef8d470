"""Domain enums used across SQLAlchemy models and Pydantic schemas.

All enums use str mixin for JSON serialization.
"""

from __future__ import annotations

from enum import Enum


class UserRole(str, Enum):
    """Who the user is to the platform."""

    CITIZEN = "citizen"
    GOVERNMENT = "government"


class IssueStatus(str, Enum):
    """Issue lifecycle — owned by the triage workflow, stored here for reference."""

    PENDING = "pending"
    ACKNOWLEDGED = "acknowledged"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in-progress"
    RESOLVED = "resolved"
    REJECTED = "rejected"
    CLOSED = "closed"


class IssueCategory(str, Enum):
    """Reporting categories."""

    ROADS = "Roads & Infrastructure"
    WASTE = "Waste Management"
    ELECTRICITY = "Electricity"
    WATER = "Water Supply"
    SEWAGE = "Sewage & Drainage"
    TRAFFIC = "Traffic & Transportation"
    PUBLIC_SAFETY = "Public Safety"
    PARKS = "Parks & Recreation"
    STREET_LIGHTING = "Street Lighting"
    NOISE = "Noise Pollution"
    OTHER = "Other"


class ConsentState(str, Enum):
    """Reporter consent to join a merged issue's discussion.

    NONE is never stored: it is what a lookup returns when the issue was
    never merged (the reporter keeps default chat access).
    """

    NONE = "none"
    PENDING = "pending"
    GRANTED = "granted"
    DENIED = "denied"

    @property
    def is_terminal(self) -> bool:
        return self in (ConsentState.GRANTED, ConsentState.DENIED)


class DenialReason(str, Enum):
    """Why chat write access was refused."""

    CONSENT_PENDING = "consent_pending"
    CONSENT_DENIED = "consent_denied"
    NOT_PARTICIPANT = "not_participant"
