"""IssueConsent model — a merged issue reporter's answer to the join request.

One row per (issue, reporter). Created PENDING by the merge, moved once to
GRANTED or DENIED, never deleted.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from civicpulse.models.base import Base, TimestampMixin
from civicpulse.models.enums import ConsentState


class IssueConsent(TimestampMixin, Base):
    """Consent of a merged issue's reporter to join the canonical discussion."""

    __tablename__ = "issue_consents"
    __table_args__ = (UniqueConstraint("issue_id", "user_id", name="uq_issue_consents_issue_user"),)

    # Foreign keys
    issue_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("issues.id"), nullable=False, index=True
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True
    )
    canonical_issue_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("issues.id"), nullable=False, index=True
    )

    state: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ConsentState.PENDING.value, comment="ConsentState enum value"
    )
    responded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    @property
    def consent_state(self) -> ConsentState:
        return ConsentState(self.state)

    def __repr__(self) -> str:
        return f"<IssueConsent issue={self.issue_id} user={self.user_id} state={self.state}>"
