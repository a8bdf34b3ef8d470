"""Issue model — a reported civic problem.

Only the fields the chat/consent core reads are mapped here. A merged issue
keeps its own row (and its reporter's consent record) but its discussion
lives on `merged_into_id`, which always points at a root issue.
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from civicpulse.models.base import Base, TimestampMixin
from civicpulse.models.enums import IssueStatus

if TYPE_CHECKING:
    from civicpulse.models.user import User


class Issue(TimestampMixin, Base):
    """A citizen report, possibly merged into a canonical issue."""

    __tablename__ = "issues"

    title: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String(50), nullable=False, comment="IssueCategory enum value")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=IssueStatus.PENDING.value)

    # Foreign keys
    reporter_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True
    )
    merged_into_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("issues.id"), index=True, comment="Canonical issue when merged"
    )

    # Relationships
    reporter: Mapped[User] = relationship("User", lazy="selectin")

    @property
    def is_merged(self) -> bool:
        return self.merged_into_id is not None

    def __repr__(self) -> str:
        return f"<Issue id={self.id} status={self.status} merged_into={self.merged_into_id}>"
