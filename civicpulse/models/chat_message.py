"""IssueChatMessage model — append-only discussion log of a canonical issue."""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, Index, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from civicpulse.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from civicpulse.models.user import User


class IssueChatMessage(TimestampMixin, Base):
    """A single immutable chat message."""

    __tablename__ = "issue_chat_messages"
    __table_args__ = (Index("ix_issue_chat_messages_issue_created", "issue_id", "created_at"),)

    # Foreign keys
    issue_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("issues.id"), nullable=False
    )
    author_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True
    )

    body: Mapped[str] = mapped_column(Text, nullable=False)

    # Relationships
    author: Mapped[User] = relationship("User", lazy="selectin")

    def __repr__(self) -> str:
        preview = self.body[:50] if self.body else ""
        return f"<IssueChatMessage id={self.id} issue={self.issue_id} preview='{preview}...'>"
