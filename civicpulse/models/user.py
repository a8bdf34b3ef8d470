"""User model — citizens and government officials.

Accounts are created by the authentication service; chat only reads them.
"""

from __future__ import annotations

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from civicpulse.models.base import Base, TimestampMixin
from civicpulse.models.enums import UserRole


class User(TimestampMixin, Base):
    """A platform account."""

    __tablename__ = "users"

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    role: Mapped[str] = mapped_column(
        String(20), nullable=False, default=UserRole.CITIZEN.value, comment="UserRole enum value"
    )

    @property
    def is_government(self) -> bool:
        return self.role == UserRole.GOVERNMENT.value

    def __repr__(self) -> str:
        return f"<User id={self.id} role={self.role}>"
