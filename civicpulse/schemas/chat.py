"""Request/response schemas for the chat and consent REST endpoints.

JSON uses camelCase (`issueId`, `createdAt`) to match the web client;
Python code uses the snake_case field names.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from civicpulse.models.enums import ConsentState, UserRole

if TYPE_CHECKING:
    from civicpulse.models.chat_message import IssueChatMessage
    from civicpulse.models.user import User

T = TypeVar("T")


class CamelModel(BaseModel):
    """Base schema serializing to camelCase and accepting either spelling."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


# ── Chat messages ────────────────────────────────────────────────────


class ChatAuthor(CamelModel):
    id: uuid.UUID
    name: str
    role: UserRole


class ChatMessageOut(CamelModel):
    """A stored chat message as seen by clients."""

    id: uuid.UUID
    issue_id: uuid.UUID
    author: ChatAuthor
    message: str
    created_at: datetime

    @classmethod
    def from_record(cls, record: IssueChatMessage, author: User | None = None) -> ChatMessageOut:
        """Build from an ORM row; `author` overrides the loaded relationship."""
        author = author or record.author
        return cls(
            id=record.id,
            issue_id=record.issue_id,
            author=ChatAuthor(id=author.id, name=author.name, role=UserRole(author.role)),
            message=record.body,
            created_at=record.created_at,
        )


class PostMessageRequest(CamelModel):
    message: str = Field(..., description="Message body; surrounding whitespace is trimmed")


class Pagination(CamelModel):
    total: int
    page: int
    limit: int
    total_pages: int


class MessagePage(CamelModel):
    """One page of history, oldest → newest, on the canonical issue."""

    canonical_issue_id: uuid.UUID
    messages: list[ChatMessageOut]
    pagination: Pagination


# ── Consent ──────────────────────────────────────────────────────────


class ConsentRequest(CamelModel):
    accept: bool


class ConsentStatusOut(CamelModel):
    issue_id: uuid.UUID
    state: ConsentState
    consent: bool | None = Field(
        default=None, description="True/False once answered, None while pending or never merged"
    )

    @classmethod
    def of(cls, issue_id: uuid.UUID, state: ConsentState) -> ConsentStatusOut:
        consent = {ConsentState.GRANTED: True, ConsentState.DENIED: False}.get(state)
        return cls(issue_id=issue_id, state=state, consent=consent)


class PendingConsentOut(CamelModel):
    issue_id: uuid.UUID
    canonical_issue_id: uuid.UUID
    requested_at: datetime


# ── Merge ────────────────────────────────────────────────────────────


class MergeRequest(CamelModel):
    canonical_issue_id: uuid.UUID


class MergeResultOut(CamelModel):
    issue_id: uuid.UUID
    canonical_issue_id: uuid.UUID
    consent_requested: bool


# ── Envelopes ────────────────────────────────────────────────────────


class ApiResponse(CamelModel, Generic[T]):
    """`{success, data?, error?}` envelope used by every endpoint."""

    success: bool = True
    data: T | None = None
    error: str | None = None


class PagedResponse(ApiResponse[list[ChatMessageOut]]):
    pagination: Pagination
    canonical_issue_id: uuid.UUID
