"""Database access for the chat and consent services.

`IssueStore` binds the queries the services need to one AsyncSession, so a
service call works against a single transaction and commits it explicitly
before any live delivery happens.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from civicpulse.models.chat_message import IssueChatMessage
from civicpulse.models.consent import IssueConsent
from civicpulse.models.enums import ConsentState
from civicpulse.models.issue import Issue
from civicpulse.models.user import User

logger = logging.getLogger(__name__)


class IssueStore:
    """Issue, consent and chat queries over one session."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    # ── Unit of work ─────────────────────────────────────────────────

    def add(self, obj: Any) -> None:
        self.db.add(obj)

    async def flush(self) -> None:
        await self.db.flush()

    async def commit(self) -> None:
        await self.db.commit()

    # ── Issues & users ───────────────────────────────────────────────

    async def get_issue(self, issue_id: uuid.UUID, *, for_update: bool = False) -> Issue | None:
        stmt = select(Issue).where(Issue.id == issue_id)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def canonical_of(self, issue: Issue) -> Issue:
        """Follow `merged_into_id` to the root issue."""
        seen = {issue.id}
        while issue.merged_into_id is not None:
            parent = await self.get_issue(issue.merged_into_id)
            if parent is None or parent.id in seen:
                logger.error("Broken merge chain at issue %s", issue.id)
                break
            seen.add(parent.id)
            issue = parent
        return issue

    async def reparent_duplicates(self, old_canonical_id: uuid.UUID, new_canonical_id: uuid.UUID) -> int:
        """Point issues (and their consent records) merged into one canonical issue at another."""
        result = await self.db.execute(
            update(Issue)
            .where(Issue.merged_into_id == old_canonical_id)
            .values(merged_into_id=new_canonical_id)
        )
        await self.db.execute(
            update(IssueConsent)
            .where(IssueConsent.canonical_issue_id == old_canonical_id)
            .values(canonical_issue_id=new_canonical_id)
        )
        return result.rowcount or 0

    async def move_messages(self, from_issue_id: uuid.UUID, to_issue_id: uuid.UUID) -> int:
        """Re-home a merged issue's existing messages on its canonical thread."""
        result = await self.db.execute(
            update(IssueChatMessage)
            .where(IssueChatMessage.issue_id == from_issue_id)
            .values(issue_id=to_issue_id)
        )
        return result.rowcount or 0

    async def get_user(self, user_id: uuid.UUID) -> User | None:
        return await self.db.get(User, user_id)

    async def thread_reporter_ids(self, canonical_id: uuid.UUID) -> set[uuid.UUID]:
        """Reporters of the canonical issue and of every issue merged into it."""
        result = await self.db.execute(
            select(Issue.reporter_id).where(
                or_(Issue.id == canonical_id, Issue.merged_into_id == canonical_id)
            )
        )
        return set(result.scalars().all())

    # ── Consent ──────────────────────────────────────────────────────

    async def get_consent(
        self,
        issue_id: uuid.UUID,
        user_id: uuid.UUID,
        *,
        for_update: bool = False,
    ) -> IssueConsent | None:
        stmt = select(IssueConsent).where(
            IssueConsent.issue_id == issue_id,
            IssueConsent.user_id == user_id,
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_thread_consent(self, canonical_id: uuid.UUID, user_id: uuid.UUID) -> IssueConsent | None:
        """The user's consent on any issue merged into `canonical_id`.

        A granted record wins over others, so a reporter of several merged
        duplicates can write once any of them was accepted.
        """
        result = await self.db.execute(
            select(IssueConsent)
            .where(
                IssueConsent.canonical_issue_id == canonical_id,
                IssueConsent.user_id == user_id,
            )
            .order_by(IssueConsent.updated_at.desc())
        )
        records = list(result.scalars().all())
        for record in records:
            if record.state == ConsentState.GRANTED.value:
                return record
        return records[0] if records else None

    async def pending_consents(self, user_id: uuid.UUID) -> list[IssueConsent]:
        result = await self.db.execute(
            select(IssueConsent)
            .where(
                IssueConsent.user_id == user_id,
                IssueConsent.state == ConsentState.PENDING.value,
            )
            .order_by(IssueConsent.created_at.asc())
        )
        return list(result.scalars().all())

    # ── Chat messages ────────────────────────────────────────────────

    async def count_messages(self, issue_id: uuid.UUID) -> int:
        result = await self.db.execute(
            select(func.count(IssueChatMessage.id)).where(IssueChatMessage.issue_id == issue_id)
        )
        return result.scalar() or 0

    async def newest_messages(self, issue_id: uuid.UUID, offset: int, limit: int) -> list[IssueChatMessage]:
        """A window of the log ordered newest first."""
        result = await self.db.execute(
            select(IssueChatMessage)
            .where(IssueChatMessage.issue_id == issue_id)
            .order_by(IssueChatMessage.created_at.desc(), IssueChatMessage.id.desc())
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all())
