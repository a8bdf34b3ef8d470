"""Merge trigger — marks an issue as a duplicate of a canonical issue.

Duplicate detection lives outside this service; this is the entry point it
(or an official, by hand) calls. The merge and the reporter's consent
request are committed together, then the reporter is prompted live.
"""

from __future__ import annotations

import logging
import uuid

from civicpulse.chat.consent import ConsentService, consent_service
from civicpulse.chat.store import IssueStore
from civicpulse.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from civicpulse.events import emit
from civicpulse.models.user import User
from civicpulse.schemas.chat import MergeResultOut
from civicpulse.schemas.events import EventType, SystemEvent

logger = logging.getLogger(__name__)


class MergeService:
    def __init__(self, consent: ConsentService) -> None:
        self.consent = consent

    async def merge(
        self,
        store: IssueStore,
        issue_id: uuid.UUID,
        canonical_id: uuid.UUID,
        actor: User,
    ) -> MergeResultOut:
        """Merge `issue_id` into `canonical_id` (resolved to its root).

        Raises:
            AuthorizationError: actor is not a government user.
            NotFoundError: either issue is unknown.
            ValidationError: merging an issue into itself or into one of its
                own duplicates.
            ConflictError: issue already merged into another issue.
        """
        if not actor.is_government:
            raise AuthorizationError("Only government officials can merge issues")

        issue = await store.get_issue(issue_id, for_update=True)
        target = await store.get_issue(canonical_id)
        if issue is None or target is None:
            raise NotFoundError("Issue not found")

        canonical = await store.canonical_of(target)
        if canonical.id == issue.id:
            raise ValidationError("An issue cannot be merged into itself")

        if issue.is_merged and issue.merged_into_id != canonical.id:
            raise ConflictError("Issue is already merged into another issue")

        if not issue.is_merged:
            issue.merged_into_id = canonical.id
            moved = await store.reparent_duplicates(issue.id, canonical.id)
            if moved:
                logger.info("Moved %d duplicates of %s under %s", moved, issue.id, canonical.id)
            carried = await store.move_messages(issue.id, canonical.id)
            if carried:
                logger.info("Carried %d messages of %s into %s", carried, issue.id, canonical.id)
            logger.info("Issue %s merged into canonical %s by %s", issue.id, canonical.id, actor.id)

        reporter = await store.get_user(issue.reporter_id)
        if reporter is None:
            raise NotFoundError("Issue reporter not found")

        record = await self.consent.open_request(store, issue, canonical, reporter)
        await store.commit()

        if record is not None:
            await self.consent.push_request(record)

        await emit(SystemEvent(
            event_type=EventType.ISSUE_MERGED,
            issue_id=issue.id,
            actor_id=str(actor.id),
            actor_role=actor.role,
            data={"canonical_issue_id": str(canonical.id), "consent_requested": record is not None},
            source_module="chat.merge",
        ))
        return MergeResultOut(
            issue_id=issue.id,
            canonical_issue_id=canonical.id,
            consent_requested=record is not None,
        )


# Module-level singleton
merge_service = MergeService(consent_service)
