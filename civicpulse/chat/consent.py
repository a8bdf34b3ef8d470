"""Merge-consent state machine.

A reporter whose issue is merged into a canonical issue is asked whether to
join the shared discussion:

    NONE ──merge──▶ PENDING ──accept──▶ GRANTED
                            └─decline─▶ DENIED

NONE is not stored; it is the answer for an issue that was never merged.
GRANTED and DENIED are terminal: repeating the same answer is a no-op,
a contradicting answer is a ConflictError, and a later merge never
re-opens the request. Government reporters never get a record.

Every transition is committed before the reporter's live connections are
told about it.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone

from civicpulse.chat.store import IssueStore
from civicpulse.errors import AuthorizationError, ConflictError, NotFoundError
from civicpulse.events import emit
from civicpulse.models.consent import IssueConsent
from civicpulse.models.enums import ConsentState
from civicpulse.models.issue import Issue
from civicpulse.models.user import User
from civicpulse.realtime.connections import ConnectionManager, connection_manager
from civicpulse.schemas.events import EventType, SystemEvent
from civicpulse.schemas.live import LiveEvent

logger = logging.getLogger(__name__)


class ConsentService:
    """Consent transitions; the store is passed per call."""

    def __init__(self, connections: ConnectionManager) -> None:
        self.connections = connections

    async def get_consent_status(self, store: IssueStore, issue_id: uuid.UUID, user_id: uuid.UUID) -> ConsentState:
        """Consent of `user_id` for the discussion reached through `issue_id`."""
        issue = await store.get_issue(issue_id)
        if issue is None:
            return ConsentState.NONE
        return await self.consent_on(store, issue, user_id)

    async def consent_on(self, store: IssueStore, issue: Issue, user_id: uuid.UUID) -> ConsentState:
        """Consent of `user_id` on the thread `issue` belongs to.

        The user's record on the addressed issue wins. The reporter of an
        issue that was never merged has no consent to give. Otherwise the
        user's record on any issue merged into the same canonical issue
        applies, whichever sibling was used as the address.
        """
        record = await store.get_consent(issue.id, user_id)
        if record is not None:
            return record.consent_state
        if issue.reporter_id == user_id and not issue.is_merged:
            return ConsentState.NONE

        canonical = await store.canonical_of(issue)
        record = await store.get_thread_consent(canonical.id, user_id)
        if record is None:
            return ConsentState.NONE
        return record.consent_state

    async def open_request(
        self,
        store: IssueStore,
        issue: Issue,
        canonical: Issue,
        reporter: User,
    ) -> IssueConsent | None:
        """NONE → PENDING for a freshly merged issue. Does not commit.

        Returns the record the reporter must be prompted about, or None when
        no prompt is due (government reporter, or already answered).
        """
        if reporter.is_government:
            logger.info("Merge of issue %s: reporter %s is government, no consent needed", issue.id, reporter.id)
            return None
        if canonical.reporter_id == reporter.id:
            logger.info(
                "Merge of issue %s: reporter %s already owns canonical %s, no consent needed",
                issue.id,
                reporter.id,
                canonical.id,
            )
            return None

        existing = await store.get_consent(issue.id, reporter.id, for_update=True)
        if existing is not None:
            if existing.consent_state.is_terminal:
                logger.info(
                    "Consent for issue %s already %s, not re-prompting user %s",
                    issue.id,
                    existing.state,
                    reporter.id,
                )
                return None
            return existing

        record = IssueConsent(
            id=uuid.uuid4(),
            issue_id=issue.id,
            user_id=reporter.id,
            canonical_issue_id=canonical.id,
            state=ConsentState.PENDING.value,
        )
        store.add(record)
        await store.flush()
        return record

    async def push_request(self, record: IssueConsent) -> int:
        """Tell the reporter's open connections to prompt. Call after commit."""
        delivered = await self.connections.emit(
            record.user_id,
            LiveEvent.CONSENT_REQUEST,
            {"issueId": str(record.issue_id)},
        )
        logger.info(
            "Consent request for issue %s pushed to user %s (%d connections)",
            record.issue_id,
            record.user_id,
            delivered,
        )
        await emit(SystemEvent(
            event_type=EventType.CONSENT_REQUESTED,
            issue_id=record.issue_id,
            actor_id="system",
            actor_role="system",
            data={"user_id": str(record.user_id), "canonical_issue_id": str(record.canonical_issue_id)},
            source_module="chat.consent",
        ))
        return delivered

    async def respond(self, store: IssueStore, issue_id: uuid.UUID, user: User, accept: bool) -> ConsentState:
        """PENDING → GRANTED/DENIED on the reporter's answer.

        Raises:
            NotFoundError: unknown issue, or no consent was ever requested.
            AuthorizationError: caller is not the issue's reporter.
            ConflictError: the request was already answered the other way.
        """
        issue = await store.get_issue(issue_id)
        if issue is None:
            raise NotFoundError("Issue not found")
        if issue.reporter_id != user.id:
            logger.warning("User %s tried to answer consent for issue %s", user.id, issue_id)
            raise AuthorizationError("You are not the reporter of this issue")

        record = await store.get_consent(issue_id, user.id, for_update=True)
        if record is None:
            raise NotFoundError("No consent request for this issue")

        target = ConsentState.GRANTED if accept else ConsentState.DENIED
        current = record.consent_state
        if current == target:
            logger.info("Consent for issue %s already %s, nothing to do", issue_id, current.value)
            return current
        if current.is_terminal:
            raise ConflictError(f"Consent already {current.value}")

        record.state = target.value
        record.responded_at = datetime.now(timezone.utc)
        await store.commit()

        logger.info("Consent %s: issue=%s user=%s", target.value, issue_id, user.id)

        await self.connections.emit(
            user.id,
            LiveEvent.CONSENT_UPDATED,
            {"issueId": str(issue_id), "consent": accept},
        )
        await emit(SystemEvent(
            event_type=EventType.CONSENT_GRANTED if accept else EventType.CONSENT_DENIED,
            issue_id=issue_id,
            actor_id=str(user.id),
            actor_role=user.role,
            data={"canonical_issue_id": str(record.canonical_issue_id)},
            source_module="chat.consent",
        ))
        return target

    async def pending_for_user(self, store: IssueStore, user_id: uuid.UUID) -> list[IssueConsent]:
        """Outstanding prompts, for clients recovering after a reconnect."""
        return await store.pending_consents(user_id)


# Module-level singleton
consent_service = ConsentService(connection_manager)
