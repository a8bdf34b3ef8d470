"""Issue chat — append-only message log with live fan-out.

Messages addressed to a merged issue are stored on its canonical issue, so
every reporter of the merged cluster shares one thread. A post is
validated, authorized, persisted and committed, and only then pushed to the
connected participants: reporters of the thread and every connected
government user.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone

from civicpulse.chat.permissions import Denied, PermissionResolver, permission_resolver
from civicpulse.chat.store import IssueStore
from civicpulse.config import settings
from civicpulse.errors import AuthorizationError, ChatPermissionError, NotFoundError, ValidationError
from civicpulse.events import emit
from civicpulse.models.chat_message import IssueChatMessage
from civicpulse.models.enums import UserRole
from civicpulse.models.issue import Issue
from civicpulse.models.user import User
from civicpulse.realtime.connections import ConnectionManager, connection_manager
from civicpulse.schemas.chat import ChatMessageOut, MessagePage, Pagination
from civicpulse.schemas.events import EventType, SystemEvent
from civicpulse.schemas.live import LiveEvent

logger = logging.getLogger(__name__)


class ChatService:
    """Post and page through an issue's discussion."""

    def __init__(self, permissions: PermissionResolver, connections: ConnectionManager) -> None:
        self.permissions = permissions
        self.connections = connections

    async def _load_issue(self, store: IssueStore, issue_id: uuid.UUID) -> Issue:
        issue = await store.get_issue(issue_id)
        if issue is None:
            logger.warning("Chat on unknown issue %s", issue_id)
            raise NotFoundError("Issue not found")
        return issue

    async def post_message(self, store: IssueStore, issue_id: uuid.UUID, author: User, body: str) -> ChatMessageOut:
        """Append a message and push it to connected participants.

        Raises:
            ValidationError: body empty after trimming, or too long.
            NotFoundError: unknown issue.
            ChatPermissionError: author may not write here.
        """
        text = (body or "").strip()
        if not text:
            raise ValidationError("Message required")
        max_length = settings.chat.chat_max_message_length
        if len(text) > max_length:
            raise ValidationError(f"Message longer than {max_length} characters")

        issue = await self._load_issue(store, issue_id)

        permission = await self.permissions.can_write(store, author, issue)
        if isinstance(permission, Denied):
            await emit(SystemEvent(
                event_type=EventType.CHAT_MESSAGE_REJECTED,
                issue_id=issue.id,
                actor_id=str(author.id),
                actor_role=author.role,
                data={"reason": permission.reason.value},
                source_module="chat.service",
            ))
            raise ChatPermissionError(permission.reason)

        canonical = await store.canonical_of(issue)
        if canonical.id != issue.id:
            logger.debug("Chat post on %s redirected to canonical %s", issue.id, canonical.id)

        record = IssueChatMessage(
            id=uuid.uuid4(),
            issue_id=canonical.id,
            author_id=author.id,
            body=text,
            created_at=datetime.now(timezone.utc),
        )
        store.add(record)
        await store.commit()
        logger.info("Chat message %s persisted on issue %s by %s", record.id, canonical.id, author.id)

        message = ChatMessageOut.from_record(record, author)
        recipients = await self._recipients(store, canonical)
        delivered = await self.connections.emit_many(
            recipients,
            LiveEvent.CHAT_MESSAGE,
            {"issueId": str(canonical.id), "message": message.to_json()},
        )
        logger.debug("Chat message %s delivered to %d connections", record.id, delivered)

        await emit(SystemEvent(
            event_type=EventType.CHAT_MESSAGE_POSTED,
            issue_id=canonical.id,
            actor_id=str(author.id),
            actor_role=author.role,
            data={"message_id": str(record.id), "addressed_issue_id": str(issue.id)},
            source_module="chat.service",
        ))
        return message

    async def get_messages(
        self,
        store: IssueStore,
        issue_id: uuid.UUID,
        reader: User,
        page: int = 1,
        limit: int | None = None,
    ) -> MessagePage:
        """One page of history; page 1 holds the newest messages.

        Each page is ordered oldest → newest so clients prepend older pages.
        Reading never depends on consent.
        """
        limit = limit or settings.chat.chat_page_size
        if page < 1 or limit < 1:
            raise ValidationError("page and limit must be positive")

        issue = await self._load_issue(store, issue_id)
        if not await self.permissions.can_read(store, reader, issue):
            raise AuthorizationError("You are not a participant of this issue")

        canonical = await store.canonical_of(issue)
        total = await store.count_messages(canonical.id)
        rows = await store.newest_messages(canonical.id, offset=(page - 1) * limit, limit=limit)
        rows.reverse()

        total_pages = max(1, (total + limit - 1) // limit)
        return MessagePage(
            canonical_issue_id=canonical.id,
            messages=[ChatMessageOut.from_record(row) for row in rows],
            pagination=Pagination(total=total, page=page, limit=limit, total_pages=total_pages),
        )

    async def _recipients(self, store: IssueStore, canonical: Issue) -> set[uuid.UUID]:
        """Connected users interested in the canonical thread."""
        reporters = await store.thread_reporter_ids(canonical.id)
        return reporters | self.connections.connected_user_ids(role=UserRole.GOVERNMENT)


# Module-level singleton
chat_service = ChatService(permission_resolver, connection_manager)
