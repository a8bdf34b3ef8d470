"""Shared fixtures: an in-memory IssueStore, fake sockets and a wired service graph."""

from __future__ import annotations

import itertools
import json
import uuid
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest

from civicpulse.auth import Identity
from civicpulse.chat.consent import ConsentService
from civicpulse.chat.merge import MergeService
from civicpulse.chat.permissions import PermissionResolver
from civicpulse.chat.service import ChatService
from civicpulse.errors import AuthError
from civicpulse.models import Issue, IssueChatMessage, IssueConsent, User
from civicpulse.models.enums import ConsentState, IssueCategory, IssueStatus, UserRole
from civicpulse.realtime.connections import ConnectionManager

# ── In-memory store ──────────────────────────────────────────────────


class FakeStore:
    """Dict-backed stand-in for IssueStore holding real ORM instances."""

    def __init__(self, log: list[str] | None = None) -> None:
        self.users: dict[uuid.UUID, User] = {}
        self.issues: dict[uuid.UUID, Issue] = {}
        self.consents: list[IssueConsent] = []
        self.messages: list[IssueChatMessage] = []
        self.commits = 0
        self.flushes = 0
        self.log = log if log is not None else []
        self._seq = itertools.count()
        self._order: dict[uuid.UUID, int] = {}

    # unit of work

    def add(self, obj):
        now = datetime.now(timezone.utc)
        if isinstance(obj, IssueConsent):
            obj.created_at = obj.created_at or now
            obj.updated_at = obj.updated_at or now
            self.consents.append(obj)
        elif isinstance(obj, IssueChatMessage):
            obj.author = self.users.get(obj.author_id)
            self._order[obj.id] = next(self._seq)
            self.messages.append(obj)
        elif isinstance(obj, Issue):
            self.issues[obj.id] = obj
        elif isinstance(obj, User):
            self.users[obj.id] = obj

    async def flush(self):
        self.flushes += 1

    async def commit(self):
        self.commits += 1
        self.log.append("commit")

    # issues & users

    async def get_issue(self, issue_id, *, for_update=False):
        return self.issues.get(issue_id)

    async def canonical_of(self, issue):
        seen = {issue.id}
        while issue.merged_into_id is not None:
            parent = self.issues.get(issue.merged_into_id)
            if parent is None or parent.id in seen:
                break
            seen.add(parent.id)
            issue = parent
        return issue

    async def reparent_duplicates(self, old_canonical_id, new_canonical_id):
        moved = 0
        for issue in self.issues.values():
            if issue.merged_into_id == old_canonical_id:
                issue.merged_into_id = new_canonical_id
                moved += 1
        for record in self.consents:
            if record.canonical_issue_id == old_canonical_id:
                record.canonical_issue_id = new_canonical_id
        return moved

    async def move_messages(self, from_issue_id, to_issue_id):
        moved = [m for m in self.messages if m.issue_id == from_issue_id]
        for message in moved:
            message.issue_id = to_issue_id
        return len(moved)

    async def get_user(self, user_id):
        return self.users.get(user_id)

    async def thread_reporter_ids(self, canonical_id):
        return {
            i.reporter_id
            for i in self.issues.values()
            if i.id == canonical_id or i.merged_into_id == canonical_id
        }

    # consent

    async def get_consent(self, issue_id, user_id, *, for_update=False):
        for record in self.consents:
            if record.issue_id == issue_id and record.user_id == user_id:
                return record
        return None

    async def get_thread_consent(self, canonical_id, user_id):
        records = [r for r in self.consents if r.canonical_issue_id == canonical_id and r.user_id == user_id]
        for record in records:
            if record.state == ConsentState.GRANTED.value:
                return record
        return records[-1] if records else None

    async def pending_consents(self, user_id):
        return [r for r in self.consents if r.user_id == user_id and r.state == ConsentState.PENDING.value]

    # chat

    async def count_messages(self, issue_id):
        return sum(1 for m in self.messages if m.issue_id == issue_id)

    async def newest_messages(self, issue_id, offset, limit):
        rows = [m for m in self.messages if m.issue_id == issue_id]
        rows.sort(key=lambda m: (m.created_at, self._order[m.id]), reverse=True)
        return rows[offset:offset + limit]

    # seeding helpers

    def seed_message(self, issue, author, body, created_at):
        message = IssueChatMessage(
            id=uuid.uuid4(), issue_id=issue.id, author_id=author.id, body=body, created_at=created_at
        )
        self.add(message)
        return message


# ── Fake live sockets ────────────────────────────────────────────────


class FakeSocket:
    """Records accepted state and sent frames; optionally fails on send."""

    def __init__(self, log: list[str] | None = None, fail: bool = False) -> None:
        self.accepted = False
        self.closed_with: int | None = None
        self.sent: list[dict] = []
        self.fail = fail
        self.log = log if log is not None else []

    async def accept(self):
        self.accepted = True

    async def send_json(self, data):
        if self.fail:
            raise RuntimeError("socket gone")
        json.dumps(data)
        self.sent.append(data)
        self.log.append(f"send:{data['event']}")

    async def close(self, code=1000):
        self.closed_with = code

    def events(self, name: str) -> list[dict]:
        return [frame["data"] for frame in self.sent if frame["event"] == name]


# ── World ────────────────────────────────────────────────────────────


class World:
    """Users, issues and the service graph around one FakeStore."""

    def __init__(self) -> None:
        self.log: list[str] = []
        self.store = FakeStore(self.log)
        self.identities: dict[str, Identity] = {}
        self.manager = ConnectionManager(authenticator=self._authenticate)
        self.consent = ConsentService(self.manager)
        self.permissions = PermissionResolver(self.consent)
        self.chat = ChatService(self.permissions, self.manager)
        self.merge = MergeService(self.consent)
        self._clock = datetime(2026, 1, 1, 9, 0, tzinfo=timezone.utc)

    async def _authenticate(self, token: str) -> Identity:
        identity = self.identities.get(token)
        if identity is None:
            raise AuthError("Token is not valid")
        return identity

    def user(self, name: str, role: UserRole = UserRole.CITIZEN) -> User:
        user = User(
            id=uuid.uuid4(),
            name=name,
            email=f"{name.lower()}@example.org",
            role=role.value,
        )
        self.store.add(user)
        self.identities[f"token-{user.id}"] = Identity(user_id=user.id, role=role)
        return user

    def issue(self, reporter: User, title: str = "Pothole", merged_into: Issue | None = None) -> Issue:
        issue = Issue(
            id=uuid.uuid4(),
            title=title,
            description=f"{title} on Main St",
            category=IssueCategory.ROADS.value,
            status=IssueStatus.PENDING.value,
            reporter_id=reporter.id,
            merged_into_id=merged_into.id if merged_into else None,
        )
        self.store.add(issue)
        return issue

    def consent_record(self, issue: Issue, canonical: Issue, state: ConsentState) -> IssueConsent:
        record = IssueConsent(
            id=uuid.uuid4(),
            issue_id=issue.id,
            user_id=issue.reporter_id,
            canonical_issue_id=canonical.id,
            state=state.value,
        )
        self.store.add(record)
        return record

    def tick(self) -> datetime:
        self._clock += timedelta(seconds=1)
        return self._clock

    def socket(self, fail: bool = False) -> FakeSocket:
        return FakeSocket(self.log, fail=fail)

    async def connect(self, user: User, client_id: str | None = None, fail: bool = False) -> FakeSocket:
        socket = self.socket(fail=fail)
        await self.manager.connect(socket, f"token-{user.id}", client_id=client_id)
        return socket


@pytest.fixture()
def world():
    return World()


@pytest.fixture(autouse=True)
def system_events():
    """Capture SystemEvents instead of queueing them for the audit worker."""
    with (
        patch("civicpulse.chat.consent.emit", new_callable=AsyncMock) as consent_emit,
        patch("civicpulse.chat.service.emit", new_callable=AsyncMock) as chat_emit,
        patch("civicpulse.chat.merge.emit", new_callable=AsyncMock) as merge_emit,
        patch("civicpulse.realtime.connections.emit_event", new_callable=AsyncMock) as live_emit,
        patch("civicpulse.realtime.gateway.emit", new_callable=AsyncMock) as gateway_emit,
    ):
        yield SimpleNamespace(
            consent=consent_emit,
            chat=chat_emit,
            merge=merge_emit,
            live=live_emit,
            gateway=gateway_emit,
        )
