"""Chat permission resolver.

Reading an issue's discussion only requires being associated with it;
writing depends on role and consent:

* government users can always write;
* a reporter who granted consent can write;
* the reporter of an issue that was never merged (consent NONE) can write;
* everyone else is denied, with the reason (pending, declined, outsider).

The result is recomputed from the database on every write attempt.
Clients may mirror it to disable their input, but only this is authoritative.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Union

from civicpulse.chat.consent import ConsentService, consent_service
from civicpulse.chat.store import IssueStore
from civicpulse.models.enums import ConsentState, DenialReason, UserRole
from civicpulse.models.issue import Issue
from civicpulse.models.user import User

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Allowed:
    pass


@dataclass(frozen=True)
class Denied:
    reason: DenialReason


PermissionResult = Union[Allowed, Denied]


def write_permission(role: UserRole, consent: ConsentState, is_reporter: bool) -> PermissionResult:
    """The write rule itself, free of any I/O."""
    if role == UserRole.GOVERNMENT:
        return Allowed()
    if consent == ConsentState.GRANTED:
        return Allowed()
    if consent == ConsentState.NONE and is_reporter:
        return Allowed()
    if consent == ConsentState.PENDING:
        return Denied(DenialReason.CONSENT_PENDING)
    if consent == ConsentState.DENIED:
        return Denied(DenialReason.CONSENT_DENIED)
    return Denied(DenialReason.NOT_PARTICIPANT)


class PermissionResolver:
    """Read/write entitlement for a user on an issue."""

    def __init__(self, consent: ConsentService) -> None:
        self.consent = consent

    async def can_read(self, store: IssueStore, user: User, issue: Issue) -> bool:
        if user.is_government or issue.reporter_id == user.id:
            return True
        canonical = await store.canonical_of(issue)
        return user.id in await store.thread_reporter_ids(canonical.id)

    async def can_write(self, store: IssueStore, user: User, issue: Issue) -> PermissionResult:
        role = UserRole(user.role)
        if role == UserRole.GOVERNMENT:
            return Allowed()
        consent = await self.consent.consent_on(store, issue, user.id)
        result = write_permission(role, consent, is_reporter=issue.reporter_id == user.id)
        if isinstance(result, Denied):
            logger.info(
                "Chat write denied: user=%s issue=%s consent=%s reason=%s",
                user.id,
                issue.id,
                consent.value,
                result.reason.value,
            )
        return result


# Module-level singleton
permission_resolver = PermissionResolver(consent_service)
