"""Audit log subscriber — persists every SystemEvent to the audit_log table.

Registered as a global subscriber (receives ALL events). Consent records are
already immutable; this trail adds who did what and when around them.

Never raises — failures are logged but never propagate to the event system.
"""

from __future__ import annotations

import logging

from civicpulse.db.engine import async_session_factory
from civicpulse.models.audit import AuditLog
from civicpulse.schemas.events import SystemEvent

logger = logging.getLogger(__name__)


async def audit_on_event(event: SystemEvent) -> None:
    """Write a SystemEvent to the audit_log table."""
    try:
        async with async_session_factory() as db:
            db.add(AuditLog(
                event_type=event.event_type.value,
                issue_id=event.issue_id,
                actor_id=event.actor_id,
                actor_role=event.actor_role,
                data=event.data,
            ))
            await db.commit()
    except Exception:
        logger.exception(
            "Failed to persist audit event: %s (issue=%s)",
            event.event_type.value,
            event.issue_id,
        )
