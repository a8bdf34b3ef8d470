"""Tests for the SystemEvent pub/sub and the audit subscriber."""

from __future__ import annotations

import uuid
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from civicpulse import events
from civicpulse.schemas.events import EventType, SystemEvent
from civicpulse.security.audit import audit_on_event


@pytest.fixture()
def bus():
    return events.EventBus()


def _event(event_type: EventType = EventType.CONSENT_GRANTED) -> SystemEvent:
    return SystemEvent(event_type=event_type, issue_id=uuid.uuid4(), actor_id="u1", actor_role="citizen")


# ── Dispatch ─────────────────────────────────────────────────────────


class TestEventBus:
    @pytest.mark.asyncio()
    async def test_every_subscriber_receives_every_event(self, bus):
        first = AsyncMock(__name__="first")
        second = AsyncMock(__name__="second")
        bus.subscribe(first)
        bus.subscribe(second)

        await bus.dispatch(_event(EventType.CHAT_MESSAGE_POSTED))
        await bus.dispatch(_event(EventType.CONSENT_GRANTED))

        assert first.await_count == 2
        assert second.await_count == 2

    def test_subscribe_twice_registers_once(self, bus):
        handler = AsyncMock(__name__="handler")
        bus.subscribe(handler)
        bus.subscribe(handler)

        assert bus.handlers == [handler]

    @pytest.mark.asyncio()
    async def test_failing_subscriber_isolated(self, bus):
        broken = AsyncMock(__name__="broken", side_effect=RuntimeError("boom"))
        healthy = AsyncMock(__name__="healthy")
        bus.subscribe(broken)
        bus.subscribe(healthy)

        await bus.dispatch(_event())

        healthy.assert_awaited_once()

    @pytest.mark.asyncio()
    async def test_unsubscribe(self, bus):
        handler = AsyncMock(__name__="handler")
        bus.subscribe(handler)
        bus.unsubscribe(handler)

        await bus.dispatch(_event())

        handler.assert_not_awaited()

    @pytest.mark.asyncio()
    async def test_queue_drained_on_stop(self, bus):
        handler = AsyncMock(__name__="handler")
        bus.subscribe(handler)

        await bus.start()
        await bus.publish(_event())
        await bus.stop()

        handler.assert_awaited_once()
        assert bus.running is False

    @pytest.mark.asyncio()
    async def test_publish_starts_worker(self, bus):
        handler = AsyncMock(__name__="handler")
        bus.subscribe(handler)

        await bus.publish(_event())
        assert bus.running is True
        await bus.stop()

        handler.assert_awaited_once()

    def test_module_helpers_share_one_bus(self):
        assert events.emit == events.bus.publish
        assert events.subscribe == events.bus.subscribe


# ── Audit subscriber ─────────────────────────────────────────────────


class TestAuditOnEvent:
    @pytest.mark.asyncio()
    async def test_persists_event(self):
        db = AsyncMock()
        db.add = MagicMock()
        factory = MagicMock()
        factory.return_value.__aenter__ = AsyncMock(return_value=db)
        factory.return_value.__aexit__ = AsyncMock(return_value=False)
        event = _event()

        with patch("civicpulse.security.audit.async_session_factory", factory):
            await audit_on_event(event)

        row = db.add.call_args[0][0]
        assert row.event_type == "consent.granted"
        assert row.issue_id == event.issue_id
        db.commit.assert_awaited_once()

    @pytest.mark.asyncio()
    async def test_db_failure_swallowed(self):
        factory = MagicMock(side_effect=RuntimeError("db down"))

        with patch("civicpulse.security.audit.async_session_factory", factory):
            await audit_on_event(_event())
