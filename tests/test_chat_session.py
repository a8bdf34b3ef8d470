"""Tests for ChatSession — the client-side consent and chat mirror."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from civicpulse.client.api import ChatApiError
from civicpulse.client.live import LiveChannelClient
from civicpulse.client.session import ChatSession
from civicpulse.models.enums import UserRole

# ── Helpers ──────────────────────────────────────────────────────────


def _msg(n: int) -> dict:
    return {"id": f"m{n}", "message": f"text {n}", "createdAt": f"2026-01-01T09:00:{n:02d}Z"}


def _page(messages, page=1, total_pages=1, canonical="canon") -> dict:
    return {
        "success": True,
        "data": messages,
        "pagination": {"page": page, "limit": 20, "total": len(messages), "totalPages": total_pages},
        "canonicalIssueId": canonical,
    }


def _make_api() -> MagicMock:
    api = MagicMock()
    api.get_messages = AsyncMock(return_value=_page([]))
    api.post_message = AsyncMock()
    api.respond_to_consent = AsyncMock(return_value={"state": "granted"})
    api.get_consent = AsyncMock()
    api.pending_consents = AsyncMock(return_value=[])
    return api


def _make_session(role: UserRole = UserRole.CITIZEN, api=None) -> ChatSession:
    live = LiveChannelClient("tok", "user-1", url="ws://test/ws")
    return ChatSession(api or _make_api(), live, role)


async def _push(session: ChatSession, event: str, data) -> None:
    await session.live._dispatch(json.dumps({"event": event, "data": data}))


# ── Live consent events ──────────────────────────────────────────────


class TestConsentEvents:
    @pytest.mark.asyncio()
    async def test_request_marks_pending(self):
        session = _make_session()

        await _push(session, "issueConsentRequest", {"issueId": "dup"})
        await _push(session, "issueConsentRequest", {"issueId": "dup"})

        assert session.pending_consent_requests == ["dup"]
        assert session.consent_status == {"dup": None}

    @pytest.mark.asyncio()
    async def test_update_settles(self):
        session = _make_session()
        await _push(session, "issueConsentRequest", {"issueId": "dup"})

        await _push(session, "issueConsentUpdated", {"issueId": "dup", "consent": False})

        assert session.pending_consent_requests == []
        assert session.consent_status == {"dup": False}

    @pytest.mark.asyncio()
    async def test_request_without_issue_id_ignored(self):
        session = _make_session()

        await _push(session, "issueConsentRequest", {})

        assert session.pending_consent_requests == []


class TestCanChat:
    def test_government_always(self):
        session = _make_session(UserRole.GOVERNMENT)
        session.consent_status["i"] = False

        assert session.can_chat("i", is_reporter=False) is True

    def test_unmerged_reporter(self):
        session = _make_session()

        assert session.can_chat("i") is True
        assert session.can_chat("i", is_reporter=False) is False

    @pytest.mark.parametrize(("status", "expected"), [(None, False), (False, False), (True, True)])
    def test_by_consent(self, status, expected):
        session = _make_session()
        session.consent_status["i"] = status

        assert session.can_chat("i") is expected


class TestRespondToConsent:
    @pytest.mark.asyncio()
    async def test_optimistic_update(self):
        session = _make_session()
        await _push(session, "issueConsentRequest", {"issueId": "dup"})

        assert await session.respond_to_consent("dup", True) is True

        session.api.respond_to_consent.assert_awaited_once_with("dup", True)
        assert session.pending_consent_requests == []
        assert session.consent_status["dup"] is True

    @pytest.mark.asyncio()
    async def test_refused_answer_keeps_state(self):
        api = _make_api()
        api.respond_to_consent = AsyncMock(side_effect=ChatApiError(409, "Consent already denied"))
        session = _make_session(api=api)
        await _push(session, "issueConsentRequest", {"issueId": "dup"})

        assert await session.respond_to_consent("dup", True) is False

        assert session.pending_consent_requests == ["dup"]
        assert session.consent_status["dup"] is None


# ── Chat ─────────────────────────────────────────────────────────────


class TestChatBuffers:
    @pytest.mark.asyncio()
    async def test_open_issue_keys_by_canonical_and_merges_tail(self):
        api = _make_api()
        api.get_messages = AsyncMock(return_value=_page([_msg(1), _msg(2)], canonical="canon"))
        session = _make_session(api=api)
        await _push(session, "issueChatMessage", {"issueId": "canon", "message": _msg(3)})
        await _push(session, "issueChatMessage", {"issueId": "canon", "message": _msg(2)})

        buffer = await session.open_issue("dup")

        assert buffer.issue_id == "canon"
        assert buffer.ids() == ["m1", "m2", "m3"]
        assert session.buffer_for("dup") is buffer

    @pytest.mark.asyncio()
    async def test_live_message_after_open(self):
        api = _make_api()
        api.get_messages = AsyncMock(return_value=_page([_msg(1)], canonical="canon"))
        session = _make_session(api=api)
        buffer = await session.open_issue("canon")

        await _push(session, "issueChatMessage", {"issueId": "canon", "message": _msg(5)})
        await _push(session, "issueChatMessage", {"issueId": "canon", "message": _msg(5)})

        assert buffer.ids() == ["m1", "m5"]

    @pytest.mark.asyncio()
    async def test_sent_message_and_its_echo_shown_once(self):
        api = _make_api()
        api.get_messages = AsyncMock(return_value=_page([], canonical="canon"))
        api.post_message = AsyncMock(return_value=_msg(7))
        session = _make_session(api=api)
        buffer = await session.open_issue("dup")

        await session.send_message("dup", "  text 7 ")
        await _push(session, "issueChatMessage", {"issueId": "canon", "message": _msg(7)})

        api.post_message.assert_awaited_once_with("dup", "text 7")
        assert buffer.ids() == ["m7"]

    @pytest.mark.asyncio()
    async def test_load_older(self):
        api = _make_api()
        api.get_messages = AsyncMock(side_effect=[
            _page([_msg(3), _msg(4)], page=1, total_pages=2),
            _page([_msg(1), _msg(2)], page=2, total_pages=2),
        ])
        session = _make_session(api=api)
        buffer = await session.open_issue("canon")

        assert await session.load_older("canon") == 2
        assert buffer.ids() == ["m1", "m2", "m3", "m4"]
        assert await session.load_older("canon") == 0
        api.get_messages.assert_awaited_with("canon", page=2)


# ── Recovery ─────────────────────────────────────────────────────────


class TestResync:
    @pytest.mark.asyncio()
    async def test_rebuilds_from_rest(self):
        api = _make_api()
        api.get_messages = AsyncMock(side_effect=[
            _page([_msg(1)], canonical="canon"),
            _page([_msg(1), _msg(2)], canonical="canon"),
        ])
        api.pending_consents = AsyncMock(return_value=[{"issueId": "new-dup", "canonicalIssueId": "canon"}])
        api.get_consent = AsyncMock(return_value={"issueId": "old-dup", "state": "granted", "consent": True})
        session = _make_session(api=api)
        buffer = await session.open_issue("canon")
        session.pending_consent_requests = ["old-dup"]
        session.consent_status = {"old-dup": None}

        await session.resync()

        assert session.pending_consent_requests == ["new-dup"]
        assert session.consent_status == {"old-dup": True, "new-dup": None}
        assert buffer.ids() == ["m1", "m2"]

    def test_runs_when_live_channel_opens(self):
        session = _make_session()

        assert session.live.on_connected == session.resync

    @pytest.mark.asyncio()
    async def test_failure_keeps_cached_state(self):
        api = _make_api()
        api.pending_consents = AsyncMock(side_effect=httpx.ConnectError("down"))
        session = _make_session(api=api)
        session.pending_consent_requests = ["dup"]
        session.consent_status = {"dup": None}

        await session.resync()

        assert session.pending_consent_requests == ["dup"]
        assert session.consent_status == {"dup": None}
