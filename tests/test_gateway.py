"""Tests for the live channel endpoint (/ws)."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from civicpulse.auth import Identity
from civicpulse.models.enums import UserRole
from civicpulse.realtime.connections import Connection, ConnectionManager
from civicpulse.realtime.gateway import _handle_frame, router


def _make_client() -> TestClient:
    app = FastAPI()
    app.include_router(router)
    return TestClient(app)


# ── Handshake ────────────────────────────────────────────────────────


class TestHandshake:
    def test_missing_token_closed_with_policy_violation(self, world, system_events):
        with patch("civicpulse.realtime.connections.connection_manager", world.manager):
            client = _make_client()
            with pytest.raises(WebSocketDisconnect) as exc_info:
                with client.websocket_connect("/ws"):
                    pass

        assert exc_info.value.code == 1008
        assert world.manager.connection_count() == 0
        assert system_events.gateway.call_args[0][0].event_type.value == "live.auth_failed"

    def test_invalid_token_refused(self, world):
        with patch("civicpulse.realtime.connections.connection_manager", world.manager):
            client = _make_client()
            with pytest.raises(WebSocketDisconnect) as exc_info:
                with client.websocket_connect("/ws?token=forged"):
                    pass

        assert exc_info.value.code == 1008

    def test_user_hint_mismatch_refused(self, world):
        alice, bob = world.user("Alice"), world.user("Bob")

        with patch("civicpulse.realtime.connections.connection_manager", world.manager):
            client = _make_client()
            with pytest.raises(WebSocketDisconnect) as exc_info:
                with client.websocket_connect(f"/ws?token=token-{alice.id}&userId={bob.id}"):
                    pass

        assert exc_info.value.code == 1008

    def test_valid_token_connects_then_cleans_up(self, world, system_events):
        alice = world.user("Alice")

        with patch("civicpulse.realtime.connections.connection_manager", world.manager):
            client = _make_client()
            with client.websocket_connect(f"/ws?token=token-{alice.id}&userId={alice.id}&clientId=tab-1") as ws:
                ws.send_text(json.dumps({"event": "registerUser", "data": str(alice.id)}))

        assert world.manager.connection_count() == 0
        event_types = [c[0][0].event_type.value for c in system_events.live.call_args_list]
        assert event_types == ["live.connected", "live.disconnected"]

    def test_bearer_header_accepted(self, world, system_events):
        alice = world.user("Alice")

        with patch("civicpulse.realtime.connections.connection_manager", world.manager):
            client = _make_client()
            headers = {"Authorization": f"Bearer token-{alice.id}"}
            with client.websocket_connect("/ws", headers=headers):
                pass

        assert system_events.live.call_args_list[0][0][0].event_type.value == "live.connected"

    def test_authenticator_failure_refused(self, system_events):
        manager = ConnectionManager(authenticator=AsyncMock(side_effect=ConnectionError("db down")))

        with patch("civicpulse.realtime.connections.connection_manager", manager):
            client = _make_client()
            with pytest.raises(WebSocketDisconnect) as exc_info:
                with client.websocket_connect("/ws?token=anything"):
                    pass

        assert exc_info.value.code == 1008
        assert manager.connection_count() == 0
        assert system_events.gateway.call_args[0][0].event_type.value == "live.auth_failed"

    def test_binary_frame_ignored(self, world, system_events):
        alice = world.user("Alice")

        with (
            patch("civicpulse.realtime.connections.connection_manager", world.manager),
            patch.object(world.manager, "register", wraps=world.manager.register) as register,
        ):
            client = _make_client()
            with client.websocket_connect(f"/ws?token=token-{alice.id}") as ws:
                ws.send_bytes(b"\x00\x01")
                ws.send_text(json.dumps({"event": "registerUser", "data": str(alice.id)}))

        register.assert_awaited_once()
        assert world.manager.connection_count() == 0
        event_types = [c[0][0].event_type.value for c in system_events.live.call_args_list]
        assert event_types == ["live.connected", "live.disconnected"]


# ── Client frames ────────────────────────────────────────────────────


class TestHandleFrame:
    def _connection(self, world):
        alice = world.user("Alice")
        return Connection(world.socket(), Identity(user_id=alice.id, role=UserRole.CITIZEN), "tab-1")

    @pytest.mark.asyncio()
    async def test_register_user_for_self(self, world):
        connection = self._connection(world)
        manager = MagicMock(register=AsyncMock())

        with patch("civicpulse.realtime.connections.connection_manager", manager):
            await _handle_frame(connection, json.dumps({"event": "registerUser", "data": str(connection.user_id)}))

        manager.register.assert_awaited_once_with(connection)

    @pytest.mark.asyncio()
    @pytest.mark.parametrize(
        "raw",
        [
            json.dumps({"event": "registerUser", "data": "someone-else"}),
            json.dumps({"event": "issueChatMessage", "data": {}}),
            json.dumps({"event": "bogus"}),
            "not json",
        ],
    )
    async def test_other_frames_ignored(self, world, raw):
        connection = self._connection(world)
        manager = MagicMock(register=AsyncMock())

        with patch("civicpulse.realtime.connections.connection_manager", manager):
            await _handle_frame(connection, raw)

        manager.register.assert_not_awaited()
