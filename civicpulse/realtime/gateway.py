"""Live channel endpoint.

    GET /ws?token=<jwt>&userId=<id>&clientId=<id>   (token may also be sent
                                                    as `Authorization: Bearer`)

The socket is only accepted after the token is verified; a bad credential
is refused with close code 1008 before any connection exists. After that
the server only pushes; the sole client frame it understands is
`registerUser`, a redundant re-association with the already verified user.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Query, WebSocket, status
from pydantic import ValidationError as FrameError

from civicpulse.errors import AuthError
from civicpulse.events import emit
from civicpulse.realtime import connections
from civicpulse.realtime.connections import Connection
from civicpulse.schemas.events import EventType, SystemEvent
from civicpulse.schemas.live import LiveEvent, LiveFrame

logger = logging.getLogger(__name__)

router = APIRouter(tags=["live"])


def _bearer_from_headers(websocket: WebSocket) -> str | None:
    header = websocket.headers.get("authorization", "")
    scheme, _, credentials = header.partition(" ")
    if scheme.lower() == "bearer" and credentials:
        return credentials.strip()
    return None


async def _handle_frame(connection: Connection, raw: str) -> None:
    try:
        frame = LiveFrame.model_validate_json(raw)
    except FrameError:
        logger.debug("Ignoring malformed frame on %r: %r", connection, raw)
        return

    if frame.event != LiveEvent.REGISTER_USER:
        logger.debug("Ignoring client frame %s on %r", frame.event.value, connection)
        return

    if str(frame.data) != str(connection.user_id):
        logger.warning("registerUser hint %s ignored on %r", frame.data, connection)
        return
    await connections.connection_manager.register(connection)


async def _refuse(websocket: WebSocket, reason: str, user_hint: str | None) -> None:
    await emit(SystemEvent(
        event_type=EventType.LIVE_AUTH_FAILED,
        data={"reason": reason, "user_hint": user_hint},
        source_module="realtime.gateway",
    ))
    await websocket.close(code=status.WS_1008_POLICY_VIOLATION)


@router.websocket("/ws")
async def live_channel(
    websocket: WebSocket,
    token: str | None = Query(None),
    user_id: str | None = Query(None, alias="userId"),
    client_id: str | None = Query(None, alias="clientId"),
) -> None:
    manager = connections.connection_manager
    try:
        connection = await manager.connect(
            websocket,
            token or _bearer_from_headers(websocket),
            user_hint=user_id,
            client_id=client_id,
        )
    except AuthError as exc:
        logger.info("Live handshake refused: %s", exc.message)
        await _refuse(websocket, exc.message, user_id)
        return
    except Exception:
        logger.exception("Live handshake failed for user hint %s", user_id)
        await _refuse(websocket, "Authentication unavailable", user_id)
        return

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                logger.info("Live client disconnected: %r", connection)
                break
            raw = message.get("text")
            if raw is None:
                logger.debug("Ignoring binary frame on %r", connection)
                continue
            await _handle_frame(connection, raw)
    finally:
        await manager.disconnect(connection)
