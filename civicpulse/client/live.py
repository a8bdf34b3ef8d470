"""Live channel client — receives consent prompts and chat messages.

Connects to `/ws?token&userId&clientId`, re-associates with `registerUser`
on every open, and dispatches `{event, data}` frames to registered
handlers. A lost connection is retried a bounded number of times with a
fixed delay; after that the client stays disconnected while the REST API
keeps working. The attempt counter resets on every successful open.
"""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
import uuid
from collections.abc import Awaitable, Callable
from typing import Any
from urllib.parse import urlencode

import websockets
from pydantic import ValidationError as FrameError
from websockets.exceptions import WebSocketException

from civicpulse.config import settings
from civicpulse.schemas.live import LiveEvent, LiveFrame

logger = logging.getLogger(__name__)

Handler = Callable[[Any], Awaitable[None] | None]
StateCallback = Callable[[], Awaitable[None] | None]


async def _call(callback: Callable[..., Any], *args: Any) -> None:
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


class LiveChannelClient:
    """One logical live connection for one signed-in user."""

    def __init__(
        self,
        token: str,
        user_id: uuid.UUID | str,
        url: str | None = None,
        client_id: str | None = None,
        reconnect_attempts: int | None = None,
        reconnect_delay: float | None = None,
    ) -> None:
        self.token = token
        self.user_id = str(user_id)
        self.url = url or settings.client.live_url
        self.client_id = client_id or uuid.uuid4().hex
        self.reconnect_attempts = (
            settings.realtime.reconnect_attempts if reconnect_attempts is None else reconnect_attempts
        )
        self.reconnect_delay = settings.realtime.reconnect_delay if reconnect_delay is None else reconnect_delay

        self.on_connected: StateCallback | None = None
        self.on_disconnected: StateCallback | None = None

        self._handlers: dict[LiveEvent, list[Handler]] = {}
        self._ws: Any = None
        self._connected = False
        self._stopped = False
        self.gave_up = False

    @property
    def connected(self) -> bool:
        return self._connected

    def on(self, event: LiveEvent, handler: Handler) -> None:
        self._handlers.setdefault(event, []).append(handler)

    def _connect_url(self) -> str:
        query = urlencode({"token": self.token, "userId": self.user_id, "clientId": self.client_id})
        separator = "&" if "?" in self.url else "?"
        return f"{self.url}{separator}{query}"

    # ── Lifecycle ────────────────────────────────────────────────────

    async def run(self) -> None:
        """Connect and consume frames until closed or out of attempts."""
        failures = 0
        while not self._stopped:
            try:
                async with websockets.connect(
                    self._connect_url(),
                    open_timeout=settings.realtime.connect_timeout,
                ) as ws:
                    failures = 0
                    await self._opened(ws)
                    async for raw in ws:
                        await self._dispatch(raw)
                reason = "closed by server"
            except (WebSocketException, OSError, asyncio.TimeoutError) as exc:
                reason = str(exc) or type(exc).__name__
            finally:
                self._ws = None

            if self._connected:
                await self._closed(reason)
            if self._stopped:
                break

            failures += 1
            if failures > self.reconnect_attempts:
                logger.warning("Live channel giving up after %d attempts: %s", self.reconnect_attempts, reason)
                self.gave_up = True
                break
            logger.info(
                "Live channel lost (%s), retry %d/%d in %.1fs",
                reason,
                failures,
                self.reconnect_attempts,
                self.reconnect_delay,
            )
            await asyncio.sleep(self.reconnect_delay)

    async def close(self) -> None:
        self._stopped = True
        if self._ws is not None:
            await self._ws.close()

    async def _opened(self, ws: Any) -> None:
        self._ws = ws
        self._connected = True
        self.gave_up = False
        logger.info("Live channel connected as user %s (client %s)", self.user_id, self.client_id)
        await ws.send(json.dumps(LiveFrame(event=LiveEvent.REGISTER_USER, data=self.user_id).to_json()))
        if self.on_connected is not None:
            await _call(self.on_connected)

    async def _closed(self, reason: str) -> None:
        self._connected = False
        logger.info("Live channel disconnected: %s", reason)
        if self.on_disconnected is not None:
            await _call(self.on_disconnected)

    # ── Frames ───────────────────────────────────────────────────────

    async def _dispatch(self, raw: str | bytes) -> None:
        try:
            frame = LiveFrame.model_validate_json(raw)
        except FrameError:
            logger.warning("Ignoring malformed live frame: %r", raw)
            return

        for handler in self._handlers.get(frame.event, []):
            try:
                await _call(handler, frame.data)
            except Exception:
                logger.exception("Live handler %r failed for %s", handler, frame.event.value)
