"""Connection manager — the live channel's per-user delivery registry.

Each accepted socket becomes a Connection bound to exactly one verified
user. The manager owns the `user_id -> {Connection}` multimap; everything
else reaches users through `emit` / `emit_many`.

Delivery is best effort and at-most-once: a user with no open connection
simply misses the push and recovers state over REST.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable, Iterable
from typing import Any, Protocol

from civicpulse.auth import Identity, verify_live_token
from civicpulse.errors import AuthError, TransientDeliveryFailure
from civicpulse.events import emit as emit_event
from civicpulse.models.enums import UserRole
from civicpulse.schemas.events import EventType, SystemEvent
from civicpulse.schemas.live import LiveEvent, LiveFrame

logger = logging.getLogger(__name__)


class LiveSocket(Protocol):
    """The subset of starlette's WebSocket the manager relies on."""

    async def accept(self) -> None: ...

    async def send_json(self, data: Any) -> None: ...

    async def close(self, code: int = 1000) -> None: ...


Authenticator = Callable[[str], Awaitable[Identity]]


class Connection:
    """One open socket of one user."""

    def __init__(self, socket: LiveSocket, identity: Identity, client_id: str | None = None) -> None:
        self.id = uuid.uuid4().hex
        self.socket = socket
        self.identity = identity
        self.client_id = client_id
        self.closed = False

    @property
    def user_id(self) -> uuid.UUID:
        return self.identity.user_id

    async def send(self, event: LiveEvent, payload: Any) -> None:
        if self.closed:
            raise TransientDeliveryFailure(f"connection {self.id} is closed")
        try:
            await self.socket.send_json(LiveFrame(event=event, data=payload).to_json())
        except Exception as exc:
            raise TransientDeliveryFailure(f"send to {self.id} failed: {exc}") from exc

    async def close(self, code: int = 1000) -> None:
        if self.closed:
            return
        self.closed = True
        try:
            await self.socket.close(code=code)
        except Exception:
            logger.debug("Socket for connection %s already gone", self.id)

    def __repr__(self) -> str:
        return f"<Connection id={self.id} user={self.user_id} client={self.client_id}>"


class ConnectionManager:
    """Registry of live connections, keyed by user."""

    def __init__(self, authenticator: Authenticator) -> None:
        self._authenticate = authenticator
        self._connections: dict[uuid.UUID, set[Connection]] = {}
        self._by_client: dict[tuple[uuid.UUID, str], Connection] = {}
        self._lock = asyncio.Lock()

    # ── Lifecycle ────────────────────────────────────────────────────

    async def connect(
        self,
        socket: LiveSocket,
        token: str | None,
        user_hint: str | None = None,
        client_id: str | None = None,
    ) -> Connection:
        """Verify the caller, accept the socket and register it.

        Raises:
            AuthError: missing/invalid token, or a `user_hint` naming someone
                else. No Connection is created in that case.
        """
        if not token:
            raise AuthError("No authentication token")

        identity = await self._authenticate(token)
        if user_hint and user_hint != str(identity.user_id):
            logger.warning(
                "Live handshake user hint %s does not match token user %s", user_hint, identity.user_id
            )
            raise AuthError("User hint does not match credential")

        await socket.accept()
        connection = Connection(socket, identity, client_id)
        async with self._lock:
            previous = self._by_client.get((identity.user_id, client_id)) if client_id else None
            if previous is not None:
                self._discard(previous)
            self._add(connection)
        if previous is not None:
            logger.info("Replaced connection %s for client %s", previous.id, client_id)
            await previous.close()
        logger.info("Registered %r", connection)

        await emit_event(SystemEvent(
            event_type=EventType.LIVE_CONNECTED,
            actor_id=str(identity.user_id),
            actor_role=identity.role.value,
            data={"connection_id": connection.id, "client_id": client_id},
            source_module="realtime.connections",
        ))
        return connection

    async def register(self, connection: Connection) -> None:
        """Associate a connection with its user. Idempotent."""
        async with self._lock:
            self._add(connection)
        logger.info(
            "Registered %r (%d open for user)",
            connection,
            len(self._connections.get(connection.user_id, ())),
        )

    async def unregister(self, connection: Connection) -> None:
        """Drop a connection. Consent and chat state are untouched."""
        async with self._lock:
            self._discard(connection)
        logger.info("Unregistered %r", connection)

    # Callers hold self._lock.

    def _add(self, connection: Connection) -> None:
        self._connections.setdefault(connection.user_id, set()).add(connection)
        if connection.client_id:
            self._by_client[(connection.user_id, connection.client_id)] = connection

    def _discard(self, connection: Connection) -> None:
        connections = self._connections.get(connection.user_id)
        if connections is not None:
            connections.discard(connection)
            if not connections:
                del self._connections[connection.user_id]
        key = (connection.user_id, connection.client_id)
        if connection.client_id and self._by_client.get(key) is connection:
            del self._by_client[key]

    async def disconnect(self, connection: Connection) -> None:
        await self.unregister(connection)
        await emit_event(SystemEvent(
            event_type=EventType.LIVE_DISCONNECTED,
            actor_id=str(connection.user_id),
            actor_role=connection.identity.role.value,
            data={"connection_id": connection.id},
            source_module="realtime.connections",
        ))

    async def close_all(self) -> None:
        """Close every socket. Called on application shutdown."""
        async with self._lock:
            connections = [c for conns in self._connections.values() for c in conns]
            self._connections.clear()
            self._by_client.clear()
        for connection in connections:
            await connection.close(code=1001)
        logger.info("Closed %d live connections", len(connections))

    # ── Delivery ─────────────────────────────────────────────────────

    async def emit(self, user_id: uuid.UUID, event: LiveEvent, payload: Any) -> int:
        """Push an event to every open connection of one user.

        Returns the number of connections reached. Zero connections is not
        an error.
        """
        async with self._lock:
            targets = list(self._connections.get(user_id, ()))

        if not targets:
            logger.debug("No live connection for user %s, dropping %s", user_id, event.value)
            return 0

        delivered = 0
        for connection in targets:
            try:
                await connection.send(event, payload)
                delivered += 1
            except TransientDeliveryFailure as exc:
                logger.warning("Dropping dead connection %r: %s", connection, exc)
                await self.unregister(connection)
        return delivered

    async def emit_many(self, user_ids: Iterable[uuid.UUID], event: LiveEvent, payload: Any) -> int:
        """Push an event once to each of a set of users."""
        delivered = 0
        for user_id in set(user_ids):
            delivered += await self.emit(user_id, event, payload)
        return delivered

    # ── Introspection ────────────────────────────────────────────────

    def connected_user_ids(self, role: UserRole | None = None) -> set[uuid.UUID]:
        """Snapshot of users with at least one open connection."""
        return {
            user_id
            for user_id, connections in self._connections.items()
            if connections and (role is None or any(c.identity.role == role for c in connections))
        }

    def connection_count(self, user_id: uuid.UUID | None = None) -> int:
        if user_id is not None:
            return len(self._connections.get(user_id, ()))
        return sum(len(c) for c in self._connections.values())


# Module-level singleton
connection_manager = ConnectionManager(authenticator=verify_live_token)
