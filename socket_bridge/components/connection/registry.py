"""
Connection Registry - the live set of accepted connections.

Leaf data structure shared by admission, relay and heartbeat monitor. One
instance per RelayServer; nothing else holds connections.

Thread Safety:
- register/remove run under the registry's asyncio.Lock
- enumeration works on snapshots taken without awaiting, so a removal in
  the middle of a broadcast never corrupts the iteration
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Iterator, Protocol

from socket_bridge.components.core.constants import BridgeConstants


class Transport(Protocol):
    """
    Opaque handle to the underlying duplex connection.

    A Starlette WebSocket satisfies this protocol.
    """

    async def send_text(self, data: str) -> None: ...

    async def send_bytes(self, data: bytes) -> None: ...

    async def close(self, code: int = 1000, reason: str | None = None) -> None: ...


class HeartbeatState(str, Enum):
    """
    Liveness state of a connection.

    NOT_PROBED -> AWAITING_PONG (ping sent)
    AWAITING_PONG -> IDLE (pong received) | EVICTED (timeout, terminal)
    IDLE -> AWAITING_PONG (next ping)
    """

    NOT_PROBED = "not_probed"
    AWAITING_PONG = "awaiting_pong"
    IDLE = "idle"
    EVICTED = "evicted"


@dataclass(slots=True)
class Heartbeat:
    """
    Heartbeat bookkeeping for one connection.

    last_ping/last_pong are monotonic timestamps (time.monotonic()). They
    only carry meaning once the state machine has moved past NOT_PROBED:
    last_ping is set when entering AWAITING_PONG, last_pong when entering
    IDLE.
    """

    state: HeartbeatState = HeartbeatState.NOT_PROBED
    last_ping: float = 0.0
    last_pong: float = 0.0

    @property
    def awaiting_pong(self) -> bool:
        return self.state is HeartbeatState.AWAITING_PONG

    @property
    def is_evicted(self) -> bool:
        return self.state is HeartbeatState.EVICTED

    def mark_ping_sent(self, now: float) -> None:
        """IDLE/NOT_PROBED -> AWAITING_PONG."""
        if self.is_evicted:
            return
        self.state = HeartbeatState.AWAITING_PONG
        self.last_ping = now

    def mark_pong_received(self, now: float) -> bool:
        """
        AWAITING_PONG/IDLE -> IDLE.

        Returns:
            False if the connection is already evicted (pong ignored).
        """
        if self.is_evicted:
            return False
        self.state = HeartbeatState.IDLE
        self.last_pong = now
        return True

    def mark_evicted(self) -> bool:
        """
        Any -> EVICTED.

        Returns:
            True on the first transition, False if already evicted.
        """
        if self.is_evicted:
            return False
        self.state = HeartbeatState.EVICTED
        return True

    def is_expired(self, now: float, ping_timeout: float) -> bool:
        """Whether a pending ping has gone unanswered for longer than ping_timeout."""
        return self.awaiting_pong and now - self.last_ping > ping_timeout


@dataclass(eq=False, slots=True)
class Connection:
    """
    One accepted client.

    Created with id 0 and no name; register() assigns the id and, when the
    client did not send ?name=, the default ``client-{id}`` name.
    """

    transport: Transport
    requested_name: str | None = None
    endpoint: str = "/"
    id: int = 0
    name: str = ""
    connected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    heartbeat: Heartbeat = field(default_factory=Heartbeat)

    def to_dict(self) -> dict[str, Any]:
        """Summary for logs and stats endpoints."""
        return {
            "id": self.id,
            "name": self.name,
            "connected_at": self.connected_at.isoformat(),
            "heartbeat_state": self.heartbeat.state.value,
        }


class ConnectionRegistry:
    """
    Mapping of connection id -> Connection.

    Ids start at 1 and strictly increase for the lifetime of the registry;
    an id is never reused, even after its connection is removed.
    """

    def __init__(self) -> None:
        """Initialize an empty registry."""
        self._connections: dict[int, Connection] = {}
        self._last_id = 0
        self._lock = asyncio.Lock()

    @property
    def lock(self) -> asyncio.Lock:
        """
        Lock serializing register/remove.

        Admission holds it across its capacity check and register_locked()
        so the pair is atomic.
        """
        return self._lock

    # =========================================================================
    # Mutation
    # =========================================================================

    async def register(self, connection: Connection) -> int:
        """Assign the next id to a connection, insert it and return the id."""
        async with self._lock:
            return self.register_locked(connection)

    def register_locked(self, connection: Connection) -> int:
        """
        register() for callers already holding ``lock``.

        Does not await, so it cannot interleave with other mutations.
        """
        self._last_id += 1
        connection.id = self._last_id
        connection.name = connection.requested_name or BridgeConstants.DEFAULT_NAME_TEMPLATE.format(
            id=connection.id
        )
        self._connections[connection.id] = connection
        return connection.id

    async def remove(self, connection_id: int) -> Connection | None:
        """
        Remove a connection.

        Idempotent: removing an absent id is a no-op.

        Returns:
            The removed connection, or None if it was not registered.
        """
        async with self._lock:
            return self._connections.pop(connection_id, None)

    async def clear(self) -> list[Connection]:
        """Remove every connection and return them (used by stop)."""
        async with self._lock:
            removed = list(self._connections.values())
            self._connections.clear()
            return removed

    # =========================================================================
    # Queries (no lock needed - no awaits)
    # =========================================================================

    def size(self) -> int:
        """Number of registered connections."""
        return len(self._connections)

    def __contains__(self, connection_id: object) -> bool:
        return connection_id in self._connections

    def get(self, connection_id: int) -> Connection | None:
        """Look up a live connection."""
        return self._connections.get(connection_id)

    def ids(self) -> list[int]:
        """Registered ids in registration order."""
        return list(self._connections)

    def snapshot(self) -> list[Connection]:
        """Copy of the live connections in registration order."""
        return list(self._connections.values())

    def __iter__(self) -> Iterator[Connection]:
        return iter(self.snapshot())

    async def for_each(
        self,
        visitor: Callable[[Connection], Awaitable[None] | None],
    ) -> int:
        """
        Visit every connection registered when the call started.

        The visitor may remove connections (including the one it is
        visiting). Entries removed before their turn are skipped; nothing is
        visited twice.

        Returns:
            Number of connections visited.
        """
        visited = 0
        for connection in self.snapshot():
            if self._connections.get(connection.id) is not connection:
                continue
            result = visitor(connection)
            if asyncio.iscoroutine(result) or isinstance(result, asyncio.Future):
                await result
            visited += 1
        return visited

    def get_stats(self) -> dict[str, int]:
        """Registry statistics."""
        return {
            "connections": len(self._connections),
            "last_assigned_id": self._last_id,
        }
