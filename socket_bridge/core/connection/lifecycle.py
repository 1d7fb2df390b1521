"""
Connection Lifecycle Management.

Handles WebSocket acceptance, admission and disconnection, and the system
notices that go with them. Every registry insert and removal that clients
should hear about goes through here, so each join and leave is announced
at most once.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from socket_bridge.components.core.constants import BridgeConstants
from socket_bridge.components.core.context import sanitize_log_data
from socket_bridge.components.core.exceptions import AdmissionError
from socket_bridge.components.core.protocol import joined_message, left_message, welcome_message
from socket_bridge.config.logging import audit_ws_connection

if TYPE_CHECKING:
    from starlette.websockets import WebSocket
    from socket_bridge.components.admission.controller import AdmissionController
    from socket_bridge.components.connection.registry import Connection, ConnectionRegistry, Transport
    from socket_bridge.components.core.context import HandshakeInfo
    from socket_bridge.components.metrics.collector import MetricsCollector
    from socket_bridge.config.settings import RelayConfig
    from socket_bridge.core.connection.broadcaster import BroadcastRelay

logger = logging.getLogger(__name__)

# Disconnect reasons that are audited as EVICTED instead of DISCONNECT
_EVICTION_REASONS = frozenset({"heartbeat_timeout"})


async def close_transport(transport: "Transport", code: int, reason: str) -> bool:
    """
    Close a transport, tolerating one that is already gone.

    Returns:
        True if the close frame was sent.
    """
    try:
        await transport.close(code=code, reason=reason)
        return True
    except Exception as e:
        logger.debug("Transport already closed", code=code, error=str(e))
        return False


class ConnectionLifecycle:
    """
    Manages the lifecycle of bridge connections.

    Responsibilities:
    - Accept the socket, then run admission (so close codes reach the client)
    - Send the welcome notice and announce joins
    - Remove connections exactly once and announce leaves
    """

    def __init__(
        self,
        config: "RelayConfig",
        admission: "AdmissionController",
        registry: "ConnectionRegistry",
        relay: "BroadcastRelay",
        metrics: "MetricsCollector",
    ) -> None:
        """
        Initialize lifecycle manager with dependencies.

        Args:
            config: Immutable relay configuration
            admission: Decides whether a handshake may join
            registry: Live connections
            relay: Sends welcome/join/leave notices
            metrics: Collects admission metrics
        """
        self._config = config
        self._admission = admission
        self._registry = registry
        self._relay = relay
        self._metrics = metrics

    async def connect(
        self,
        websocket: "WebSocket",
        handshake: "HandshakeInfo",
        timeout: float = BridgeConstants.WS_ACCEPT_TIMEOUT,
    ) -> "Connection":
        """
        Accept a WebSocket, admit it and announce it.

        Args:
            websocket: The WebSocket to connect.
            handshake: Origin, apiKey and name taken from the handshake.
            timeout: Timeout for accepting the WebSocket.

        Returns:
            The registered Connection.

        Raises:
            ConnectionError: If the WebSocket could not be accepted.
            AdmissionError: If admission rejected the handshake. The socket
                has already been closed with the matching code.
        """
        try:
            await asyncio.wait_for(websocket.accept(), timeout=timeout)
        except asyncio.TimeoutError:
            raise ConnectionError("WebSocket accept timed out")
        except Exception as e:
            raise ConnectionError(f"WebSocket accept failed: {e}")

        try:
            connection = await self._admission.admit(handshake, websocket)
        except AdmissionError as e:
            await self._reject(websocket, handshake, e)
            raise

        self._metrics.increment_accepted()

        await self._relay.send_system(connection.id, welcome_message(connection.name, connection.id))
        if self._config.announce_connections:
            await self._relay.broadcast_system(
                joined_message(connection.name), exclude_id=connection.id
            )

        logger.info(
            "Client connected",
            client_id=connection.id,
            name=connection.name,
            endpoint=handshake.endpoint,
            total=self._registry.size(),
        )
        audit_ws_connection(
            event_type="CONNECT",
            endpoint=handshake.endpoint,
            client_id=connection.id,
            name=connection.name,
            origin=sanitize_log_data(handshake.origin) if handshake.origin else None,
        )
        return connection

    async def _reject(
        self,
        websocket: "WebSocket",
        handshake: "HandshakeInfo",
        error: AdmissionError,
    ) -> None:
        """Count, log and close a rejected handshake."""
        self._metrics.increment_rejected(error.audit_reason)
        origin = sanitize_log_data(handshake.origin) if handshake.origin else None

        logger.warning(
            "WebSocket connection rejected",
            endpoint=handshake.endpoint,
            reason=error.audit_reason,
            detail=sanitize_log_data(error.detail),
            close_code=int(error.close_code),
        )
        audit_ws_connection(
            event_type="REJECTED",
            endpoint=handshake.endpoint,
            name=handshake.name,
            origin=origin,
            reason=error.audit_reason,
        )
        await close_transport(websocket, error.close_code, error.reason)

    async def disconnect(self, connection: "Connection", reason: str = "client_disconnect") -> bool:
        """
        Remove a connection and announce that it left.

        Idempotent: the receive loop and the heartbeat monitor may both call
        this for the same connection; only the first call does anything.

        Args:
            connection: The connection to remove.
            reason: Why it is leaving (for logs and the audit trail).

        Returns:
            True if this call removed the connection.
        """
        removed = await self._registry.remove(connection.id)
        if removed is None:
            return False

        if self._config.announce_connections:
            await self._relay.broadcast_system(left_message(removed.name))

        logger.info(
            "Client disconnected",
            client_id=removed.id,
            name=removed.name,
            reason=reason,
            total=self._registry.size(),
        )
        audit_ws_connection(
            event_type="EVICTED" if reason in _EVICTION_REASONS else "DISCONNECT",
            endpoint=removed.endpoint,
            client_id=removed.id,
            name=removed.name,
            reason=reason,
        )
        return True

    async def close_all(self, code: int, reason: str) -> int:
        """
        Clear the registry, then close every connection that was in it.

        Clearing first means the receive loops that wake up on the close
        find nothing left to remove, so no leave notices are sent.

        Returns:
            Number of connections closed.
        """
        connections = await self._registry.clear()
        if not connections:
            return 0

        await asyncio.gather(
            *[close_transport(c.transport, code, reason) for c in connections]
        )
        logger.info("Closed all connections", count=len(connections), code=int(code))
        return len(connections)
