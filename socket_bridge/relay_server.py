"""
Relay Server.

Thin orchestrator that composes the bridge components:
- ConnectionRegistry: the live set of connections (owned here, one per server)
- AdmissionController: origin / capacity / API key gate
- BroadcastRelay: payload and system notice fan-out
- HeartbeatMonitor: liveness probing and eviction
- ConnectionLifecycle: connect/disconnect and their notices
- MetricsCollector: counters for the detailed health endpoint
"""

from __future__ import annotations

import logging
from typing import Any, TYPE_CHECKING

from socket_bridge.components.admission.controller import AdmissionController
from socket_bridge.components.connection.heartbeat import HeartbeatMonitor, handle_heartbeat
from socket_bridge.components.connection.registry import ConnectionRegistry
from socket_bridge.components.core.constants import WSCloseCode
from socket_bridge.components.core.exceptions import ServerShuttingDownError
from socket_bridge.components.core.protocol import is_pong, shutdown_message
from socket_bridge.components.metrics.collector import MetricsCollector
from socket_bridge.core.connection.broadcaster import BroadcastRelay, Payload
from socket_bridge.core.connection.lifecycle import ConnectionLifecycle

if TYPE_CHECKING:
    from starlette.websockets import WebSocket
    from socket_bridge.components.connection.registry import Connection
    from socket_bridge.components.core.context import HandshakeInfo
    from socket_bridge.config.settings import RelayConfig

logger = logging.getLogger(__name__)

__all__ = ["RelayServer"]


class RelayServer:
    """
    One bridge instance.

    Every client admitted to it shares one registry; a payload from one is
    relayed to all the others.

    Usage:
        server = RelayServer(settings.to_relay_config())
        server.start()
        ...
        await server.stop()
    """

    def __init__(self, config: "RelayConfig") -> None:
        """
        Initialize the server with composed components.

        Args:
            config: Immutable relay configuration.
        """
        self._config = config
        self._registry = ConnectionRegistry()
        self._metrics = MetricsCollector()

        self._admission = AdmissionController(config, self._registry)
        self._relay = BroadcastRelay(config, self._registry, self._metrics)
        self._lifecycle = ConnectionLifecycle(
            config=config,
            admission=self._admission,
            registry=self._registry,
            relay=self._relay,
            metrics=self._metrics,
        )
        # Evictions go through the lifecycle so a leave notice is announced
        self._monitor = HeartbeatMonitor(
            config,
            self._registry,
            self._metrics,
            evict_callback=self._lifecycle.disconnect,
        )

        self._started = False
        self._stopped = False

    # =========================================================================
    # Public properties
    # =========================================================================

    @property
    def config(self) -> "RelayConfig":
        return self._config

    @property
    def registry(self) -> ConnectionRegistry:
        return self._registry

    @property
    def admission(self) -> AdmissionController:
        return self._admission

    @property
    def relay(self) -> BroadcastRelay:
        return self._relay

    @property
    def monitor(self) -> HeartbeatMonitor:
        return self._monitor

    @property
    def lifecycle(self) -> ConnectionLifecycle:
        return self._lifecycle

    @property
    def metrics(self) -> MetricsCollector:
        return self._metrics

    @property
    def client_count(self) -> int:
        """Number of registered connections."""
        return self._registry.size()

    @property
    def is_running(self) -> bool:
        return self._started and not self._stopped

    # =========================================================================
    # Start / stop
    # =========================================================================

    def start(self) -> None:
        """
        Start background work (the heartbeat monitor).

        Raises:
            ServerShuttingDownError: If the server was already stopped.
        """
        if self._stopped:
            raise ServerShuttingDownError("Cannot start a stopped relay server")
        if self._started:
            return
        self._started = True

        if not self._config.auth_enabled:
            logger.warning("No API key configured - authentication is disabled")

        self._monitor.start()
        logger.info(
            "Relay server started",
            max_clients=self._config.max_clients,
            max_message_size=self._config.max_message_size,
            validate_origin=self._config.validate_origin,
            heartbeat_interval=self._config.heartbeat_interval,
        )

    async def stop(self) -> None:
        """
        Shut the bridge down.

        Sends every client the shutdown notice, closes them with GOING_AWAY
        and empties the registry. New admissions are rejected from the first
        line on. Calling it again is a no-op.
        """
        if self._stopped:
            return
        self._stopped = True

        self._admission.close()
        await self._monitor.stop()

        clients = self._registry.size()
        logger.info("Relay server shutting down", clients=clients)

        if clients:
            await self._relay.broadcast_system(shutdown_message())
        await self._lifecycle.close_all(WSCloseCode.GOING_AWAY, "Server shutting down")

        logger.info("Relay server stopped")

    # =========================================================================
    # Per-connection operations (called by the endpoint)
    # =========================================================================

    async def connect(self, websocket: "WebSocket", handshake: "HandshakeInfo") -> "Connection":
        """Accept, admit and announce a connection. See ConnectionLifecycle.connect."""
        return await self._lifecycle.connect(websocket, handshake)

    async def disconnect(self, connection: "Connection", reason: str = "client_disconnect") -> bool:
        """Remove a connection (no-op if already gone)."""
        return await self._lifecycle.disconnect(connection, reason)

    async def handle_message(self, connection: "Connection", data: Payload) -> None:
        """
        Route one inbound frame.

        With the heartbeat enabled, a JSON pong from a connection with a ping
        outstanding is recorded, and a JSON client ping is answered; neither
        is relayed. Everything else, bare "ping"/"pong" text included, goes
        to the relay.
        """
        if isinstance(data, str) and self._monitor.enabled:
            if connection.heartbeat.awaiting_pong and is_pong(data):
                self._monitor.record_pong(connection.id)
                return
            if await handle_heartbeat(connection.transport, data):
                return

        await self._relay.relay(connection.id, data)

    # =========================================================================
    # Stats
    # =========================================================================

    def get_stats(self) -> dict[str, Any]:
        """Aggregate statistics for the detailed health endpoint."""
        return {
            "clients": self._registry.size(),
            "max_clients": self._config.max_clients,
            "running": self.is_running,
            "registry": self._registry.get_stats(),
            "heartbeat": self._monitor.get_stats(),
            "metrics": self._metrics.get_snapshot(),
            "connections": [c.to_dict() for c in self._registry.snapshot()],
        }
