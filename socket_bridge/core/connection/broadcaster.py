"""
Broadcast Relay.

Fans application payloads and system notices out across the registry.

Delivery is best-effort and isolated per recipient: a failed send is logged
and skipped, never aborting delivery to the rest. Payloads from one sender
reach each recipient in send order because the sender's receive loop awaits
relay() before reading its next frame; nothing orders distinct senders.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from starlette.websockets import WebSocketState

from socket_bridge.components.core.constants import BridgeConstants
from socket_bridge.components.core.context import sanitize_log_data
from socket_bridge.components.core.exceptions import DeliveryError, OversizeError
from socket_bridge.components.core.protocol import SystemMessage, oversize_message

if TYPE_CHECKING:
    from socket_bridge.components.connection.registry import Connection, ConnectionRegistry
    from socket_bridge.components.metrics.collector import MetricsCollector
    from socket_bridge.config.settings import RelayConfig

logger = logging.getLogger(__name__)

Payload = str | bytes


def is_ws_connected(transport: object) -> bool:
    """
    Check if a transport is in connected state before sending.

    Starlette WebSockets expose client_state/application_state; transports
    without them are assumed connected and fail on send instead.
    """
    return (
        getattr(transport, "client_state", WebSocketState.CONNECTED) == WebSocketState.CONNECTED
        and getattr(transport, "application_state", WebSocketState.CONNECTED)
        == WebSocketState.CONNECTED
    )


def payload_size(payload: Payload) -> int:
    """Size in bytes; text frames are measured UTF-8 encoded."""
    if isinstance(payload, bytes):
        return len(payload)
    return len(payload.encode("utf-8"))


class BroadcastRelay:
    """
    Handles relaying messages between connections.

    Responsibilities:
    - Enforce max_message_size on relayed payloads
    - Forward payloads to every connection except the sender
    - Send system notices to one, or all, connections
    """

    def __init__(
        self,
        config: "RelayConfig",
        registry: "ConnectionRegistry",
        metrics: "MetricsCollector",
    ) -> None:
        """
        Initialize the relay.

        Args:
            config: Immutable relay configuration
            registry: Live connections to fan out across
            metrics: Collects relay metrics
        """
        self._config = config
        self._registry = registry
        self._metrics = metrics
        self._batch_size = max(1, config.broadcast_batch_size)

    @property
    def max_message_size(self) -> int:
        return self._config.max_message_size

    def check_size(self, payload: Payload) -> None:
        """
        Raises:
            OversizeError: If the payload exceeds max_message_size.
        """
        size = payload_size(payload)
        if size > self._config.max_message_size:
            raise OversizeError(size, self._config.max_message_size)

    # =========================================================================
    # Public API
    # =========================================================================

    async def relay(self, sender_id: int, payload: Payload) -> int:
        """
        Forward a payload from one connection to every other connection.

        Oversized payloads are not forwarded; the sender gets a system
        notice instead and stays connected.

        Args:
            sender_id: Registry id of the sending connection.
            payload: Frame exactly as received; forwarded unmodified.

        Returns:
            Number of connections that received the payload.
        """
        try:
            self.check_size(payload)
        except OversizeError as e:
            logger.warning(
                "Message size exceeded limit",
                client_id=sender_id,
                size=e.size,
                max_size=e.limit,
            )
            self._metrics.increment_oversize()
            await self.send_system(sender_id, oversize_message(e.limit))
            return 0

        sender = self._registry.get(sender_id)
        if sender is None:
            logger.debug("Dropping message from unregistered connection", client_id=sender_id)
            return 0

        self._log_payload(sender, payload)

        recipients = [c for c in self._registry.snapshot() if c.id != sender_id]
        sent = await self._deliver(recipients, payload, context=f"relay:{sender_id}")
        self._metrics.increment_relayed()
        return sent

    async def broadcast_system(
        self,
        message: SystemMessage,
        exclude_id: int | None = None,
    ) -> int:
        """
        Send a system notice to every connection.

        Args:
            message: Notice to send.
            exclude_id: Connection to skip. None means nobody is skipped.

        Returns:
            Number of connections that received the notice.
        """
        recipients = [
            c for c in self._registry.snapshot()
            if exclude_id is None or c.id != exclude_id
        ]
        sent = await self._deliver(recipients, message.to_json(), context="system")
        self._metrics.increment_system_messages()
        return sent

    async def send_system(self, connection_id: int, message: SystemMessage) -> bool:
        """
        Send a system notice to a single connection.

        Returns:
            True if delivered, False if the connection is gone or the send failed.
        """
        connection = self._registry.get(connection_id)
        if connection is None:
            return False
        sent = await self._deliver([connection], message.to_json(), context="direct")
        self._metrics.increment_system_messages()
        return sent == 1

    # =========================================================================
    # Delivery
    # =========================================================================

    async def _send_to_connection(self, connection: "Connection", payload: Payload) -> bool:
        """
        Send to a single connection.

        Returns:
            True if sent, False if the connection left the registry first.

        Raises:
            DeliveryError: If the transport is closed or the send fails.
        """
        # Removed after the snapshot was taken: receives nothing
        if self._registry.get(connection.id) is not connection:
            return False

        transport = connection.transport
        if not is_ws_connected(transport):
            raise DeliveryError(connection.id)
        try:
            if isinstance(payload, bytes):
                await transport.send_bytes(payload)
            else:
                await transport.send_text(payload)
        except Exception as e:
            raise DeliveryError(connection.id, e) from e
        return True

    async def _deliver(
        self,
        connections: list["Connection"],
        payload: Payload,
        context: str,
    ) -> int:
        """
        Send to multiple connections in parallel batches.

        Args:
            connections: Snapshot of recipients.
            payload: Frame to send.
            context: Context string for logging.

        Returns:
            Number of connections that received the payload.
        """
        if not connections:
            return 0

        sent = 0
        failed = 0

        for i in range(0, len(connections), self._batch_size):
            batch = connections[i : i + self._batch_size]
            results = await asyncio.gather(
                *[self._send_to_connection(c, payload) for c in batch],
                return_exceptions=True,
            )

            for connection, result in zip(batch, results):
                if result is True:
                    sent += 1
                elif isinstance(result, DeliveryError):
                    failed += 1
                    logger.debug(
                        "Send failed, skipping recipient",
                        context=context,
                        client_id=connection.id,
                        error=str(result.cause) if result.cause else "not connected",
                    )
                elif isinstance(result, BaseException):
                    if isinstance(result, asyncio.CancelledError):
                        raise result
                    failed += 1
                    logger.warning(
                        "Unexpected error delivering message",
                        context=context,
                        client_id=connection.id,
                        error=str(result),
                    )

        if failed > 0:
            self._metrics.add_failed_recipients(failed)
            logger.debug(
                "Delivery completed with failures",
                context=context,
                sent=sent,
                failed=failed,
                total=len(connections),
            )

        return sent

    def _log_payload(self, sender: "Connection", payload: Payload) -> None:
        """Log relayed traffic; INFO in verbose mode, DEBUG otherwise."""
        log = logger.info if self._config.verbose else logger.debug
        log(
            "Message relayed",
            client_id=sender.id,
            name=sender.name,
            size=payload_size(payload),
            preview=sanitize_log_data(payload, BridgeConstants.LOG_PAYLOAD_PREVIEW),
        )
