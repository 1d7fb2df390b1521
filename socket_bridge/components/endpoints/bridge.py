"""
Bridge WebSocket Endpoint.

One BridgeEndpoint per client socket. It owns the receive loop and passes
every inbound frame to the RelayServer; it holds no shared state itself.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fastapi import WebSocket, WebSocketDisconnect

from socket_bridge.components.core.context import HandshakeInfo
from socket_bridge.components.core.exceptions import AdmissionError
from socket_bridge.core.connection.broadcaster import is_ws_connected

if TYPE_CHECKING:
    from socket_bridge.components.connection.registry import Connection
    from socket_bridge.core.connection.broadcaster import Payload
    from socket_bridge.relay_server import RelayServer

logger = logging.getLogger(__name__)


class BridgeEndpoint:
    """
    Runs one client connection from handshake to removal.

    Handles the complete lifecycle:
    1. Accept and admit (rejections are closed with their code)
    2. Receive loop: text and binary frames go to RelayServer.handle_message
    3. Remove from the registry however the loop ends

    Usage:
        endpoint = BridgeEndpoint(websocket, server)
        await endpoint.run()
    """

    def __init__(self, websocket: WebSocket, server: "RelayServer") -> None:
        """
        Initialize the endpoint handler.

        Args:
            websocket: The WebSocket connection (not yet accepted).
            server: RelayServer the client joins.
        """
        self.websocket = websocket
        self.server = server
        self.handshake = HandshakeInfo.from_websocket(websocket)
        self.connection: "Connection | None" = None
        self._is_running = False

    @property
    def endpoint_name(self) -> str:
        return self.handshake.endpoint

    async def run(self) -> None:
        """Main entry point - run the WebSocket endpoint."""
        try:
            self.connection = await self.server.connect(self.websocket, self.handshake)
        except AdmissionError:
            return  # Already logged, audited and closed
        except ConnectionError as e:
            logger.warning(
                "WebSocket handshake failed",
                endpoint=self.endpoint_name,
                error=str(e),
            )
            return

        reason = "client_disconnect"
        self._is_running = True
        try:
            await self._message_loop()
        except WebSocketDisconnect as e:
            logger.debug(
                "WebSocket disconnected",
                client_id=self.connection.id,
                code=e.code,
            )
        except Exception as e:
            if is_ws_connected(self.websocket):
                reason = "error"
                logger.error(
                    "Unexpected error in receive loop",
                    endpoint=self.endpoint_name,
                    client_id=self.connection.id,
                    error=str(e),
                    exc_info=True,
                )
            else:
                # Closed from our side (eviction or shutdown) while receiving
                reason = "server_closed"
        finally:
            self._is_running = False
            await self.server.disconnect(self.connection, reason)

    async def _message_loop(self) -> None:
        """
        Receive frames until the client goes away.

        Raises:
            WebSocketDisconnect: When the client disconnects.
        """
        assert self.connection is not None
        while self._is_running:
            message = await self.websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000), message.get("reason"))

            data = self._frame_payload(message)
            if data is None:
                continue
            await self.server.handle_message(self.connection, data)

    @staticmethod
    def _frame_payload(message: dict) -> "Payload | None":
        """Text or binary payload of an ASGI websocket.receive message."""
        text = message.get("text")
        if text is not None:
            return text
        return message.get("bytes")
