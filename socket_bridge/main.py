"""
Socket Bridge main application.

Relays every message a client sends to every other connected client.
Clients connect on ``/`` or ``/ws``:

    ws://localhost:8080/ws?apiKey=secret&name=alice

Run with:
    python -m socket_bridge.main
"""

from __future__ import annotations

from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, WebSocket

from socket_bridge import __version__
from socket_bridge.components.core.exceptions import TransportError
from socket_bridge.components.endpoints.bridge import BridgeEndpoint
from socket_bridge.config.logging import bridge_logger as logger, setup_logging
from socket_bridge.config.settings import Settings, get_settings
from socket_bridge.relay_server import RelayServer


def create_app(settings: Settings | None = None) -> FastAPI:
    """
    Build the FastAPI application around a fresh RelayServer.

    Args:
        settings: Settings to use. Defaults to the cached environment settings.

    Returns:
        The application; its RelayServer is on ``app.state.server``.
    """
    settings = settings or get_settings()
    server = RelayServer(settings.to_relay_config())

    # =========================================================================
    # Lifespan
    # =========================================================================

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Application lifespan handler.

        Starts the heartbeat monitor; on exit runs the stop contract
        (shutdown notice, close with GOING_AWAY, empty registry).
        """
        setup_logging(settings)

        errors = settings.validate_relay_settings()
        for error in errors:
            logger.error("Invalid configuration", error=error)
        if errors and settings.environment == "production":
            raise TransportError(f"Refusing to start with invalid configuration: {'; '.join(errors)}")

        logger.info(
            "Starting Socket Bridge",
            host=settings.host,
            port=settings.port,
            env=settings.environment,
        )
        server.start()

        yield

        logger.info("Shutting down Socket Bridge")
        await server.stop()

    app = FastAPI(
        title="Socket Bridge",
        description="Real-time WebSocket message relay",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.server = server
    app.state.settings = settings

    # =========================================================================
    # Health Check
    # =========================================================================

    @app.get("/health")
    def health_check():
        """Basic health check endpoint."""
        return {
            "status": "healthy",
            "service": "socket-bridge",
            "version": app.version,
            "clients": server.client_count,
            "max_clients": settings.max_clients,
        }

    @app.get("/health/detailed")
    def detailed_health_check():
        """Detailed health check with heartbeat state and metrics."""
        return {
            "status": "healthy" if server.is_running else "stopped",
            "service": "socket-bridge",
            "version": app.version,
            "environment": settings.environment,
            **server.get_stats(),
        }

    # =========================================================================
    # WebSocket Endpoints
    # =========================================================================

    @app.websocket("/")
    async def bridge_root(websocket: WebSocket):
        """Bridge endpoint on the root path."""
        await BridgeEndpoint(websocket, server).run()

    @app.websocket("/ws")
    async def bridge_ws(websocket: WebSocket):
        """Bridge endpoint on /ws."""
        await BridgeEndpoint(websocket, server).run()

    return app


class BridgeServer(uvicorn.Server):
    """
    uvicorn server that runs the relay's stop contract first on shutdown.

    uvicorn closes every open WebSocket with 1012 before it sends the
    lifespan shutdown event, so stopping from the lifespan alone would find
    an empty registry. Stopping here delivers "Server shutting down" and
    the 1001 close while the connections are still open.
    """

    def __init__(self, config: uvicorn.Config, relay: RelayServer) -> None:
        super().__init__(config)
        self.relay = relay

    async def shutdown(self, sockets=None) -> None:
        logger.info("Stopping relay before closing connections")
        await self.relay.stop()
        await super().shutdown(sockets=sockets)


def run(settings: Settings | None = None) -> None:
    """
    Serve the bridge with uvicorn until interrupted.

    Raises:
        TransportError: If the listener cannot be bound or startup fails.
    """
    settings = settings or get_settings()
    app = create_app(settings)
    config = uvicorn.Config(app, host=settings.host, port=settings.port, log_config=None)
    server = BridgeServer(config, app.state.server)

    address = f"{settings.host}:{settings.port}"
    try:
        server.run()
    except OSError as e:
        raise TransportError(f"Cannot listen on {address}: {e}") from e
    except SystemExit as e:
        # uvicorn logs a bind failure and exits instead of raising
        raise TransportError(f"Cannot listen on {address}") from e

    if not server.started:
        raise TransportError(f"Socket Bridge failed to start on {address}")


# =============================================================================
# Development entry point
# =============================================================================

if __name__ == "__main__":
    run()
