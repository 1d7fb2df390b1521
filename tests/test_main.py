"""
Tests for serving the bridge under uvicorn.

Tests verify:
- On shutdown the relay stop contract runs before uvicorn closes sockets
- Listener and startup failures surface as TransportError
"""

import pytest
import uvicorn

from socket_bridge.components.core.constants import WSCloseCode
from socket_bridge.components.core.context import HandshakeInfo
from socket_bridge.components.core.exceptions import TransportError
from socket_bridge.config.settings import Settings
from socket_bridge.main import BridgeServer, run
from socket_bridge.relay_server import RelayServer

from conftest import FakeTransport


async def noop_app(scope, receive, send):
    pass


def bridge_server(relay: RelayServer) -> BridgeServer:
    return BridgeServer(uvicorn.Config(noop_app, log_config=None), relay)


class TestBridgeServerShutdown:
    """Shutdown ordering against uvicorn."""

    @pytest.mark.asyncio
    async def test_clients_notified_before_uvicorn_closes_sockets(self, monkeypatch, make_config):
        relay = RelayServer(make_config(heartbeat_interval=0))
        relay.start()
        transport = FakeTransport()
        await relay.connect(transport, HandshakeInfo(endpoint="/ws", name="A"))
        seen_by_uvicorn = []

        async def uvicorn_shutdown(self, sockets=None):
            seen_by_uvicorn.append((relay.client_count, list(transport.close_calls)))

        monkeypatch.setattr(uvicorn.Server, "shutdown", uvicorn_shutdown)

        await bridge_server(relay).shutdown()

        assert [m.message for m in transport.system_messages()] == [
            "Connected as A (ID: 1)",
            "Server shutting down",
        ]
        assert seen_by_uvicorn == [(0, [(WSCloseCode.GOING_AWAY, "Server shutting down")])]
        assert not relay.is_running

    @pytest.mark.asyncio
    async def test_lifespan_stop_after_shutdown_is_noop(self, monkeypatch, make_config):
        relay = RelayServer(make_config(heartbeat_interval=0))
        relay.start()
        transport = FakeTransport()
        await relay.connect(transport, HandshakeInfo(endpoint="/ws"))

        async def uvicorn_shutdown(self, sockets=None):
            pass

        monkeypatch.setattr(uvicorn.Server, "shutdown", uvicorn_shutdown)

        await bridge_server(relay).shutdown()
        await relay.stop()

        assert len(transport.close_calls) == 1


class TestRun:
    """run() error surfacing."""

    def test_bind_failure_raises_transport_error(self, monkeypatch):
        def exit_like_uvicorn(self, sockets=None):
            raise SystemExit(1)

        monkeypatch.setattr(BridgeServer, "run", exit_like_uvicorn)

        with pytest.raises(TransportError, match="Cannot listen on 127.0.0.1:18080"):
            run(Settings(_env_file=None, host="127.0.0.1", port=18080))

    def test_os_error_raises_transport_error(self, monkeypatch):
        def address_in_use(self, sockets=None):
            raise OSError(98, "Address already in use")

        monkeypatch.setattr(BridgeServer, "run", address_in_use)

        with pytest.raises(TransportError, match="Address already in use"):
            run(Settings(_env_file=None, host="127.0.0.1", port=18080))

    def test_failed_startup_raises_transport_error(self, monkeypatch):
        def never_started(self, sockets=None):
            self.started = False

        monkeypatch.setattr(BridgeServer, "run", never_started)

        with pytest.raises(TransportError, match="failed to start"):
            run(Settings(_env_file=None, host="127.0.0.1", port=18080))
