"""
Pytest configuration and fixtures for bridge tests.
"""

from __future__ import annotations

import json
from typing import Callable

import pytest
from fastapi.testclient import TestClient

from socket_bridge.components.connection.registry import Connection, ConnectionRegistry
from socket_bridge.components.core.protocol import SystemMessage
from socket_bridge.components.metrics.collector import MetricsCollector
from socket_bridge.config.settings import RelayConfig, Settings
from socket_bridge.main import create_app


class FakeTransport:
    """
    In-memory stand-in for a WebSocket.

    Records every frame sent and every close call. Can also be accepted,
    so it works wherever the lifecycle expects a Starlette WebSocket.
    """

    def __init__(
        self,
        fail_send: bool = False,
        on_send: Callable[[str | bytes], None] | None = None,
    ) -> None:
        self.sent: list[str | bytes] = []
        self.accepted = False
        self.close_calls: list[tuple[int, str | None]] = []
        self.fail_send = fail_send
        self.on_send = on_send

    async def accept(self) -> None:
        self.accepted = True

    async def send_text(self, data: str) -> None:
        if self.fail_send:
            raise ConnectionError("WebSocket closed")
        self.sent.append(data)
        if self.on_send is not None:
            self.on_send(data)

    async def send_bytes(self, data: bytes) -> None:
        if self.fail_send:
            raise ConnectionError("WebSocket closed")
        self.sent.append(data)
        if self.on_send is not None:
            self.on_send(data)

    async def close(self, code: int = 1000, reason: str | None = None) -> None:
        self.close_calls.append((code, reason))

    @property
    def close_code(self) -> int | None:
        return self.close_calls[-1][0] if self.close_calls else None

    def system_messages(self) -> list[SystemMessage]:
        """Decoded system notices among the sent frames."""
        notices = []
        for frame in self.sent:
            if not isinstance(frame, str):
                continue
            try:
                notices.append(SystemMessage.from_json(frame))
            except ValueError:
                continue
        return notices

    def payloads(self) -> list[str | bytes]:
        """Sent frames that are not system notices."""
        system = {m.to_json() for m in self.system_messages()}
        return [f for f in self.sent if not (isinstance(f, str) and f in system)]


def decode(frame: str) -> dict:
    return json.loads(frame)


@pytest.fixture
def make_config() -> Callable[..., RelayConfig]:
    """Factory for RelayConfig with overrides."""
    def _make(**overrides) -> RelayConfig:
        return RelayConfig(**overrides)
    return _make


@pytest.fixture
def config() -> RelayConfig:
    return RelayConfig()


@pytest.fixture
def registry() -> ConnectionRegistry:
    return ConnectionRegistry()


@pytest.fixture
def metrics() -> MetricsCollector:
    return MetricsCollector()


@pytest.fixture
def connect(registry):
    """Register a connection backed by a FakeTransport."""
    async def _connect(name: str | None = None, transport: FakeTransport | None = None) -> Connection:
        connection = Connection(transport=transport or FakeTransport(), requested_name=name)
        await registry.register(connection)
        return connection
    return _connect


@pytest.fixture
def make_client():
    """
    Build a TestClient around a fresh app.

    Use it as a context manager so the lifespan runs and every WebSocket
    shares one event loop.
    """
    def _make(**overrides) -> TestClient:
        overrides.setdefault("heartbeat_interval", 0)
        settings = Settings(_env_file=None, **overrides)
        return TestClient(create_app(settings))
    return _make
