"""
End-to-end tests through the FastAPI app with Starlette's TestClient.
"""

import json

import pytest
from starlette.websockets import WebSocketDisconnect

from socket_bridge.components.core.constants import MSG_PING_JSON, MSG_PONG_JSON, WSCloseCode


def system_text(frame: str) -> str:
    data = json.loads(frame)
    assert data["type"] == "system"
    return data["message"]


class TestHealthEndpoints:
    """Health check endpoints."""

    def test_health_check(self, make_client):
        with make_client(max_clients=3) as client:
            response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["service"] == "socket-bridge"
        assert data["clients"] == 0
        assert data["max_clients"] == 3

    def test_detailed_health_reports_connections(self, make_client):
        with make_client() as client:
            with client.websocket_connect("/ws?name=alice") as ws:
                ws.receive_text()
                data = client.get("/health/detailed").json()

        assert data["clients"] == 1
        assert data["connections"][0]["name"] == "alice"
        assert data["metrics"]["connections_accepted"] == 1
        assert "heartbeat" in data


class TestBridgeScenarios:
    """Admission and relay through real WebSocket sessions."""

    def test_capacity_and_relay(self, make_client):
        with make_client(max_clients=2, api_key="k") as client:
            with client.websocket_connect("/?apiKey=k&name=A") as a, \
                    client.websocket_connect("/ws?apiKey=k&name=B") as b:
                assert system_text(a.receive_text()) == "Connected as A (ID: 1)"
                assert system_text(b.receive_text()) == "Connected as B (ID: 2)"

                with client.websocket_connect("/ws?apiKey=k") as c:
                    with pytest.raises(WebSocketDisconnect) as exc_info:
                        c.receive_text()
                assert exc_info.value.code == WSCloseCode.SERVER_OVERLOADED

                a.send_text("hi")
                assert b.receive_text() == "hi"

                # A never got its own "hi": the next frame it sees is B's reply
                b.send_text("ack")
                assert a.receive_text() == "ack"

    def test_wrong_api_key_rejected(self, make_client):
        with make_client(api_key="k") as client:
            with client.websocket_connect("/ws?apiKey=wrong") as ws:
                with pytest.raises(WebSocketDisconnect) as exc_info:
                    ws.receive_text()

            assert exc_info.value.code == WSCloseCode.AUTH_FAILED
            assert client.get("/health").json()["clients"] == 0

    def test_origin_validation_without_allowed_origins_rejects(self, make_client):
        with make_client(validate_origin=True) as client:
            with client.websocket_connect(
                "/ws", headers={"origin": "https://app.example.com"}
            ) as ws:
                with pytest.raises(WebSocketDisconnect) as exc_info:
                    ws.receive_text()

        assert exc_info.value.code == WSCloseCode.FORBIDDEN

    def test_allowed_origin_admitted(self, make_client):
        with make_client(validate_origin=True, allowed_origins="*.example.com") as client:
            with client.websocket_connect(
                "/ws", headers={"origin": "https://app.example.com"}
            ) as ws:
                assert system_text(ws.receive_text()).startswith("Connected as client-1")

    def test_default_name(self, make_client):
        with make_client() as client:
            with client.websocket_connect("/ws") as ws:
                assert system_text(ws.receive_text()) == "Connected as client-1 (ID: 1)"

    def test_oversize_message(self, make_client):
        with make_client(max_message_size=10) as client:
            with client.websocket_connect("/ws?name=A") as a, \
                    client.websocket_connect("/ws?name=B") as b:
                a.receive_text()
                b.receive_text()

                a.send_text("x" * 11)
                assert "Exceeds size limit" in system_text(a.receive_text())

                a.send_text("ok")
                assert b.receive_text() == "ok"

    def test_binary_relay(self, make_client):
        with make_client() as client:
            with client.websocket_connect("/ws") as a, client.websocket_connect("/ws") as b:
                a.receive_text()
                b.receive_text()

                a.send_bytes(b"\x01\x02\x03")
                assert b.receive_bytes() == b"\x01\x02\x03"

    def test_client_ping_answered(self, make_client):
        with make_client(heartbeat_interval=30.0) as client:
            with client.websocket_connect("/ws") as a, client.websocket_connect("/ws") as b:
                a.receive_text()
                b.receive_text()

                a.send_text(MSG_PING_JSON)
                assert a.receive_text() == MSG_PONG_JSON

                a.send_text("after")
                assert b.receive_text() == "after"

    def test_bare_ping_text_is_chat(self, make_client):
        with make_client(heartbeat_interval=30.0) as client:
            with client.websocket_connect("/ws") as a, client.websocket_connect("/ws") as b:
                a.receive_text()
                b.receive_text()

                a.send_text("ping")
                a.send_text("pong")
                assert b.receive_text() == "ping"
                assert b.receive_text() == "pong"

    def test_announcements(self, make_client):
        with make_client(announce_connections=True) as client:
            with client.websocket_connect("/ws?name=A") as a:
                a.receive_text()
                with client.websocket_connect("/ws?name=B") as b:
                    b.receive_text()
                    assert system_text(a.receive_text()) == "B has joined the bridge"
                assert system_text(a.receive_text()) == "B has left the bridge"


class TestShutdown:
    """Lifespan exit runs the stop contract."""

    def test_lifespan_exit_stops_server(self, make_client):
        client = make_client()
        with client:
            server = client.app.state.server
            with client.websocket_connect("/ws") as ws:
                ws.receive_text()
                assert server.client_count == 1
        assert server.client_count == 0
        assert not server.is_running
