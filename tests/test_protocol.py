"""
Tests for the system message protocol and heartbeat control frames.
"""

import json
import re
from datetime import datetime, timezone

import pytest

from socket_bridge.components.core.protocol import (
    SystemMessage,
    is_ping,
    is_pong,
    joined_message,
    left_message,
    oversize_message,
    shutdown_message,
    utc_timestamp,
    welcome_message,
)

TIMESTAMP_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z$")


class TestSystemMessage:
    """Wire encoding of system notices."""

    def test_to_json_fields(self):
        message = SystemMessage(message="hello", timestamp="2024-05-01T12:00:00.000Z")
        assert message.to_json() == (
            '{"type":"system","message":"hello","timestamp":"2024-05-01T12:00:00.000Z"}'
        )

    def test_create_stamps_utc_time(self):
        message = SystemMessage.create("hello")
        assert message.type == "system"
        assert TIMESTAMP_PATTERN.match(message.timestamp)

    def test_from_json_decodes_notice(self):
        raw = SystemMessage.create("hello").to_json()
        decoded = SystemMessage.from_json(raw)
        assert decoded.message == "hello"

    @pytest.mark.parametrize(
        "raw",
        [
            "hi",
            "[1, 2]",
            '{"type": "chat", "message": "x", "timestamp": "t"}',
            '{"type": "system", "message": 5, "timestamp": "t"}',
        ],
    )
    def test_from_json_rejects_non_system_frames(self, raw):
        with pytest.raises(ValueError):
            SystemMessage.from_json(raw)

    def test_utc_timestamp_format(self):
        moment = datetime(2024, 5, 1, 12, 0, 0, 123456, tzinfo=timezone.utc)
        assert utc_timestamp(moment) == "2024-05-01T12:00:00.123Z"


class TestNoticeBuilders:
    """Notice texts seen by clients."""

    def test_welcome(self):
        assert welcome_message("alice", 1).message == "Connected as alice (ID: 1)"

    def test_join_and_leave(self):
        assert joined_message("bob").message == "bob has joined the bridge"
        assert left_message("bob").message == "bob has left the bridge"

    def test_shutdown(self):
        assert shutdown_message().message == "Server shutting down"

    def test_oversize_mentions_limit(self):
        text = oversize_message(1024).message
        assert "Exceeds size limit" in text
        assert "1024 bytes" in text

    def test_notice_is_json_record(self):
        data = json.loads(joined_message("bob").to_json())
        assert set(data) == {"type", "message", "timestamp"}


class TestControlFrames:
    """Ping/pong recognition."""

    @pytest.mark.parametrize("frame", ['{"type":"ping"}', '{"type": "ping"}'])
    def test_ping_variants(self, frame):
        assert is_ping(frame)
        assert not is_pong(frame)

    @pytest.mark.parametrize("frame", ['{"type":"pong"}', ' {"type": "pong"} '])
    def test_pong_variants(self, frame):
        assert is_pong(frame)
        assert not is_ping(frame)

    @pytest.mark.parametrize(
        "frame",
        ["ping", "pong", "PING", "ping me", '{"type":"pong","extra":1}', '{"type":"chat"}', "x" * 64],
    )
    def test_application_payloads_are_not_control_frames(self, frame):
        assert not is_ping(frame)
        assert not is_pong(frame)
