"""
System Message Protocol.

System notifications travel on the same channel as relayed payloads, as a
JSON record with a ``type`` discriminator:

    {"type": "system", "message": "Connected as alice (ID: 1)", "timestamp": "2024-05-01T12:00:00.000Z"}

Clients tell system notices from relayed content only by decoding the frame
and checking ``type``. A relayed payload that happens to have the same shape
is indistinguishable from a genuine notice; the bridge does not try to
prevent that.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Self

from socket_bridge.components.core.constants import (
    MSG_PING_JSON,
    MSG_PONG_JSON,
    PING_TYPE,
    PONG_TYPE,
    SYSTEM_MESSAGE_TYPE,
)

__all__ = [
    "SystemMessage",
    "utc_timestamp",
    "welcome_message",
    "joined_message",
    "left_message",
    "shutdown_message",
    "oversize_message",
    "is_ping",
    "is_pong",
]


def utc_timestamp(moment: datetime | None = None) -> str:
    """
    ISO-8601 UTC timestamp with millisecond precision and a Z suffix.

    Args:
        moment: Aware datetime to format. Defaults to now.
    """
    moment = moment or datetime.now(timezone.utc)
    return (
        moment.astimezone(timezone.utc)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z")
    )


@dataclass(frozen=True, slots=True)
class SystemMessage:
    """
    A protocol-level notification.

    Constructed per notification and never persisted.
    """

    message: str
    timestamp: str
    type: str = SYSTEM_MESSAGE_TYPE

    @classmethod
    def create(cls, message: str) -> Self:
        """Create a notice stamped with the current time."""
        return cls(message=message, timestamp=utc_timestamp())

    def to_dict(self) -> dict[str, Any]:
        """Field order matches the wire format: type, message, timestamp."""
        data = asdict(self)
        return {
            "type": data["type"],
            "message": data["message"],
            "timestamp": data["timestamp"],
        }

    def to_json(self) -> str:
        """Serialize for the wire."""
        return json.dumps(self.to_dict(), separators=(",", ":"))

    @classmethod
    def from_json(cls, raw: str | bytes) -> Self:
        """
        Decode a frame into a SystemMessage.

        Raises:
            ValueError: If the frame is not JSON or not a system record.
        """
        try:
            data = json.loads(raw)
        except (TypeError, json.JSONDecodeError) as e:
            raise ValueError(f"Not a JSON frame: {e}") from e

        if not isinstance(data, dict) or data.get("type") != SYSTEM_MESSAGE_TYPE:
            raise ValueError("Not a system message")

        message = data.get("message")
        timestamp = data.get("timestamp")
        if not isinstance(message, str) or not isinstance(timestamp, str):
            raise ValueError("System message requires string message and timestamp")

        return cls(message=message, timestamp=timestamp)


# =============================================================================
# Notice builders
# =============================================================================


def welcome_message(name: str, connection_id: int) -> SystemMessage:
    """Sent to a client right after it is registered."""
    return SystemMessage.create(f"Connected as {name} (ID: {connection_id})")


def joined_message(name: str) -> SystemMessage:
    """Announced to everyone else when a client joins."""
    return SystemMessage.create(f"{name} has joined the bridge")


def left_message(name: str) -> SystemMessage:
    """Announced to the remaining clients when a client leaves."""
    return SystemMessage.create(f"{name} has left the bridge")


def shutdown_message() -> SystemMessage:
    """Sent to every client by the stop contract."""
    return SystemMessage.create("Server shutting down")


def oversize_message(limit: int) -> SystemMessage:
    """Sent back to a sender whose payload was dropped."""
    return SystemMessage.create(f"Message rejected: Exceeds size limit of {limit} bytes")


# =============================================================================
# Heartbeat control frames
# =============================================================================


# Control frames are tiny; anything longer is an application payload
_MAX_CONTROL_FRAME = 32


def _control_type(data: str) -> str | None:
    """
    Return "ping"/"pong" for a JSON control frame, None for anything else.

    Only ``{"type": "ping"}`` and ``{"type": "pong"}`` (any whitespace)
    qualify. Bare words are ordinary chat text and get relayed.
    """
    if data == MSG_PING_JSON:
        return PING_TYPE
    if data == MSG_PONG_JSON:
        return PONG_TYPE
    if len(data) > _MAX_CONTROL_FRAME or not data.lstrip().startswith("{"):
        return None
    try:
        decoded = json.loads(data)
    except json.JSONDecodeError:
        return None
    if isinstance(decoded, dict) and len(decoded) == 1:
        frame_type = decoded.get("type")
        if frame_type in (PING_TYPE, PONG_TYPE):
            return frame_type
    return None


def is_ping(data: str) -> bool:
    """Client-initiated liveness probe."""
    return _control_type(data) == PING_TYPE


def is_pong(data: str) -> bool:
    """Answer to a server ping."""
    return _control_type(data) == PONG_TYPE
