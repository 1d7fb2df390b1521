"""
Handshake context and log sanitization.

Encapsulates what admission needs to know about an incoming connection so
the controller never touches the transport directly.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

from socket_bridge.components.core.constants import BridgeConstants

if TYPE_CHECKING:
    from starlette.websockets import WebSocket


# C0/C1 controls, zero-width marks, bidi embeddings and isolates, BOM
_UNPRINTABLE = re.compile(
    r"[\x00-\x1f\x7f-\x9f\u200b-\u200f\u202a-\u202e\u2066-\u2069\ufeff]"
)
_ESCAPES = str.maketrans({"\\": "\\\\", '"': '\\"'})


def sanitize_log_data(data: str | bytes, max_length: int = 100) -> str:
    """
    Make client-controlled text safe to put in a log line.

    The text is cut to ``max_length`` before escaping, so an escape sequence
    is never split. Unprintable characters are dropped. Quotes and
    backslashes are escaped. Binary payloads are logged by size only.
    """
    if isinstance(data, bytes):
        return f"<binary {len(data)} bytes>"

    suffix = "..." if len(data) > max_length else ""
    cleaned = _UNPRINTABLE.sub("", data[:max_length])
    return cleaned.translate(_ESCAPES) + suffix


def normalize_name(name: str | None) -> str | None:
    """
    Clean a client-supplied display name.

    Returns None when nothing usable remains, so the caller falls back to
    the default ``client-{id}`` name.
    """
    if not name:
        return None
    cleaned = _UNPRINTABLE.sub("", name).strip()
    if not cleaned:
        return None
    return cleaned[:BridgeConstants.MAX_NAME_LENGTH]


@dataclass(frozen=True, slots=True)
class HandshakeInfo:
    """
    Admission inputs extracted from the WebSocket handshake.

    Attributes:
        endpoint: Path the client connected to (for audit logs).
        origin: Origin header, None when absent.
        api_key: ?apiKey= query parameter, None when absent.
        name: ?name= query parameter after normalization, None when absent.
    """

    endpoint: str
    origin: str | None = None
    api_key: str | None = None
    name: str | None = None

    @classmethod
    def from_websocket(cls, websocket: "WebSocket") -> "HandshakeInfo":
        """
        Create handshake info from a Starlette WebSocket.

        Args:
            websocket: The WebSocket connection (not yet accepted is fine).

        Returns:
            HandshakeInfo with origin, apiKey and name.
        """
        params = websocket.query_params
        return cls(
            endpoint=websocket.url.path,
            origin=websocket.headers.get("origin"),
            api_key=params.get("apiKey"),
            name=normalize_name(params.get("name")),
        )
