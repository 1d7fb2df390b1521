"""
Socket Bridge Constants.

Close codes, heartbeat control frames and operational constants shared by
admission, relay and heartbeat components.
"""

from enum import IntEnum
from typing import Final

__all__ = [
    "WSCloseCode",
    "BridgeConstants",
    "PING_TYPE",
    "MSG_PING_JSON",
    "PONG_TYPE",
    "MSG_PONG_JSON",
    "SYSTEM_MESSAGE_TYPE",
]


class WSCloseCode(IntEnum):
    """
    WebSocket close codes used by the bridge.

    Standard codes (1000-1999) from RFC 6455.
    Custom codes (4000-4999) for application-specific errors.
    Each admission check and the heartbeat eviction have their own code so
    clients can tell them apart.
    """

    # Standard codes (RFC 6455)
    NORMAL = 1000  # Normal closure
    GOING_AWAY = 1001  # Server shutting down
    POLICY_VIOLATION = 1008  # Generic policy violation
    SERVER_ERROR = 1011  # Unexpected server error
    SERVER_OVERLOADED = 1013  # Maximum clients reached, try again later

    # Custom application codes (4000-4999)
    AUTH_FAILED = 4001  # Missing or wrong apiKey
    FORBIDDEN = 4003  # Origin header missing or not allowed
    HEARTBEAT_TIMEOUT = 4008  # No pong within ping_timeout


class BridgeConstants:
    """
    Socket Bridge operational constants.

    Runtime limits (max clients, message size, heartbeat timing) live in
    Settings; these are the fixed values around them.
    """

    # WS_ACCEPT_TIMEOUT: 5 seconds
    # Upper bound for the WebSocket handshake to complete.
    WS_ACCEPT_TIMEOUT: Final[float] = 5.0

    # LOG_PAYLOAD_PREVIEW: 100 characters
    # Relayed payloads are truncated to this length in verbose logs.
    LOG_PAYLOAD_PREVIEW: Final[int] = 100

    # MAX_NAME_LENGTH: 64 characters
    # Display names above this length are truncated at admission.
    MAX_NAME_LENGTH: Final[int] = 64

    # MONITOR_STOP_TIMEOUT: 5 seconds
    # How long stop() waits for the heartbeat task to finish.
    MONITOR_STOP_TIMEOUT: Final[float] = 5.0

    # DEFAULT_NAME_TEMPLATE
    # Display name assigned when the client omits ?name=.
    DEFAULT_NAME_TEMPLATE: Final[str] = "client-{id}"


# Heartbeat control frames: JSON only, so chat text such as "ping" is relayed
PING_TYPE: Final[str] = "ping"
PONG_TYPE: Final[str] = "pong"
MSG_PING_JSON: Final[str] = '{"type":"ping"}'
MSG_PONG_JSON: Final[str] = '{"type":"pong"}'

# Discriminator of system notifications
SYSTEM_MESSAGE_TYPE: Final[str] = "system"
