"""
Core Socket Bridge components.

Foundational components: constants, exceptions, the system message
protocol and handshake context.
"""

from socket_bridge.components.core.constants import WSCloseCode, BridgeConstants
from socket_bridge.components.core.context import HandshakeInfo, sanitize_log_data
from socket_bridge.components.core.protocol import SystemMessage

__all__ = [
    # Constants
    "WSCloseCode",
    "BridgeConstants",
    # Context
    "HandshakeInfo",
    "sanitize_log_data",
    # Protocol
    "SystemMessage",
]
