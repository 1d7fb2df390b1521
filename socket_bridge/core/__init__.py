"""
Socket Bridge Core Module.

The relay engine built on top of the components:
- connection/: broadcasting and connection lifecycle
"""

from socket_bridge.core.connection import (
    BroadcastRelay,
    ConnectionLifecycle,
    is_ws_connected,
)

__all__ = [
    "BroadcastRelay",
    "ConnectionLifecycle",
    "is_ws_connected",
]
