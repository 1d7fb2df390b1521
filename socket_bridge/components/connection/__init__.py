"""
Connection management components.

The live connection registry and the heartbeat monitor that evicts
unresponsive members from it.
"""

from socket_bridge.components.connection.registry import (
    Connection,
    ConnectionRegistry,
    Heartbeat,
    HeartbeatState,
    Transport,
)
from socket_bridge.components.connection.heartbeat import HeartbeatMonitor, handle_heartbeat

__all__ = [
    "Connection",
    "ConnectionRegistry",
    "Heartbeat",
    "HeartbeatState",
    "Transport",
    "HeartbeatMonitor",
    "handle_heartbeat",
]
