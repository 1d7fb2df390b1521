"""
Connection Relay Module.

- broadcaster.py: Payload and system notice fan-out
- lifecycle.py: Connection accept/admit/disconnect and their notices
"""

from socket_bridge.core.connection.broadcaster import BroadcastRelay, is_ws_connected, payload_size
from socket_bridge.core.connection.lifecycle import ConnectionLifecycle, close_transport

__all__ = [
    "BroadcastRelay",
    "ConnectionLifecycle",
    "close_transport",
    "is_ws_connected",
    "payload_size",
]
