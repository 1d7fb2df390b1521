"""
WebSocket endpoint components.
"""

from socket_bridge.components.endpoints.bridge import BridgeEndpoint

__all__ = ["BridgeEndpoint"]
