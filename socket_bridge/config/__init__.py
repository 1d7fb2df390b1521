"""
Configuration and logging for the bridge.
"""

from socket_bridge.config.logging import (
    audit_ws_connection,
    get_logger,
    setup_logging,
)
from socket_bridge.config.settings import RelayConfig, Settings, get_settings

__all__ = [
    "RelayConfig",
    "Settings",
    "get_settings",
    "setup_logging",
    "get_logger",
    "audit_ws_connection",
]
