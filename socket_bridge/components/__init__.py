"""
Socket Bridge Components.

Organized into domain-specific modules:
- core/       - Foundational components (constants, exceptions, protocol, context)
- connection/ - Connection registry and heartbeat monitor
- admission/  - Origin, API key and capacity checks
- metrics/    - In-process counters
- endpoints/  - Per-connection WebSocket endpoint

Import from the specific submodules; endpoints/ depends on the relay
engine in socket_bridge.core and is not re-exported here.
"""

from socket_bridge.components.core.constants import WSCloseCode, BridgeConstants
from socket_bridge.components.core.exceptions import (
    BridgeError,
    AdmissionError,
    OriginRejectedError,
    InvalidApiKeyError,
    CapacityExceededError,
    ServerShuttingDownError,
    DeliveryError,
    OversizeError,
    HeartbeatTimeoutError,
    TransportError,
)
from socket_bridge.components.core.protocol import SystemMessage
from socket_bridge.components.connection.registry import (
    Connection,
    ConnectionRegistry,
    HeartbeatState,
)
from socket_bridge.components.connection.heartbeat import HeartbeatMonitor
from socket_bridge.components.admission.controller import AdmissionController, AdmissionResult
from socket_bridge.components.metrics.collector import MetricsCollector

__all__ = [
    # Core
    "WSCloseCode",
    "BridgeConstants",
    "SystemMessage",
    # Exceptions
    "BridgeError",
    "AdmissionError",
    "OriginRejectedError",
    "InvalidApiKeyError",
    "CapacityExceededError",
    "ServerShuttingDownError",
    "DeliveryError",
    "OversizeError",
    "HeartbeatTimeoutError",
    "TransportError",
    # Connection
    "Connection",
    "ConnectionRegistry",
    "HeartbeatState",
    "HeartbeatMonitor",
    # Admission
    "AdmissionController",
    "AdmissionResult",
    # Metrics
    "MetricsCollector",
]
