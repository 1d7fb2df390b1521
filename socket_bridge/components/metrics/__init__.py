"""
Metrics and observability components.
"""

from socket_bridge.components.metrics.collector import (
    MetricsCollector,
    AdmissionMetrics,
    RelayMetrics,
    HeartbeatMetrics,
)

__all__ = [
    "MetricsCollector",
    "AdmissionMetrics",
    "RelayMetrics",
    "HeartbeatMetrics",
]
