"""
Metrics Collector for Socket Bridge.

Centralizes in-process counters for observability. Exposed on the detailed
health endpoint; nothing is exported to an external system.
"""

from __future__ import annotations

import threading
from dataclasses import asdict, dataclass
from typing import Any


@dataclass
class AdmissionMetrics:
    """Metrics for connection admission."""
    accepted: int = 0
    rejected_origin: int = 0
    rejected_api_key: int = 0
    rejected_capacity: int = 0
    rejected_shutdown: int = 0


@dataclass
class RelayMetrics:
    """Metrics for the relay path."""
    messages_relayed: int = 0
    messages_oversize: int = 0
    system_messages: int = 0
    recipients_failed: int = 0


@dataclass
class HeartbeatMetrics:
    """Metrics for the heartbeat monitor."""
    pings_sent: int = 0
    pongs_received: int = 0
    evictions: int = 0


# Maps AdmissionError.audit_reason to the counter it increments
_REJECTION_FIELDS = {
    "invalid_origin": "rejected_origin",
    "invalid_api_key": "rejected_api_key",
    "capacity": "rejected_capacity",
    "shutdown": "rejected_shutdown",
}


class MetricsCollector:
    """
    Thread-safe metrics collector.

    Every method is synchronous: counters are bumped from the hot path
    without awaiting.

    Usage:
        metrics = MetricsCollector()
        metrics.increment_relayed()
        stats = metrics.get_snapshot()
    """

    def __init__(self) -> None:
        """Initialize metrics collector."""
        self._lock = threading.Lock()
        self._admission = AdmissionMetrics()
        self._relay = RelayMetrics()
        self._heartbeat = HeartbeatMetrics()

    # ==========================================================================
    # Admission Metrics
    # ==========================================================================

    def increment_accepted(self) -> None:
        """Increment count of admitted connections."""
        with self._lock:
            self._admission.accepted += 1

    def increment_rejected(self, audit_reason: str) -> None:
        """
        Increment the rejection counter for an admission failure.

        Args:
            audit_reason: AdmissionError.audit_reason of the rejection.
        """
        field_name = _REJECTION_FIELDS.get(audit_reason)
        if field_name is None:
            return
        with self._lock:
            setattr(self._admission, field_name, getattr(self._admission, field_name) + 1)

    # ==========================================================================
    # Relay Metrics
    # ==========================================================================

    def increment_relayed(self) -> None:
        """Increment count of relayed application payloads."""
        with self._lock:
            self._relay.messages_relayed += 1

    def increment_oversize(self) -> None:
        """Increment count of payloads dropped for size."""
        with self._lock:
            self._relay.messages_oversize += 1

    def increment_system_messages(self) -> None:
        """Increment count of system notices sent (broadcast or direct)."""
        with self._lock:
            self._relay.system_messages += 1

    def add_failed_recipients(self, count: int) -> None:
        """Add count of recipients a send failed for."""
        with self._lock:
            self._relay.recipients_failed += count

    # ==========================================================================
    # Heartbeat Metrics
    # ==========================================================================

    def add_pings_sent(self, count: int) -> None:
        """Add count of pings sent in a tick."""
        with self._lock:
            self._heartbeat.pings_sent += count

    def increment_pongs(self) -> None:
        """Increment count of pongs received."""
        with self._lock:
            self._heartbeat.pongs_received += 1

    def increment_evictions(self) -> None:
        """Increment count of heartbeat evictions."""
        with self._lock:
            self._heartbeat.evictions += 1

    # ==========================================================================
    # Snapshot
    # ==========================================================================

    def get_snapshot(self) -> dict[str, Any]:
        """
        Get a snapshot of all metrics.

        Metric names follow {category}_{metric}.
        """
        with self._lock:
            snapshot: dict[str, Any] = {}
            for category, values in (
                ("connections", self._admission),
                ("relay", self._relay),
                ("heartbeat", self._heartbeat),
            ):
                for name, value in asdict(values).items():
                    snapshot[f"{category}_{name}"] = value
            return snapshot
