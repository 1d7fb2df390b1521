"""
Bridge exceptions.

Usage:
    from socket_bridge.components.core.exceptions import CapacityExceededError

    raise CapacityExceededError(max_clients=10)

AdmissionError subclasses carry the close code and reason the socket is
closed with; everything else is recovered locally by the component that
raises it.
"""

from __future__ import annotations

from socket_bridge.components.core.constants import WSCloseCode


class BridgeError(Exception):
    """Base class for all bridge errors."""


# =============================================================================
# Admission
# =============================================================================


class AdmissionError(BridgeError):
    """
    Connection attempt rejected at admission.

    Terminal for the attempt: the socket is closed with ``close_code`` and
    never registered.
    """

    close_code: int = WSCloseCode.POLICY_VIOLATION
    reason: str = "Connection rejected"
    audit_reason: str = "rejected"

    def __init__(self, detail: str | None = None) -> None:
        self.detail = detail or self.reason
        super().__init__(self.detail)


class OriginRejectedError(AdmissionError):
    """Origin header missing, or not in the allowed list."""

    close_code = WSCloseCode.FORBIDDEN
    reason = "Origin not allowed"
    audit_reason = "invalid_origin"

    def __init__(self, origin: str | None) -> None:
        self.origin = origin
        if origin:
            super().__init__(f"Origin {origin!r} not allowed")
        else:
            super().__init__("Missing Origin header")


class InvalidApiKeyError(AdmissionError):
    """Presented apiKey does not match the configured one."""

    close_code = WSCloseCode.AUTH_FAILED
    reason = "Invalid API key"
    audit_reason = "invalid_api_key"


class CapacityExceededError(AdmissionError):
    """Registry already holds max_clients connections."""

    close_code = WSCloseCode.SERVER_OVERLOADED
    reason = "Maximum clients reached"
    audit_reason = "capacity"

    def __init__(self, max_clients: int) -> None:
        self.max_clients = max_clients
        super().__init__(f"Server at capacity ({max_clients} clients)")


class ServerShuttingDownError(AdmissionError):
    """Admission attempted after stop() began."""

    close_code = WSCloseCode.GOING_AWAY
    reason = "Server shutting down"
    audit_reason = "shutdown"


# =============================================================================
# Relay
# =============================================================================


class DeliveryError(BridgeError):
    """Send to a single recipient failed. Logged and skipped by the relay."""

    def __init__(self, connection_id: int, cause: BaseException | None = None) -> None:
        self.connection_id = connection_id
        self.cause = cause
        message = f"Delivery to client {connection_id} failed"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message)


class OversizeError(BridgeError):
    """Payload larger than max_message_size. The sender is notified instead."""

    def __init__(self, size: int, limit: int) -> None:
        self.size = size
        self.limit = limit
        super().__init__(f"Payload of {size} bytes exceeds limit of {limit} bytes")


# =============================================================================
# Heartbeat / transport
# =============================================================================


class HeartbeatTimeoutError(BridgeError):
    """Connection did not answer a ping within ping_timeout."""

    close_code = WSCloseCode.HEARTBEAT_TIMEOUT
    reason = "Heartbeat timeout"

    def __init__(self, connection_id: int, elapsed: float) -> None:
        self.connection_id = connection_id
        self.elapsed = elapsed
        super().__init__(
            f"Client {connection_id} did not answer ping after {elapsed:.3f}s"
        )


class TransportError(BridgeError):
    """Listener-level failure. Surfaced to the operator, never retried."""
