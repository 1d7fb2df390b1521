"""
Admission Controller.

Gates new connections by origin, API key and capacity. The capacity check
and the registration run in one critical section under the registry lock,
so concurrent handshakes can never push the registry past max_clients.

Check order: origin -> capacity -> API key. A full server answers with the
capacity code whatever credentials the client presented.
"""

from __future__ import annotations

import hmac
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from socket_bridge.components.admission.origins import validate_websocket_origin
from socket_bridge.components.connection.registry import Connection
from socket_bridge.components.core.exceptions import (
    AdmissionError,
    CapacityExceededError,
    InvalidApiKeyError,
    OriginRejectedError,
    ServerShuttingDownError,
)

if TYPE_CHECKING:
    from socket_bridge.components.connection.registry import ConnectionRegistry, Transport
    from socket_bridge.components.core.context import HandshakeInfo
    from socket_bridge.config.settings import RelayConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class AdmissionResult:
    """
    Outcome of the admission checks.

    Attributes:
        admitted: Whether every check passed.
        error: The rejection (carries close code and reason) when not admitted.
    """

    admitted: bool
    error: AdmissionError | None = None

    @classmethod
    def ok(cls) -> "AdmissionResult":
        """Create successful admission result."""
        return cls(admitted=True)

    @classmethod
    def reject(cls, error: AdmissionError) -> "AdmissionResult":
        """Create rejected admission result."""
        return cls(admitted=False, error=error)


class AdmissionController:
    """
    Decides whether a handshake may join the bridge.

    Usage:
        controller = AdmissionController(config, registry)
        connection = await controller.admit(handshake, websocket)
    """

    def __init__(self, config: "RelayConfig", registry: "ConnectionRegistry") -> None:
        """
        Initialize the controller.

        Args:
            config: Immutable relay configuration.
            registry: Registry new connections are inserted into.
        """
        self._config = config
        self._registry = registry
        self._closed = False

    def close(self) -> None:
        """Reject every later admission (stop contract in progress)."""
        self._closed = True

    @property
    def is_closed(self) -> bool:
        return self._closed

    # =========================================================================
    # Individual checks
    # =========================================================================

    def check_origin(self, origin: str | None) -> bool:
        """Origin check; always passes when origin validation is disabled."""
        if not self._config.validate_origin:
            return True
        return validate_websocket_origin(origin, self._config.allowed_origins)

    def check_api_key(self, presented: str | None) -> bool:
        """API key check; always passes when no key is configured."""
        if not self._config.auth_enabled:
            return True
        if presented is None:
            return False
        return hmac.compare_digest(
            presented.encode("utf-8"), self._config.api_key.encode("utf-8")
        )

    def check_capacity(self, current_size: int) -> bool:
        """Capacity check against max_clients."""
        return current_size < self._config.max_clients

    def check(self, handshake: "HandshakeInfo", current_size: int) -> AdmissionResult:
        """
        Run every check in order without touching the registry.

        Args:
            handshake: Origin, apiKey and name from the handshake.
            current_size: Registry size to check capacity against.

        Returns:
            AdmissionResult; the first failing check decides the error.
        """
        if self._closed:
            return AdmissionResult.reject(ServerShuttingDownError())

        if not self.check_origin(handshake.origin):
            return AdmissionResult.reject(OriginRejectedError(handshake.origin))

        if not self.check_capacity(current_size):
            return AdmissionResult.reject(CapacityExceededError(self._config.max_clients))

        if not self.check_api_key(handshake.api_key):
            return AdmissionResult.reject(InvalidApiKeyError())

        return AdmissionResult.ok()

    # =========================================================================
    # Atomic check-and-register
    # =========================================================================

    async def admit(self, handshake: "HandshakeInfo", transport: "Transport") -> Connection:
        """
        Check a handshake and register the connection.

        The checks and the registration happen under the registry lock
        without awaiting in between.

        Args:
            handshake: Origin, apiKey and name from the handshake.
            transport: Handle stored on the new Connection.

        Returns:
            The registered Connection (id and name assigned).

        Raises:
            AdmissionError: The subclass names the failed check; no
                registry mutation happened.
        """
        async with self._registry.lock:
            result = self.check(handshake, self._registry.size())
            if not result.admitted:
                assert result.error is not None
                raise result.error

            connection = Connection(
                transport=transport,
                requested_name=handshake.name,
                endpoint=handshake.endpoint,
            )
            self._registry.register_locked(connection)

        logger.debug(
            "Connection admitted",
            client_id=connection.id,
            name=connection.name,
            total=self._registry.size(),
        )
        return connection
