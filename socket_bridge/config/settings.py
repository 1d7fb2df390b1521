"""
Bridge settings loaded from environment variables.
Uses pydantic-settings for type-safe configuration.

Every variable is read with the SOCKET_BRIDGE_ prefix, e.g.
SOCKET_BRIDGE_PORT=9000 or SOCKET_BRIDGE_API_KEY=secret. A .env file in the
working directory is honoured as well.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache

from pydantic_settings import BaseSettings


@dataclass(frozen=True, slots=True)
class RelayConfig:
    """
    Immutable relay configuration.

    Built once from Settings and handed to RelayServer at construction.
    Nothing in the relay engine reads the environment directly.

    Attributes:
        host: Interface uvicorn binds to.
        port: TCP port uvicorn listens on.
        api_key: Shared secret clients pass as ?apiKey=. Empty disables auth.
        max_clients: Hard cap on simultaneously registered connections.
        max_message_size: Largest payload (bytes) that will be relayed.
        validate_origin: Whether the Origin header is checked at admission.
        allowed_origins: Exact origins or "*.domain" wildcard entries.
        heartbeat_interval: Seconds between heartbeat ticks. 0 disables.
        ping_timeout: Seconds a probed connection has to answer with a pong.
        announce_connections: Broadcast join/leave notices.
        verbose: Log relayed traffic at INFO level.
        broadcast_batch_size: Recipients sent to in parallel per batch.
    """

    host: str = "0.0.0.0"
    port: int = 8080
    api_key: str = ""
    max_clients: int = 10
    max_message_size: int = 64 * 1024
    validate_origin: bool = False
    allowed_origins: tuple[str, ...] = ()
    heartbeat_interval: float = 30.0
    ping_timeout: float = 10.0
    announce_connections: bool = False
    verbose: bool = False
    broadcast_batch_size: int = 50

    @property
    def auth_enabled(self) -> bool:
        """Whether clients must present an API key."""
        return bool(self.api_key)

    @property
    def heartbeat_enabled(self) -> bool:
        """Whether the heartbeat monitor runs at all."""
        return self.heartbeat_interval > 0


class Settings(BaseSettings):
    """Bridge settings with defaults for development."""

    # Listener
    host: str = "0.0.0.0"
    port: int = 8080

    # Admission
    api_key: str = ""
    max_clients: int = 10
    validate_origin: bool = False
    # Comma-separated list; entries may be exact origins or "*.domain"
    allowed_origins: str = ""

    # Relay
    max_message_size: int = 64 * 1024  # 64 KB
    broadcast_batch_size: int = 50
    announce_connections: bool = False

    # Heartbeat (seconds)
    heartbeat_interval: float = 30.0
    ping_timeout: float = 10.0

    # Logging
    verbose: bool = False
    environment: str = "development"
    debug: bool = False

    class Config:
        env_prefix = "SOCKET_BRIDGE_"
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False

    @property
    def allowed_origins_list(self) -> tuple[str, ...]:
        """Parsed allowed origins (blank entries dropped)."""
        return tuple(o.strip() for o in self.allowed_origins.split(",") if o.strip())

    def to_relay_config(self) -> RelayConfig:
        """Freeze the relay-relevant settings into a RelayConfig."""
        return RelayConfig(
            host=self.host,
            port=self.port,
            api_key=self.api_key,
            max_clients=self.max_clients,
            max_message_size=self.max_message_size,
            validate_origin=self.validate_origin,
            allowed_origins=self.allowed_origins_list,
            heartbeat_interval=self.heartbeat_interval,
            ping_timeout=self.ping_timeout,
            announce_connections=self.announce_connections,
            verbose=self.verbose,
            broadcast_batch_size=self.broadcast_batch_size,
        )

    def validate_relay_settings(self) -> list[str]:
        """
        Validate settings that the relay engine depends on.
        Returns a list of validation errors. Empty list means all checks pass.
        """
        errors = []

        if self.max_clients < 1:
            errors.append("MAX_CLIENTS must be at least 1")

        if self.max_message_size < 1:
            errors.append("MAX_MESSAGE_SIZE must be a positive number of bytes")

        if self.broadcast_batch_size < 1:
            errors.append("BROADCAST_BATCH_SIZE must be at least 1")

        if self.heartbeat_interval < 0:
            errors.append("HEARTBEAT_INTERVAL must be 0 (disabled) or positive")

        if self.heartbeat_interval > 0 and self.ping_timeout <= 0:
            errors.append("PING_TIMEOUT must be positive when the heartbeat is enabled")

        # Fail-closed: every connection would be rejected
        if self.validate_origin and not self.allowed_origins_list:
            errors.append(
                "ALLOWED_ORIGINS must be set when VALIDATE_ORIGIN is enabled"
            )

        if self.environment == "production":
            if not self.api_key:
                errors.append("API_KEY must be set in production")
            if self.debug:
                errors.append("DEBUG must be False in production")

        return errors


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
