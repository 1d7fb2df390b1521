"""
Origin validation for WebSocket handshakes.

Allowed entries are either exact origins (``https://app.example.com``) or
wildcard suffixes (``*.example.com``). A wildcard needs at least one extra
label in front of the domain: ``*.example.com`` admits
``https://chat.example.com`` but neither ``https://example.com`` nor
``https://evilexample.com``.
"""

from __future__ import annotations

import logging
from urllib.parse import urlsplit

logger = logging.getLogger(__name__)

__all__ = ["origin_matches", "validate_websocket_origin"]


def _normalize(value: str) -> str:
    return value.strip().rstrip("/").lower()


def _origin_host(origin: str) -> str | None:
    """Host part of an origin, or None if it does not parse."""
    try:
        parts = urlsplit(origin)
        host = parts.hostname
    except ValueError:
        return None
    if host:
        return host
    # Bare host without scheme, e.g. "chat.example.com"
    if "://" not in origin and "/" not in origin:
        return origin.split(":", 1)[0] or None
    return None


def origin_matches(origin: str, allowed: str) -> bool:
    """
    Check a single origin against a single allowed entry.

    Args:
        origin: Origin header value.
        allowed: Exact origin or "*.domain" wildcard.

    Returns:
        True on exact match or valid wildcard suffix match.
    """
    origin = _normalize(origin)
    allowed = _normalize(allowed)

    if not allowed.startswith("*."):
        return origin == allowed

    domain = allowed[2:]
    if not domain:
        return False

    host = _origin_host(origin)
    if host is None:
        return False

    suffix = "." + domain
    if not host.endswith(suffix):
        return False

    # At least one non-empty label in front of the domain
    label = host[: -len(suffix)]
    return bool(label) and not label.startswith(".") and not label.endswith(".")


def validate_websocket_origin(origin: str | None, allowed_origins: tuple[str, ...]) -> bool:
    """
    Validate WebSocket origin header against allowed origins.

    Fail-closed: a missing origin or an empty allowed list rejects.

    Args:
        origin: The Origin header value, or None if not present.
        allowed_origins: Exact origins and "*.domain" wildcards.

    Returns:
        True if origin is allowed, False otherwise.
    """
    if not origin:
        logger.warning("WebSocket connection rejected: missing Origin header")
        return False

    if not allowed_origins:
        logger.warning(
            "WebSocket connection rejected: origin validation enabled with no allowed origins",
            origin=origin,
        )
        return False

    if any(origin_matches(origin, entry) for entry in allowed_origins):
        return True

    logger.warning(
        "WebSocket connection rejected: origin not in allowed list",
        origin=origin,
        allowed_count=len(allowed_origins),
    )
    return False
