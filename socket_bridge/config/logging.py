"""
Structured logging for the bridge.

Importing this module installs BridgeLogger as the logger class, so any
``logging.getLogger(__name__)`` created afterwards takes keyword context:

    logger.info("Client connected", client_id=3, total=4)

The keywords travel on the record as ``context`` and are rendered by the
formatter: one JSON object per line in production, a colored single line
in development.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from socket_bridge.config.settings import Settings

SERVICE_NAME = "socket-bridge"

# Keyword arguments Logger._log understands itself; everything else is context
_LOG_KWARGS = frozenset({"exc_info", "extra", "stack_info", "stacklevel"})


class BridgeLogger(logging.Logger):
    """Logger that collects unknown keyword arguments into ``record.context``."""

    def _log(self, level, msg, args, **kwargs) -> None:  # type: ignore[override]
        context = {k: kwargs.pop(k) for k in list(kwargs) if k not in _LOG_KWARGS}
        extra = dict(kwargs.pop("extra", None) or {})
        extra["context"] = context
        # One more frame (this one) between the caller and logging internals
        kwargs["stacklevel"] = kwargs.get("stacklevel", 1) + 1
        super()._log(level, msg, args, extra=extra, **kwargs)


logging.setLoggerClass(BridgeLogger)


def _record_time(record: logging.LogRecord) -> datetime:
    return datetime.fromtimestamp(record.created, tz=timezone.utc)


class JSONFormatter(logging.Formatter):
    """One JSON object per line, for log shippers."""

    def __init__(self, include_source: bool = False) -> None:
        super().__init__()
        self._include_source = include_source

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": _record_time(record).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "service": SERVICE_NAME,
            "logger": record.name,
            "message": record.getMessage(),
        }
        context = getattr(record, "context", None)
        if context:
            entry["data"] = context
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        if self._include_source:
            entry["source"] = f"{record.pathname}:{record.lineno} ({record.funcName})"
        return json.dumps(entry, default=str)


class ConsoleFormatter(logging.Formatter):
    """Colored single-line output for local development."""

    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno, "")
        clock = _record_time(record).astimezone().strftime("%H:%M:%S.%f")[:-3]
        line = f"{clock} {color}{record.levelname:<8}{self.RESET} {record.name}: {record.getMessage()}"

        context = getattr(record, "context", None)
        if context:
            line += "  " + " ".join(f"{key}={value!r}" for key, value in context.items())
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def setup_logging(settings: "Settings") -> None:
    """
    Configure the root logger. Call once at application startup.

    DEBUG level when ``settings.debug``, INFO otherwise. JSON lines in
    production, console lines elsewhere.
    """
    level = logging.DEBUG if settings.debug else logging.INFO

    formatter: logging.Formatter
    if settings.environment == "production":
        formatter = JSONFormatter(include_source=settings.debug)
    else:
        formatter = ConsoleFormatter()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    # uvicorn logs every request line at INFO
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def get_logger(name: str) -> BridgeLogger:
    """Typed shortcut for ``logging.getLogger``."""
    return logging.getLogger(name)  # type: ignore[return-value]


bridge_logger = get_logger("socket_bridge")

# Connection security events, kept apart so they can be routed separately
security_audit_logger = get_logger("security.audit")


def audit_ws_connection(
    event_type: str,
    endpoint: str,
    client_id: int | None = None,
    name: str | None = None,
    origin: str | None = None,
    reason: str | None = None,
    **extra: Any,
) -> None:
    """
    Record a connection event on the audit logger.

    Args:
        event_type: CONNECT, DISCONNECT, REJECTED or EVICTED.
        endpoint: WebSocket path the client used.
        client_id: Registry id, for admitted connections.
        name: Display name of the client.
        origin: Origin header value, already sanitized.
        reason: Why (rejections, disconnects, evictions).
    """
    security_audit_logger.info(
        f"WS_AUDIT: {event_type}",
        event_type=event_type,
        endpoint=endpoint,
        client_id=client_id,
        name=name,
        origin=origin,
        reason=reason,
        **extra,
    )
