"""
Structured logging for the storefront backend.

Loggers take keyword context fields, rendered as JSON in production and
as colored single lines in development:

    logger.info("Order created", store_id=5, order_number="ORD-123456-001")

Request ids (HTTP) and connection ids (WebSocket) are attached to every
record by LogContextFilter; see shared.infrastructure.correlation.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from shared.config.settings import settings
from shared.infrastructure.correlation import LogContextFilter


def _context_of(record: logging.LogRecord) -> dict[str, str]:
    """Bound request / connection ids of a record, without placeholders."""
    context = {}
    for attr in ("request_id", "connection_id"):
        value = getattr(record, attr, None)
        if value and value != "-":
            context[attr] = value
    return context


class StructuredFormatter(logging.Formatter):
    """One JSON object per line for log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **_context_of(record),
        }
        extra_data = getattr(record, "extra_data", None)
        if extra_data:
            log_data["data"] = extra_data
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        if settings.debug:
            log_data["source"] = f"{record.filename}:{record.lineno}"
        return json.dumps(log_data, default=str)


class DevelopmentFormatter(logging.Formatter):
    """Colored one-line format for local runs."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"
    DIM = "\033[2m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, self.RESET)
        timestamp = datetime.now().strftime("%H:%M:%S")
        tags = "".join(f"{self.DIM}[{value[:8]}]{self.RESET} " for value in _context_of(record).values())

        line = f"{color}[{timestamp}] {record.levelname:8}{self.RESET} {tags}{record.name}: {record.getMessage()}"

        extra_data = getattr(record, "extra_data", None)
        if extra_data:
            line += " (" + " | ".join(f"{k}={v}" for k, v in extra_data.items()) + ")"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class StructuredLogger(logging.Logger):
    """
    Logger whose methods accept keyword context fields.

    exc_info is honored at every level; all other keywords end up in
    record.extra_data.
    """

    def _log_with_data(self, level: int, msg: str, args: tuple, **kwargs: Any) -> None:
        if not self.isEnabledFor(level):
            return
        exc_info = kwargs.pop("exc_info", None)
        extra = kwargs.pop("extra", None) or {}
        extra["extra_data"] = kwargs or None
        super()._log(level, msg, args, exc_info=exc_info, extra=extra)

    def debug(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log_with_data(logging.DEBUG, msg, args, **kwargs)

    def info(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log_with_data(logging.INFO, msg, args, **kwargs)

    def warning(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log_with_data(logging.WARNING, msg, args, **kwargs)

    def error(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log_with_data(logging.ERROR, msg, args, **kwargs)

    def critical(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log_with_data(logging.CRITICAL, msg, args, **kwargs)


logging.setLoggerClass(StructuredLogger)

# Third-party loggers kept quiet unless they warn
_QUIET_LOGGERS = {
    "uvicorn.access": logging.WARNING,
    "uvicorn.error": logging.INFO,
    "websockets": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
    "httpx": logging.WARNING,
}


def setup_logging() -> None:
    """Install the root handler. Called once from the application lifespan."""
    log_level = logging.DEBUG if settings.debug else logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    handler.addFilter(LogContextFilter())
    handler.setFormatter(
        StructuredFormatter() if settings.environment == "production" else DevelopmentFormatter()
    )

    root = logging.getLogger()
    root.setLevel(log_level)
    root.handlers.clear()
    root.addHandler(handler)

    for name, level in _QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(level)


def get_logger(name: str) -> StructuredLogger:
    """
    Get a logger instance with the given name.

    Usage:
        from shared.config.logging import get_logger
        logger = get_logger(__name__)

        logger.info("Code redeemed", event_id=12, customer=mask_phone(phone))
        logger.error("Failed to persist redemption", event_id=12, exc_info=True)
    """
    return logging.getLogger(name)  # type: ignore


def mask_phone(phone: str | None) -> str:
    """
    Mask a customer phone number for logging to protect PII.

    Converts "+56912345678" to "***5678".
    """
    if not phone:
        return "<no-phone>"

    digits = "".join(ch for ch in phone if ch.isdigit())
    if len(digits) <= 4:
        return "***"
    return f"***{digits[-4:]}"


# Pre-configured loggers for common modules
rest_api_logger = get_logger("rest_api")
ws_gateway_logger = get_logger("ws_gateway")
orders_logger = get_logger("rest_api.orders")
configuration_logger = get_logger("rest_api.configuration")
ws_audit_logger = get_logger("ws_gateway.audit")


def audit_ws_connection(
    event_type: str,
    connection_id: str,
    origin: str | None = None,
    reason: str | None = None,
    **extra: Any,
) -> None:
    """
    Log WebSocket connection lifecycle events.

    Args:
        event_type: Type of event (CONNECT, DISCONNECT, REJECTED, STALE, etc.)
        connection_id: Opaque connection identifier
        origin: Origin header value
        reason: Reason for event (especially for failures)
        **extra: Additional context data
    """
    ws_audit_logger.info(
        f"WS_AUDIT: {event_type}",
        event_type=event_type,
        connection_id=connection_id,
        origin=origin,
        reason=reason,
        **extra,
    )
