"""
Structured Logging Utilities

This module centralizes logging setup for the CurlFetch client. It provides
helpers for masking sensitive fields (credentials in headers and proxy
URLs), emitting JSON log records, and generating correlation identifiers
that tie together the log lines produced by one request.
"""

from __future__ import annotations

import json
import logging
import re
import sys
import uuid
from datetime import datetime, timezone
from typing import Dict, Optional, Union

from .settings import LogFormat, LogLevel

LOGGER_NAME = "CurlFetch"

_SENSITIVE_KEYS = {
    "authorization",
    "proxy-authorization",
    "cookie",
    "set-cookie",
    "api_key",
    "apikey",
    "token",
    "secret",
    "password",
}
_URL_CREDENTIALS = re.compile(r"(?P<scheme>[a-zA-Z][a-zA-Z0-9+.-]*://)[^/@\s]+@")


def mask_sensitive_data(payload: Dict[str, object]) -> Dict[str, object]:
    """Remove secrets from structured payloads prior to logging.

    Args:
        payload: Arbitrary key-value pairs that may contain credentials,
            cookies, or proxy URLs with embedded user information.

    Returns:
        Copy of the payload where secret fields are replaced with
        ``***masked***`` and URL credentials are stripped.

    Examples:
        >>> mask_sensitive_data({"authorization": "Bearer x", "status": 200})
        {'authorization': '***masked***', 'status': 200}
        >>> mask_sensitive_data({"proxy": "http://user:pw@10.0.0.1:8080"})
        {'proxy': 'http://***@10.0.0.1:8080'}
    """
    masked: Dict[str, object] = {}
    for key, value in payload.items():
        if key.lower() in _SENSITIVE_KEYS:
            masked[key] = "***masked***"
        elif isinstance(value, str):
            masked[key] = mask_url_credentials(value)
        else:
            masked[key] = value
    return masked


def mask_url_credentials(text: str) -> str:
    """Replace ``user:password@`` in any URL inside ``text`` with ``***@``."""
    return _URL_CREDENTIALS.sub(r"\g<scheme>***@", text)


def generate_correlation_id() -> str:
    """Create a short-lived identifier that links related log entries.

    Returns:
        Twelve character hexadecimal identifier.

    Examples:
        >>> len(generate_correlation_id())
        12
    """
    return uuid.uuid4().hex[:12]


_RESERVED_RECORD_KEYS = set(logging.makeLogRecord({}).__dict__) | {"message", "asctime"}


class JSONFormatter(logging.Formatter):
    """Formatter emitting one JSON object per record.

    Fields passed through ``extra={...}`` are merged into the object.
    """

    def format(self, record: logging.LogRecord) -> str:
        now = datetime.now(timezone.utc)
        log_obj: Dict[str, object] = {
            "timestamp": now.isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key not in _RESERVED_RECORD_KEYS and not key.startswith("_"):
                log_obj[key] = value
        if record.exc_info:
            log_obj["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(mask_sensitive_data(log_obj), default=str)


def setup_logging(
    level: Union[str, LogLevel] = LogLevel.INFO,
    fmt: Union[str, LogFormat] = LogFormat.CONSOLE,
    *,
    stream: Optional[object] = None,
) -> logging.Logger:
    """Configure handlers on the ``CurlFetch`` logger.

    Handlers installed by a previous call are replaced, so calling this
    repeatedly (for example from tests or a CLI entry point) is safe.

    Args:
        level: Logging level name.
        fmt: ``console`` for human-readable lines, ``json`` for JSON lines.
        stream: Output stream, ``sys.stderr`` by default.

    Returns:
        The configured package logger.
    """
    level_name = level.value if isinstance(level, LogLevel) else str(level)
    fmt_name = fmt.value if isinstance(fmt, LogFormat) else str(fmt)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, level_name.upper(), logging.INFO))

    for handler in list(logger.handlers):
        if getattr(handler, "_curlfetch_managed", False):
            logger.removeHandler(handler)
            handler.close()

    handler = logging.StreamHandler(stream or sys.stderr)  # type: ignore[arg-type]
    if fmt_name == LogFormat.JSON.value:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
    handler._curlfetch_managed = True  # type: ignore[attr-defined]
    logger.addHandler(handler)
    logger.propagate = True
    return logger


__all__ = [
    "JSONFormatter",
    "LOGGER_NAME",
    "generate_correlation_id",
    "mask_sensitive_data",
    "mask_url_credentials",
    "setup_logging",
]
