# === NAVMAP v1 ===
# {
#   "module": "CurlFetch.settings",
#   "purpose": "Typed client configuration loaded from defaults and CURLFETCH_ environment variables",
#   "sections": [
#     {"id": "enums", "name": "Validated Choices", "anchor": "ENM", "kind": "api"},
#     {"id": "clientsettings", "name": "ClientSettings", "anchor": "class-clientsettings", "kind": "class"},
#     {"id": "get-settings", "name": "get_settings", "anchor": "function-get-settings", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""
Pydantic v2 settings for the CurlFetch client.

Every default that shapes a request or the layers around it lives here:
transport binary and timeouts, TLS and HTTP preferences, admission
ceiling, cache backend, and logging. Values are layered (explicit kwargs >
``CURLFETCH_*`` environment > defaults) by ``BaseSettings`` and validated
eagerly so a bad value fails at client construction, not at first request.
"""

from __future__ import annotations

import hashlib
import json
from enum import Enum
from functools import lru_cache
from typing import Any, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from CurlFetch import __version__

# ============================================================================
# Enums for validated choices
# ============================================================================


class LogLevel(str, Enum):
    """Supported logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


class LogFormat(str, Enum):
    """Supported log output formats."""

    CONSOLE = "console"
    JSON = "json"


class CacheMode(str, Enum):
    """Cache store backends selectable at configuration time."""

    NONE = "none"
    LOCAL = "local"
    REDIS = "redis"


class TLSVersion(int, Enum):
    """TLS protocol versions, valued by their wire identifiers."""

    TLS1_0 = 0x0301
    TLS1_1 = 0x0302
    TLS1_2 = 0x0303
    TLS1_3 = 0x0304


class HTTPVersion(str, Enum):
    """HTTP protocol versions the transport can be asked to speak."""

    HTTP1_1 = "1.1"
    HTTP2 = "2"
    HTTP3 = "3"


# ============================================================================
# Client configuration
# ============================================================================


class ClientSettings(BaseSettings):
    """Client-wide defaults consumed by the orchestrator and command builder."""

    model_config = SettingsConfigDict(
        env_prefix="CURLFETCH_",
        case_sensitive=False,
        extra="ignore",
    )

    binary: str = Field("curl", description="Transport executable invoked per request")
    max_concurrent_requests: int = Field(
        250,
        description="Admission ceiling for in-flight transport invocations",
        ge=1,
    )
    max_time: float = Field(10.0, description="Overall transfer timeout (seconds)", gt=0)
    connect_timeout: float = Field(5.0, description="Connect timeout (seconds)", gt=0)
    compress: bool = Field(True, description="Request compressed responses by default")
    default_user_agent: str = Field(
        f"curlfetch/{__version__}",
        description="User-Agent sent when a request does not supply one",
    )
    tls_versions: tuple[TLSVersion, ...] = Field(
        (TLSVersion.TLS1_2, TLSVersion.TLS1_3),
        description="Default TLS versions the transport may negotiate",
    )
    prefer_http3: bool = Field(
        False,
        description="Pick HTTP/3 automatically when the binary supports it and no proxy is set",
    )
    tcp_fast_open: bool = Field(True, description="Emit --tcp-fastopen when supported")
    tcp_no_delay: bool = Field(True, description="Emit --tcp-nodelay when supported")
    follow_redirects: bool = Field(True, description="Follow redirects by default")
    max_redirects: int = Field(10, description="Default redirect hop limit", ge=0)
    sort_headers: bool = Field(False, description="Emit headers in canonical browser order")
    parse_json: bool = Field(True, description="Decode JSON-looking text bodies automatically")
    redirects_as_urls: bool = Field(
        True,
        description="Report redirect hops as URL strings (false = nested responses)",
    )
    max_body_size_mb: Optional[float] = Field(
        None,
        description="Reject response bodies larger than this many MiB",
        gt=0,
    )
    cache_mode: CacheMode = Field(CacheMode.NONE, description="Cache backend (none/local/redis)")
    cache_default_ttl: float = Field(300.0, description="Default cache entry TTL (seconds)", gt=0)
    cache_max_items: Optional[int] = Field(
        None,
        description="Entry limit for the local cache store",
        ge=1,
    )
    redis_url: str = Field("redis://localhost:6379/0", description="Redis DSN for cache_mode=redis")
    dns_cache_ttl: float = Field(30.0, description="TTL for cached DNS pins (seconds)", gt=0)
    log_level: LogLevel = Field(LogLevel.INFO, description="Root logging level")
    log_format: LogFormat = Field(
        LogFormat.CONSOLE, description="Pretty console or structured JSON"
    )

    @field_validator("tls_versions", mode="before")
    @classmethod
    def parse_tls_versions(cls, value: Any) -> Any:
        """Accept ``"1.2,1.3"`` style strings as well as wire identifiers."""
        if isinstance(value, str):
            value = [part.strip() for part in value.split(",") if part.strip()]
        if isinstance(value, (list, tuple)):
            return tuple(_coerce_tls_version(item) for item in value)
        return value

    @field_validator("tls_versions")
    @classmethod
    def validate_tls_versions(cls, value: tuple[TLSVersion, ...]) -> tuple[TLSVersion, ...]:
        """Require at least one TLS version."""
        if not value:
            raise ValueError("tls_versions must not be empty")
        return value

    @field_validator("binary")
    @classmethod
    def validate_binary(cls, value: str) -> str:
        """Reject blank binary names."""
        if not value.strip():
            raise ValueError("binary must not be blank")
        return value

    @property
    def max_body_size_bytes(self) -> Optional[int]:
        """Return the body ceiling in bytes, or ``None`` when unlimited."""
        if self.max_body_size_mb is None:
            return None
        return int(self.max_body_size_mb * 1024 * 1024)

    def config_hash(self) -> str:
        """Return a short, stable fingerprint of the effective configuration."""
        payload = json.dumps(self.model_dump(mode="json"), sort_keys=True)
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()[:16]


_TLS_ALIASES = {
    "1.0": TLSVersion.TLS1_0,
    "1.1": TLSVersion.TLS1_1,
    "1.2": TLSVersion.TLS1_2,
    "1.3": TLSVersion.TLS1_3,
}


def _coerce_tls_version(item: Any) -> Any:
    if isinstance(item, TLSVersion):
        return item
    if isinstance(item, float):
        item = f"{item:.1f}"
    if isinstance(item, str):
        text = item.strip().lower().removeprefix("tlsv").removeprefix("tls")
        if text in _TLS_ALIASES:
            return _TLS_ALIASES[text]
        if text.isdigit() or text.startswith("0x"):
            return TLSVersion(int(text, 0))
    return item


@lru_cache(maxsize=1)
def get_settings() -> ClientSettings:
    """Return the process-wide settings loaded from the environment."""
    return ClientSettings()


__all__ = [
    "CacheMode",
    "ClientSettings",
    "HTTPVersion",
    "LogFormat",
    "LogLevel",
    "TLSVersion",
    "get_settings",
]
