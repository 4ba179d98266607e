# === NAVMAP v1 ===
# {
#   "module": "CurlFetch.network.capabilities",
#   "purpose": "Probe the transport binary once and expose its capability set",
#   "sections": [
#     {"id": "transportcapabilities", "name": "TransportCapabilities", "anchor": "class-transportcapabilities", "kind": "class"},
#     {"id": "parse-version-output", "name": "parse_version_output", "anchor": "function-parse-version-output", "kind": "function"},
#     {"id": "probe-capabilities", "name": "probe_capabilities", "anchor": "function-probe-capabilities", "kind": "function"},
#     {"id": "reset-capabilities", "name": "reset_capabilities", "anchor": "function-reset-capabilities", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Transport capability probing.

Optional flags (HTTP/2, HTTP/3, cipher lists, alternate DNS servers, host
pinning, TCP tuning) must only be emitted when the installed binary
understands them. The binary describes itself through ``--version``; this
module runs that once per binary per process and freezes the answer into a
:class:`TransportCapabilities` value that is passed explicitly to the
command builder.

Key design:
- **Lazy**: Probed on first use, not at import time.
- **Memoised per binary**: Guarded by a lock; later calls are lock-free reads.
- **Fail-soft**: A missing or broken binary yields an empty capability set
  (HTTP/1.1 only, no optional flags); the request itself will then fail
  with a transport error carrying the real cause.
"""

from __future__ import annotations

import logging
import re
import subprocess
import threading
from dataclasses import dataclass
from typing import Dict, Tuple

from CurlFetch.network.policy import (
    CIPHER_CAPABLE_BACKENDS,
    MIN_VERSION_RESOLVE,
    MIN_VERSION_TCP_FASTOPEN,
    MIN_VERSION_TCP_NODELAY,
)

logger = logging.getLogger(__name__)

_VERSION = re.compile(r"curl\s+(\d+)\.(\d+)(?:\.(\d+))?")

Version = Tuple[int, int, int]


@dataclass(frozen=True)
class TransportCapabilities:
    """Feature set reported by the transport binary."""

    version: Version = (0, 0, 0)
    http2: bool = False
    http3: bool = False
    ciphers: bool = False
    dns_servers: bool = False
    dns_resolve: bool = False
    tcp_fast_open: bool = False
    tcp_no_delay: bool = False

    @property
    def version_string(self) -> str:
        return ".".join(str(part) for part in self.version)

    @classmethod
    def full(cls, version: Version = (8, 0, 0)) -> "TransportCapabilities":
        """Return a capability set with every optional feature enabled."""
        return cls(
            version=version,
            http2=True,
            http3=True,
            ciphers=True,
            dns_servers=True,
            dns_resolve=True,
            tcp_fast_open=True,
            tcp_no_delay=True,
        )


def parse_version_output(output: str) -> TransportCapabilities:
    """Derive capabilities from ``curl --version`` output.

    Example:
        >>> caps = parse_version_output(
        ...     "curl 8.5.0 (x86_64-pc-linux-gnu) libcurl/8.5.0 OpenSSL/3.0.13 nghttp2/1.59.0\\n"
        ...     "Features: alt-svc AsynchDNS HTTP2 HTTPS-proxy IPv6 SSL"
        ... )
        >>> caps.http2, caps.http3, caps.ciphers, caps.version
        (True, False, True, (8, 5, 0))
    """
    text = output.lower()
    match = _VERSION.search(text)
    version: Version = (
        (int(match.group(1)), int(match.group(2)), int(match.group(3) or 0)) if match else (0, 0, 0)
    )
    return TransportCapabilities(
        version=version,
        http2="http2" in text,
        http3="http3" in text,
        ciphers=any(backend in text for backend in CIPHER_CAPABLE_BACKENDS),
        dns_servers="c-ares" in text,
        dns_resolve=version >= MIN_VERSION_RESOLVE,
        tcp_fast_open=version >= MIN_VERSION_TCP_FASTOPEN,
        tcp_no_delay=version >= MIN_VERSION_TCP_NODELAY,
    )


_probed: Dict[str, TransportCapabilities] = {}
_probe_lock = threading.Lock()


def probe_capabilities(binary: str = "curl", *, timeout: float = 10.0) -> TransportCapabilities:
    """Return the capabilities of ``binary``, probing it on first use.

    Args:
        binary: Transport executable name or path.
        timeout: Seconds allowed for the ``--version`` call.

    Returns:
        Frozen capability set; an empty set when the probe fails.
    """
    cached = _probed.get(binary)
    if cached is not None:
        return cached

    with _probe_lock:
        cached = _probed.get(binary)
        if cached is not None:
            return cached
        try:
            completed = subprocess.run(  # noqa: PLW1510 - returncode checked below
                [binary, "--version"],
                capture_output=True,
                timeout=timeout,
                check=False,
            )
        except (subprocess.SubprocessError, OSError) as exc:
            logger.warning(
                "Transport capability probe failed",
                extra={"binary": binary, "error": str(exc)},
            )
            capabilities = TransportCapabilities()
        else:
            if completed.returncode != 0:
                logger.warning(
                    "Transport capability probe exited unsuccessfully",
                    extra={"binary": binary, "exit_code": completed.returncode},
                )
            capabilities = parse_version_output(completed.stdout.decode("utf-8", errors="replace"))
            logger.debug(
                "Transport capabilities probed",
                extra={"binary": binary, "version": capabilities.version_string},
            )
        _probed[binary] = capabilities
        return capabilities


def reset_capabilities() -> None:
    """Forget every probed binary; the next call probes again."""
    with _probe_lock:
        _probed.clear()


__all__ = [
    "TransportCapabilities",
    "parse_version_output",
    "probe_capabilities",
    "reset_capabilities",
]
