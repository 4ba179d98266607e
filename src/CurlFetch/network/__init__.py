"""Transport-facing building blocks.

Everything between a validated request and the transport's raw output:
header and proxy normalisation, body encoding, capability probing, DNS
pinning, argument-vector construction, process supervision, and redirect
resolution.
"""

from CurlFetch.network.body import EncodedBody, FormData, FormFile, encode_body
from CurlFetch.network.capabilities import (
    TransportCapabilities,
    parse_version_output,
    probe_capabilities,
    reset_capabilities,
)
from CurlFetch.network.headers import normalize_headers, sort_headers
from CurlFetch.network.proxy import format_proxy_string
from CurlFetch.network.dns import DNS_CACHE, resolve_pinned_address
from CurlFetch.network.command import build_command, resolve_http_version
from CurlFetch.network.transport import (
    SubprocessInvoker,
    TransportInvoker,
    TransportStream,
)
from CurlFetch.network.redirect import RedirectHop, format_audit_trail, resolve_location

__all__ = [
    "DNS_CACHE",
    "EncodedBody",
    "FormData",
    "FormFile",
    "RedirectHop",
    "SubprocessInvoker",
    "TransportCapabilities",
    "TransportInvoker",
    "TransportStream",
    "build_command",
    "encode_body",
    "format_audit_trail",
    "format_proxy_string",
    "normalize_headers",
    "parse_version_output",
    "probe_capabilities",
    "reset_capabilities",
    "resolve_http_version",
    "resolve_location",
    "resolve_pinned_address",
    "sort_headers",
]
