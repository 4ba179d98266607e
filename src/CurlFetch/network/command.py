# === NAVMAP v1 ===
# {
#   "module": "CurlFetch.network.command",
#   "purpose": "Translate a request descriptor into the transport's argument vector",
#   "sections": [
#     {"id": "resolve-http-version", "name": "resolve_http_version", "anchor": "function-resolve-http-version", "kind": "function"},
#     {"id": "build-command", "name": "build_command", "anchor": "function-build-command", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Command builder.

:func:`build_command` is pure: given the request, its encoded body, the
probed capabilities, an optional DNS pin, and the client settings it
always returns the same argument vector. Flags are appended in a fixed
order (base and protocol, TLS, DNS, compression, TCP tuning, proxy,
redirects, keep-alive, payload, headers, method, URL) so vectors can be
compared verbatim in tests and logs.

The payload itself never enters the vector. A body is announced with
``--data-binary @-`` and the invoker writes
:attr:`~CurlFetch.network.body.EncodedBody.content` to the process's stdin,
so bodies may hold NUL bytes and exceed the per-argument size limit.

Optional flags are gated on :class:`~CurlFetch.network.capabilities.TransportCapabilities`;
the builder never emits a flag the installed binary would reject.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, List, Optional, Sequence, Union

from CurlFetch.network import policy
from CurlFetch.network.body import EncodedBody
from CurlFetch.network.capabilities import TransportCapabilities
from CurlFetch.network.dns import pin_target
from CurlFetch.network.headers import sort_headers
from CurlFetch.settings import ClientSettings, HTTPVersion, TLSVersion

if TYPE_CHECKING:
    from CurlFetch.models import RequestDescriptor

_HTTP_VERSION_FLAGS = {
    HTTPVersion.HTTP1_1: policy.FLAG_HTTP1_1,
    HTTPVersion.HTTP2: policy.FLAG_HTTP2,
    HTTPVersion.HTTP3: policy.FLAG_HTTP3,
}


def _seconds(value: float) -> str:
    """Render a duration the way the transport expects (``10`` not ``10.0``)."""
    number = float(value)
    return str(int(number)) if number.is_integer() else repr(number)


def _cipher_list(value: Union[str, Sequence[str]]) -> str:
    return value if isinstance(value, str) else ":".join(value)


def resolve_http_version(
    requested: Optional[HTTPVersion],
    capabilities: TransportCapabilities,
    *,
    proxy: Optional[str] = None,
    prefer_http3: bool = False,
) -> HTTPVersion:
    """Pick the HTTP version flag for a request.

    An explicit version wins, except that HTTP/3 is never combined with a
    proxy. Otherwise HTTP/3 is chosen only when preferred, supported, and
    unproxied; then HTTP/2 when supported and unproxied; then HTTP/1.1.

    Examples:
        >>> caps = TransportCapabilities.full()
        >>> resolve_http_version(None, caps).value
        '2'
        >>> resolve_http_version(HTTPVersion.HTTP3, caps, proxy="http://p:1").value
        '2'
        >>> resolve_http_version(None, caps, proxy="http://p:1").value
        '1.1'
    """
    if requested is not None:
        if requested is HTTPVersion.HTTP3 and proxy:
            return HTTPVersion.HTTP2 if capabilities.http2 else HTTPVersion.HTTP1_1
        return requested
    if proxy:
        return HTTPVersion.HTTP1_1
    if prefer_http3 and capabilities.http3:
        return HTTPVersion.HTTP3
    if capabilities.http2:
        return HTTPVersion.HTTP2
    return HTTPVersion.HTTP1_1


def _tls_flags(
    request: "RequestDescriptor",
    capabilities: TransportCapabilities,
    settings: ClientSettings,
) -> List[str]:
    tls = request.tls
    versions = tls.versions or tuple(settings.tls_versions)
    low, high = min(versions), max(versions)
    flags: List[str] = []
    if tls.insecure:
        flags.append(policy.FLAG_INSECURE)
    flags.append(policy.TLS_FLAGS[int(low)][0])
    flags.extend((policy.FLAG_TLS_MAX, policy.TLS_FLAGS[int(high)][1]))
    if capabilities.ciphers:
        if tls.ciphers:
            flags.extend((policy.FLAG_CIPHERS, _cipher_list(tls.ciphers)))
        if tls.tls13_ciphers and TLSVersion.TLS1_3 in versions:
            flags.extend((policy.FLAG_TLS13_CIPHERS, _cipher_list(tls.tls13_ciphers)))
    return flags


def _keep_alive_flags(request: "RequestDescriptor") -> List[str]:
    keep_alive = request.http.keep_alive
    flags: List[str] = []
    if keep_alive is False or (not isinstance(keep_alive, bool) and keep_alive == 0):
        flags.append(policy.FLAG_NO_KEEPALIVE)
    elif keep_alive is not None and not isinstance(keep_alive, bool):
        flags.extend((policy.FLAG_KEEPALIVE_TIME, _seconds(keep_alive)))
    if request.http.keep_alive_probes is not None:
        flags.extend((policy.FLAG_KEEPALIVE_CNT, str(int(request.http.keep_alive_probes))))
    return flags


def build_command(
    request: "RequestDescriptor",
    encoded_body: Optional[EncodedBody],
    capabilities: TransportCapabilities,
    *,
    settings: ClientSettings,
    resolved_ip: Optional[str] = None,
) -> List[str]:
    """Build the argument vector for one transport invocation.

    Args:
        request: Validated request descriptor.
        encoded_body: Result of :func:`~CurlFetch.network.body.encode_body`,
            or ``None`` when the request has no body.
        capabilities: Probed transport capabilities.
        settings: Client defaults for fields the request leaves unset.
        resolved_ip: IPv4 address to pin the host to via ``--resolve``.

    Returns:
        Argument vector, binary first and URL last.
    """
    method = request.method
    version = resolve_http_version(
        request.http.version,
        capabilities,
        proxy=request.proxy,
        prefer_http3=settings.prefer_http3,
    )
    max_time = request.max_time if request.max_time is not None else settings.max_time
    connect_timeout = (
        request.connect_timeout if request.connect_timeout is not None else settings.connect_timeout
    )

    argv = [
        settings.binary,
        policy.FLAG_INCLUDE,
        policy.FLAG_SILENT,
        policy.FLAG_SHOW_ERROR,
        policy.FLAG_MAX_TIME,
        _seconds(max_time),
        policy.FLAG_CONNECT_TIMEOUT,
        _seconds(connect_timeout),
        _HTTP_VERSION_FLAGS[version],
    ]

    argv.extend(_tls_flags(request, capabilities, settings))

    if request.dns.servers and capabilities.dns_servers:
        argv.extend((policy.FLAG_DNS_SERVERS, ",".join(request.dns.servers)))
    if resolved_ip and capabilities.dns_resolve:
        argv.extend((policy.FLAG_RESOLVE, pin_target(request.url, resolved_ip)))

    compress = request.compress if request.compress is not None else settings.compress
    if compress and method != "HEAD":
        argv.append(policy.FLAG_COMPRESSED)

    if settings.tcp_fast_open and capabilities.tcp_fast_open:
        argv.append(policy.FLAG_TCP_FASTOPEN)
    if settings.tcp_no_delay and capabilities.tcp_no_delay:
        argv.append(policy.FLAG_TCP_NODELAY)

    if request.proxy:
        argv.extend((policy.FLAG_PROXY, request.proxy))

    follow = request.follow if request.follow is not None else settings.follow_redirects
    if follow:
        hops = settings.max_redirects if follow is True else int(follow)
        argv.extend((policy.FLAG_FOLLOW, policy.FLAG_MAX_REDIRS, str(hops)))

    if version is HTTPVersion.HTTP1_1:
        argv.extend(_keep_alive_flags(request))

    if encoded_body is not None:
        argv.extend((policy.FLAG_DATA_BINARY, policy.STDIN_SOURCE))

    sort = request.sort_headers if request.sort_headers is not None else settings.sort_headers
    pairs = sort_headers(request.header_pairs) if sort else request.header_pairs
    user_agent = settings.default_user_agent
    has_content_type = False
    for name, value in pairs:
        lowered = name.lower()
        if lowered == "content-type":
            has_content_type = True
        if lowered == "user-agent":
            user_agent = value
        else:
            argv.extend((policy.FLAG_HEADER, f"{name}: {value}"))
    argv.extend((policy.FLAG_USER_AGENT, user_agent))
    if encoded_body is not None and encoded_body.content_type and not has_content_type:
        argv.extend((policy.FLAG_HEADER, f"content-type: {encoded_body.content_type}"))

    if method == "HEAD":
        argv.append(policy.FLAG_HEAD)
    else:
        argv.extend((policy.FLAG_METHOD, method))

    argv.append(request.url.replace("[", "%5B").replace("]", "%5D"))
    return argv


__all__ = ["build_command", "resolve_http_version"]
