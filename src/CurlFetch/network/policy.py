# === NAVMAP v1 ===
# {
#   "module": "CurlFetch.network.policy",
#   "purpose": "Transport flag names, capability thresholds, and request defaults.",
#   "sections": []
# }
# === /NAVMAP ===

"""Transport flag names, capability thresholds, and request defaults.

The command builder never spells a flag literally; every flag it can emit
is named here so the argument-vector convention of the transport binary is
documented in one place. Version thresholds gate optional flags against the
installed binary's self-reported version.
"""

# ============================================================================
# Base flags
# ============================================================================

#: Echo response status line and headers ahead of the body
FLAG_INCLUDE = "-i"
FLAG_SILENT = "-s"
FLAG_SHOW_ERROR = "-S"
FLAG_MAX_TIME = "-m"
FLAG_CONNECT_TIMEOUT = "--connect-timeout"

FLAG_HTTP1_1 = "--http1.1"
FLAG_HTTP2 = "--http2"
FLAG_HTTP3 = "--http3"


# ============================================================================
# TLS
# ============================================================================

FLAG_INSECURE = "--insecure"
FLAG_TLS_MAX = "--tls-max"
FLAG_CIPHERS = "--ciphers"
FLAG_TLS13_CIPHERS = "--tls13-ciphers"

#: Floor-version flag and ``--tls-max`` argument keyed by TLS wire identifier
TLS_FLAGS = {
    0x0301: ("--tlsv1.0", "1.0"),
    0x0302: ("--tlsv1.1", "1.1"),
    0x0303: ("--tlsv1.2", "1.2"),
    0x0304: ("--tlsv1.3", "1.3"),
}

#: TLS backends (as named in ``curl --version``) that accept cipher lists
CIPHER_CAPABLE_BACKENDS = ("openssl", "boringssl", "libressl", "quictls", "wolfssl", "gnutls")


# ============================================================================
# DNS and TCP
# ============================================================================

FLAG_DNS_SERVERS = "--dns-servers"
FLAG_RESOLVE = "--resolve"
FLAG_TCP_FASTOPEN = "--tcp-fastopen"
FLAG_TCP_NODELAY = "--tcp-nodelay"

#: Minimum transport versions for optional flags
MIN_VERSION_RESOLVE = (7, 21, 3)
MIN_VERSION_TCP_FASTOPEN = (7, 49, 0)
MIN_VERSION_TCP_NODELAY = (7, 11, 2)

#: Default ports used when pinning ``host:port:ip``
PROTOCOL_PORTS = {
    "http": 80,
    "https": 443,
    "ftp": 21,
    "ftps": 990,
    "sftp": 22,
    "scp": 22,
    "smtp": 25,
    "smtps": 465,
    "imap": 143,
    "imaps": 993,
    "pop3": 110,
    "pop3s": 995,
    "ldap": 389,
    "ldaps": 636,
    "mqtt": 1883,
    "mqtts": 8883,
    "telnet": 23,
    "tftp": 69,
    "rtsp": 554,
    "smb": 445,
    "dict": 2628,
}

#: Capacity of the process-wide DNS pin cache
DNS_CACHE_MAX_ITEMS = 255


# ============================================================================
# Connection behaviour
# ============================================================================

FLAG_COMPRESSED = "--compressed"
FLAG_PROXY = "--proxy"
FLAG_FOLLOW = "--location"
FLAG_MAX_REDIRS = "--max-redirs"
FLAG_NO_KEEPALIVE = "--no-keepalive"
FLAG_KEEPALIVE_TIME = "--keepalive-time"
FLAG_KEEPALIVE_CNT = "--keepalive-cnt"

#: Redirect hop limit when following is enabled without an explicit count
DEFAULT_MAX_REDIRECTS = 10


# ============================================================================
# Request payload
# ============================================================================

FLAG_DATA_BINARY = "--data-binary"
#: Read the payload from stdin instead of carrying it in the argument vector
STDIN_SOURCE = "@-"
FLAG_HEADER = "-H"
FLAG_USER_AGENT = "-A"
FLAG_METHOD = "-X"
FLAG_HEAD = "-I"


# ============================================================================
# Transport process
# ============================================================================

#: Bytes of stderr retained while a streaming response is being consumed
STDERR_RING_BYTES = 64 * 1024

#: Read size for streamed stdout chunks
STREAM_CHUNK_SIZE = 64 * 1024

#: Default admission ceiling for in-flight invocations
DEFAULT_MAX_CONCURRENT_REQUESTS = 250

#: Namespace prefix for derived cache keys
CACHE_KEY_NAMESPACE = "curlfetch:"

#: Request fields hashed into a cache key when the caller does not choose
DEFAULT_CACHE_KEY_FIELDS = ("url", "headers", "body", "proxy", "method")


__all__ = [name for name in dir() if name.isupper()]
