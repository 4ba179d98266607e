# === NAVMAP v1 ===
# {
#   "module": "CurlFetch.network.redirect",
#   "purpose": "Resolve redirect Location headers into absolute hop URLs",
#   "sections": [
#     {"id": "redirecthop", "name": "RedirectHop", "anchor": "class-redirecthop", "kind": "class"},
#     {"id": "resolve-location", "name": "resolve_location", "anchor": "function-resolve-location", "kind": "function"},
#     {"id": "format-audit-trail", "name": "format_audit_trail", "anchor": "function-format-audit-trail", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Redirect hop resolution.

The transport follows redirects itself and echoes every hop's status line
and headers. This module turns those echoed ``Location`` headers back into
an audit trail of absolute URLs. Relative locations are resolved against
the URL of the hop that produced them, as per RFC 9110.

Example:
    >>> resolve_location("https://h/a", "/b")
    'https://h/b'
    >>> format_audit_trail([RedirectHop("https://h/a", 301, "https://h/b")])
    'https://h/a (301) → https://h/b'
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List

import httpx

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RedirectHop:
    """One followed redirect: where it came from, its status, and its target."""

    source: str
    status: int
    target: str


def resolve_location(current_url: str, location: str) -> str:
    """Resolve ``location`` against ``current_url``.

    Unparseable locations are returned unchanged so a strange header never
    hides the response that carried it.
    """
    try:
        return str(httpx.URL(current_url).join(location.strip()))
    except (httpx.InvalidURL, ValueError) as exc:
        logger.debug(
            "Unresolvable redirect location",
            extra={"source": current_url, "location": location, "error": str(exc)},
        )
        return location.strip()


def format_audit_trail(hops: List[RedirectHop]) -> str:
    """Format hops for logging, ending with the final target.

    Returns:
        String like ``"http://a (301) → http://b (302) → http://c"``
    """
    if not hops:
        return ""
    parts = [f"{hop.source} ({hop.status})" for hop in hops]
    parts.append(hops[-1].target)
    return " → ".join(parts)


__all__ = [
    "RedirectHop",
    "format_audit_trail",
    "resolve_location",
]
