"""
Proxy Rewriter
==============
Builds same-origin fetch targets for remote pages.

The rendering proxy serves every remote page under its own origin.  The
remote origin travels along as a query parameter (``?host=...`` by
default) so the rendered page can resolve its own relative resources.

Public API
----------
- ``build_proxy_target(url, origin)`` — derive a ``ProxyTarget`` for one URL
- ``normalize_url(url)``              — dedup key (fragment dropped)
- ``to_remote_url(url, remote_origin)`` — map a proxy URL back to the remote site
"""

from __future__ import annotations

import logging
from typing import NamedTuple, Optional
from urllib.parse import ParseResult, parse_qsl, unquote_plus, urlencode, urlparse

from .errors import MalformedURLError

logger = logging.getLogger(__name__)

# Query key carrying the remote origin through the proxy
ORIGIN_PARAM = "host"


class ProxyTarget(NamedTuple):
    """Immutable fetch target derived for a single remote URL."""
    remote_url: str      # the logical URL (fragment stripped)
    remote_origin: str   # scheme://host[:port] of the logical URL
    proxy_url: str       # same path + query, served by the proxy origin
    proxy_origin: str    # scheme://host[:port] of the proxy


# -----------------------------------------------------------------------
# Parsing helpers
# -----------------------------------------------------------------------

def parse_absolute(url: str) -> ParseResult:
    """Parse *url*, requiring an absolute http(s) URL with a host."""
    if not url or not url.strip():
        raise MalformedURLError(url or "", "empty URL")
    try:
        parsed = urlparse(url.strip())
        # Accessing .port validates the netloc (raises ValueError on junk)
        parsed.port
    except ValueError as exc:
        raise MalformedURLError(url, str(exc)) from exc
    if parsed.scheme not in ("http", "https"):
        raise MalformedURLError(url)
    if not parsed.netloc:
        raise MalformedURLError(url, "missing host")
    return parsed


_DEFAULT_PORTS = {"http": 80, "https": 443}


def host_key(parsed: ParseResult) -> str:
    """
    ``host[:port]`` of an already-parsed URL, lower-cased.

    The scheme's default port is dropped, so ``example.com:443`` and
    ``example.com`` compare equal under https.  Credentials are not part
    of the key.

    Raises:
        ValueError: if the port is not a number in range.
    """
    host = parsed.hostname or ""
    if ":" in host:
        host = f"[{host}]"
    port = parsed.port
    if port is not None and port != _DEFAULT_PORTS.get(parsed.scheme):
        return f"{host}:{port}"
    return host


def origin_of(parsed: ParseResult) -> str:
    """``scheme://host[:port]`` of an already-parsed URL, default port dropped."""
    return f"{parsed.scheme.lower()}://{host_key(parsed)}"


def _path_and_query(parsed: ParseResult, query: Optional[str] = None) -> str:
    path = parsed.path or "/"
    query = parsed.query if query is None else query
    return f"{path}?{query}" if query else path


# -----------------------------------------------------------------------
# Normalisation
# -----------------------------------------------------------------------

def normalize_url(url: str) -> str:
    """
    Dedup key for *url*.

    Scheme and host are lower-cased (they are case-insensitive), the
    scheme's default port is dropped, an empty path becomes ``/``, the
    fragment is dropped.  Path and query keep
    their case and their parameter order.

    Raises:
        MalformedURLError: if *url* is not an absolute http(s) URL.
    """
    parsed = parse_absolute(url)
    return f"{origin_of(parsed)}{_path_and_query(parsed)}"


def _strip_param(query: str, name: str) -> str:
    if not query:
        return query
    # Other segments stay byte-identical
    kept = [
        segment for segment in query.split("&")
        if unquote_plus(segment.partition("=")[0]) != name
    ]
    return "&".join(kept)


def to_remote_url(url: str, remote_origin: str, *, strip_param: Optional[str] = None) -> str:
    """
    Re-home *url* onto *remote_origin*, keeping its path and query.

    ``strip_param`` removes the proxy's origin-override parameter, which
    only has meaning on the proxy side.
    """
    parsed = urlparse(url)
    query = parsed.query
    if strip_param:
        query = _strip_param(query, strip_param)
    return f"{remote_origin}{_path_and_query(parsed, query)}"


# -----------------------------------------------------------------------
# Proxy target
# -----------------------------------------------------------------------

def build_proxy_target(
    url: str,
    origin: str,
    *,
    origin_param: str = ORIGIN_PARAM,
) -> ProxyTarget:
    """
    Build the proxy fetch target for *url*.

    If the URL does not already carry ``origin_param`` it is appended with
    the URL's own origin.  The proxy URL is *origin*'s scheme and host
    followed by the (possibly extended) path and query.

    Raises:
        MalformedURLError: if *url* or *origin* cannot be parsed.
    """
    parsed = parse_absolute(url)
    proxy = parse_absolute(origin)

    remote_origin = origin_of(parsed)
    proxy_origin = origin_of(proxy)

    query = parsed.query
    existing = parse_qsl(query, keep_blank_values=True)
    if not any(key == origin_param for key, _ in existing):
        extra = urlencode({origin_param: remote_origin})
        query = f"{query}&{extra}" if query else extra

    return ProxyTarget(
        remote_url=f"{remote_origin}{_path_and_query(parsed)}",
        remote_origin=remote_origin,
        proxy_url=f"{proxy_origin}{_path_and_query(parsed, query)}",
        proxy_origin=proxy_origin,
    )
