"""
Link Extractor
==============
Finds same-site links on a rendered page (crawl mode).

Under proxying a page is served from the proxy origin, so "same site"
means the link's host is either the logical (remote) host or the proxy
host.  Kept links are re-homed onto the remote origin, path and query
preserved, fragment dropped.

Every anchor with an ``href`` lands in exactly one bucket::

    link_count == already_processed_count + external_host_count + to_follow_count
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Set
from urllib.parse import ParseResult, urljoin, urlparse

from .frontier import Frontier, url_key
from .proxy import ORIGIN_PARAM, host_key, origin_of, to_remote_url
from .renderer import RenderedDocument

logger = logging.getLogger(__name__)


@dataclass
class LinkExtraction:
    """Links found on one page and how each was accounted for."""
    links: List[str] = field(default_factory=list)   # new, to follow
    link_count: int = 0
    already_processed_count: int = 0
    external_host_count: int = 0

    @property
    def to_follow_count(self) -> int:
        return len(self.links)


def _resolve(base: str, href: str) -> Optional[ParseResult]:
    """Absolute http(s) form of *href*, or ``None`` (mailto:, javascript:, junk)."""
    try:
        parsed = urlparse(urljoin(base, href.strip()))
        if parsed.scheme not in ("http", "https") or not parsed.hostname:
            return None
        host_key(parsed)
    except ValueError:
        return None
    return parsed


def extract_links(
    document: RenderedDocument,
    original_url: str,
    replaced_url: str,
    frontier: Frontier,
    origin_param: str = ORIGIN_PARAM,
) -> LinkExtraction:
    """
    Collect the new same-site links of *document*.

    Args:
        document:     Settled page snapshot.
        original_url: Logical URL of the page (remote origin).
        replaced_url: Proxy URL the page was rendered from.
        frontier:     Consulted (not modified) for already seen URLs.
        origin_param: Proxy query key, stripped from links on the proxy host.

    A link is new iff it is not in the frontier's visited set, was not
    already collected from this page, and is not the page itself.
    """
    original = urlparse(original_url)
    replaced = urlparse(replaced_url)
    proxy_host = host_key(replaced)
    same_site = {host_key(original), proxy_host}
    remote_origin = origin_of(original)
    base = document.url or replaced_url
    current_key = url_key(original_url)

    result = LinkExtraction()
    seen: Set[str] = set()

    for href in document.hrefs():
        result.link_count += 1
        parsed = _resolve(base, href)
        host = host_key(parsed) if parsed is not None else None
        if host is None or host not in same_site:
            result.external_host_count += 1
            continue

        strip = origin_param if host == proxy_host else None
        found = to_remote_url(parsed.geturl(), remote_origin, strip_param=strip)
        key = url_key(found)
        if key == current_key or key in seen or found in frontier:
            result.already_processed_count += 1
        else:
            seen.add(key)
            result.links.append(found)

    logger.debug(
        f"[LINKS] {original_url}: {result.link_count} links, "
        f"{result.to_follow_count} new, {result.already_processed_count} known, "
        f"{result.external_host_count} external"
    )
    return result
