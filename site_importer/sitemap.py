"""
Seed URL Sources
================
Builds the initial URL list of a run from a sitemap, a robots.txt or a
plain text list.

- ``load_sitemap(url)``          — every ``<loc>`` of a sitemap, following
  sitemap indexes recursively (sub-sitemaps first, then the page URLs)
- ``load_urls_from_robots(url)`` — every sitemap named by ``Sitemap:``
  lines of a robots.txt
- ``read_url_list(text)``        — one URL per line, blanks and ``#``
  comments dropped

Fetch failures are logged and skipped; an unreadable sitemap contributes
no URLs instead of aborting the whole list.
"""

from __future__ import annotations

import logging
import re
import xml.etree.ElementTree as ET
from typing import List, Optional, Set
from urllib.parse import urljoin, urlparse

import requests

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/537.36 (KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36"
)

_SITEMAP_LINE_RE = re.compile(r"^[Ss]itemap:\s*(.*)$")


def _fetch_text(
    url: str,
    session: Optional[requests.Session],
    timeout: int,
) -> Optional[str]:
    getter = session.get if session is not None else requests.get
    try:
        response = getter(
            url,
            headers={"User-Agent": DEFAULT_USER_AGENT},
            timeout=timeout,
            allow_redirects=True,
        )
    except requests.RequestException as e:
        logger.warning(f"[SITEMAP] Failed to fetch {url}: {e}")
        return None
    if response.status_code != 200:
        logger.warning(f"[SITEMAP] Unexpected status {response.status_code} for {url}")
        return None
    return response.text


def _rehome(url: str, origin: Optional[str]) -> str:
    """Replace the origin of *url* with *origin* (when given)."""
    if not origin:
        return url
    parsed = urlparse(url)
    path = parsed.path or "/"
    query = f"?{parsed.query}" if parsed.query else ""
    return f"{origin.rstrip('/')}{path}{query}"


def parse_sitemap(xml_text: str):
    """
    Split a sitemap document into ``(sub_sitemaps, page_urls)``.

    Raises:
        xml.etree.ElementTree.ParseError: on malformed XML.
    """
    root = ET.fromstring(xml_text.strip().encode("utf-8"))

    # Sitemaps use a default xmlns
    ns = ""
    if root.tag.startswith("{"):
        ns = root.tag.split("}")[0] + "}"

    sub_sitemaps = [
        el.text.strip()
        for el in root.findall(f"{ns}sitemap/{ns}loc")
        if el.text and el.text.strip()
    ]
    page_urls = [
        el.text.strip()
        for el in root.findall(f"{ns}url/{ns}loc")
        if el.text and el.text.strip()
    ]
    return sub_sitemaps, page_urls


def load_sitemap(
    url: str,
    *,
    session: Optional[requests.Session] = None,
    origin: Optional[str] = None,
    timeout: int = 15,
    _seen: Optional[Set[str]] = None,
) -> List[str]:
    """
    Collect every page URL listed in the sitemap at *url*.

    Args:
        url:     Sitemap (or sitemap index) URL
        session: Optional ``requests.Session`` to reuse
        origin:  If given, every fetched and returned URL is re-homed onto
                 this origin (useful when the sitemap lists production
                 URLs but the content is served elsewhere)
        timeout: Per-request timeout in seconds

    Returns:
        Page URLs in document order, sub-sitemaps expanded first.
    """
    seen = _seen if _seen is not None else set()
    url = _rehome(url, origin)
    if url in seen:
        return []
    seen.add(url)

    text = _fetch_text(url, session, timeout)
    if text is None:
        return []
    try:
        sub_sitemaps, page_urls = parse_sitemap(text)
    except ET.ParseError as e:
        logger.warning(f"[SITEMAP] Cannot parse {url}: {e}")
        return []

    urls: List[str] = []
    for sub in sub_sitemaps:
        urls.extend(load_sitemap(
            urljoin(url, sub), session=session, origin=origin,
            timeout=timeout, _seen=seen,
        ))
    urls.extend(_rehome(u, origin) for u in page_urls)

    logger.info(
        f"[SITEMAP] {url}: {len(page_urls)} URLs"
        + (f", {len(sub_sitemaps)} sub-sitemaps" if sub_sitemaps else "")
    )
    return urls


def sitemaps_from_robots(robots_text: str, base_url: str) -> List[str]:
    """Sitemap URLs declared in a robots.txt body (resolved against *base_url*)."""
    found = []
    for raw_line in robots_text.splitlines():
        match = _SITEMAP_LINE_RE.match(raw_line.strip())
        if match and match.group(1).strip():
            found.append(urljoin(base_url, match.group(1).strip()))
    return found


def load_urls_from_robots(
    url: str,
    *,
    session: Optional[requests.Session] = None,
    origin: Optional[str] = None,
    timeout: int = 15,
) -> List[str]:
    """
    Page URLs from every sitemap a robots.txt declares.

    *url* may be the robots.txt itself or any page of the site; in the
    latter case ``/robots.txt`` of its origin is used.
    """
    parsed = urlparse(url)
    if not parsed.path.endswith("robots.txt"):
        url = f"{parsed.scheme}://{parsed.netloc}/robots.txt"

    text = _fetch_text(_rehome(url, origin), session, timeout)
    if text is None:
        return []

    seen: Set[str] = set()
    urls: List[str] = []
    for sitemap_url in sitemaps_from_robots(text, url):
        urls.extend(load_sitemap(
            sitemap_url, session=session, origin=origin, timeout=timeout, _seen=seen,
        ))
    logger.info(f"[ROBOTS] {url}: {len(urls)} URLs from sitemaps")
    return urls


def read_url_list(text: str) -> List[str]:
    """One URL per line; blank lines and ``#`` comments are dropped."""
    urls = []
    for line in text.splitlines():
        line = line.strip()
        if line and not line.startswith("#"):
            urls.append(line)
    return urls
