"""
Page Renderer Contract
======================
The narrow interface the scheduler uses to fetch and render pages.

A renderer offers two operations:

- ``probe(url)``  — a lightweight existence check returning the HTTP
  status, whether a redirect happened, and the final URL.
- ``load(url)``   — start a full render.  Returns once the raw "loaded"
  signal fired; the returned ``LoadedPage`` is read with ``snapshot()``
  after the settle delay.

Only one load is ever outstanding: ``PageSession`` owns the single slot
and discards handles from superseded loads.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional

from bs4 import BeautifulSoup

# Parser used for every rendered snapshot
BS_PARSER = "lxml"


@dataclass(frozen=True)
class ProbeResult:
    """Result of the existence check issued before a full render."""
    status: int
    redirected: bool = False
    final_url: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


@dataclass
class RenderedDocument:
    """A stabilised snapshot of a rendered page."""
    url: str
    html: str
    _soup: Optional[BeautifulSoup] = field(
        default=None, init=False, repr=False, compare=False,
    )

    @property
    def soup(self) -> BeautifulSoup:
        """Parsed DOM (built lazily, once)."""
        if self._soup is None:
            self._soup = BeautifulSoup(self.html, BS_PARSER)
        return self._soup

    @property
    def title(self) -> str:
        if self.soup.title and self.soup.title.get_text(strip=True):
            return self.soup.title.get_text(" ", strip=True)
        return ""

    def hrefs(self) -> List[str]:
        """``href`` values of every anchor element, in document order."""
        return [a.get("href", "") for a in self.soup.find_all("a", href=True)]


class LoadedPage(ABC):
    """Handle to one loaded page; valid until closed or superseded."""

    @abstractmethod
    async def snapshot(self) -> RenderedDocument:
        """Read the current state of the rendered document."""

    @abstractmethod
    async def close(self) -> None:
        """Release the page."""


class PageRenderer(ABC):
    """Fetch/render backend consumed by the scheduler."""

    @abstractmethod
    async def probe(self, url: str) -> ProbeResult:
        """Existence check (GET) against *url*."""

    @abstractmethod
    async def load(self, url: str) -> LoadedPage:
        """Load *url*; returns once the raw load signal fired."""

    async def close(self) -> None:
        """Release backend resources (no-op by default)."""
