"""
Page Session
============
Single-slot owner of the rendering surface.

Every load receives a generation token.  Opening a new load, or calling
``invalidate()``, bumps the generation; any step that later presents an
older token raises ``StaleLoadError`` instead of acting on a page that
no longer belongs to the current dispatch.

The settle delay is applied between the raw load signal and the first
read.  It is a best-effort heuristic: client-rendered pages may still be
mutating afterwards and downstream steps read whatever is present.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from .errors import NetworkOrRenderFailure, StaleLoadError
from .renderer import LoadedPage, PageRenderer, RenderedDocument

logger = logging.getLogger(__name__)


class PageSession:
    """
    Owns at most one ``LoadedPage`` at a time.

    Usage::

        session = PageSession(renderer, settle_delay=1.0)
        token = await session.open(proxy_url)
        await session.settle(token)
        document = await session.read(token)
    """

    def __init__(self, renderer: PageRenderer, settle_delay: float = 1.0):
        self._renderer = renderer
        self.settle_delay = settle_delay
        self._generation = 0
        self._active: Optional[LoadedPage] = None
        self._active_url: Optional[str] = None

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def busy(self) -> bool:
        return self._active is not None

    def invalidate(self) -> None:
        """Abandon whatever load is in flight; its late results are discarded."""
        self._generation += 1
        logger.debug(f"[SESSION] Invalidated (generation {self._generation})")

    def _check(self, token: int) -> None:
        if token != self._generation:
            raise StaleLoadError(self._active_url or "")

    async def open(self, url: str) -> int:
        """Start loading *url*, superseding any previous page. Returns the token."""
        self._generation += 1
        token = self._generation
        await self.release()
        self._active_url = url

        logger.debug(f"[SESSION] Loading {url} (generation {token})")
        try:
            page = await self._renderer.load(url)
        except (StaleLoadError, NetworkOrRenderFailure):
            raise
        except Exception as exc:
            raise NetworkOrRenderFailure(f"Cannot load {url}: {exc}") from exc

        if token != self._generation:
            logger.debug(f"[SESSION] Discarding late load signal for {url}")
            await page.close()
            raise StaleLoadError(url)

        self._active = page
        return token

    async def settle(self, token: int) -> None:
        """Wait the settle delay after the load signal."""
        self._check(token)
        if self.settle_delay > 0:
            await asyncio.sleep(self.settle_delay)
        self._check(token)

    async def read(self, token: int) -> RenderedDocument:
        """Snapshot the settled page."""
        self._check(token)
        if self._active is None:
            raise StaleLoadError(self._active_url or "")
        try:
            document = await self._active.snapshot()
        except Exception as exc:
            raise NetworkOrRenderFailure(
                f"Cannot read {self._active_url}: {exc}"
            ) from exc
        self._check(token)
        return document

    async def release(self) -> None:
        """Close the active page, if any."""
        page, self._active = self._active, None
        if page is not None:
            try:
                await page.close()
            except Exception as exc:
                logger.debug(f"[SESSION] Error closing page: {exc}")
