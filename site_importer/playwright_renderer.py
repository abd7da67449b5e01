"""
Playwright Renderer
===================
Headless Chromium backend for ``PageRenderer``.

- ``probe()`` issues a GET through the browser context's request API
  (shares cookies with the pages, follows up to 20 redirects)
- ``load()`` opens a fresh page and navigates until the ``load`` event
- Images, media, fonts and analytics scripts are blocked for speed

Usage::

    async with PlaywrightRenderer(config) as renderer:
        scheduler = ImportScheduler(renderer, config)
        report = await scheduler.run(urls)
"""

from __future__ import annotations

import logging
import re
from typing import Optional

from playwright.async_api import Browser, BrowserContext, Page, async_playwright
from playwright.async_api import Error as PlaywrightError

from .errors import MalformedURLError, NetworkOrRenderFailure
from .proxy import normalize_url
from .renderer import LoadedPage, PageRenderer, ProbeResult, RenderedDocument
from .run_config import ImporterRunConfig

logger = logging.getLogger(__name__)

# Resource types to block for speed
_BLOCKED_RESOURCE_TYPES = frozenset([
    "image", "media", "font",
])

# URL patterns for analytics/tracking scripts to block
_BLOCKED_URL_PATTERNS = [
    re.compile(r"google[-_]?analytics", re.IGNORECASE),
    re.compile(r"googletagmanager", re.IGNORECASE),
    re.compile(r"facebook\.net", re.IGNORECASE),
    re.compile(r"doubleclick\.net", re.IGNORECASE),
    re.compile(r"hotjar\.", re.IGNORECASE),
    re.compile(r"segment\.(com|io)", re.IGNORECASE),
]

_MAX_REDIRECTS = 20


def _same_url(a: str, b: str) -> bool:
    try:
        return normalize_url(a) == normalize_url(b)
    except MalformedURLError:
        return a == b


class _PlaywrightPage(LoadedPage):
    def __init__(self, page: Page):
        self._page = page

    async def snapshot(self) -> RenderedDocument:
        return RenderedDocument(url=self._page.url, html=await self._page.content())

    async def close(self) -> None:
        if not self._page.is_closed():
            await self._page.close()


class PlaywrightRenderer(PageRenderer):
    """Chromium-backed renderer; one browser context per instance."""

    def __init__(self, config: Optional[ImporterRunConfig] = None):
        self.config = config or ImporterRunConfig()
        self._playwright = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None

    async def __aenter__(self) -> "PlaywrightRenderer":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Browser management
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Launch Chromium and create the browsing context."""
        if self._context is not None:
            return
        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(
            headless=self.config.headless,
            args=[
                '--disable-gpu',
                '--no-sandbox',
                '--disable-dev-shm-usage',
                '--disable-background-networking',
                '--disable-extensions',
                '--no-first-run',
            ]
        )
        self._context = await self._browser.new_context(
            user_agent=self.config.user_agent,
            viewport={'width': 1280, 'height': 1000},
            locale='en-US',
        )
        self._context.set_default_navigation_timeout(self.config.page_timeout_seconds * 1000)

        if self.config.block_resources:
            await self._context.route("**/*", self._route_handler)

        logger.info(
            f"Playwright browser initialized (headless={self.config.headless}, "
            f"blocking={'images,fonts,media,analytics' if self.config.block_resources else 'none'})"
        )

    async def _route_handler(self, route) -> None:
        """Block unnecessary resources for speed."""
        request = route.request
        if request.resource_type in _BLOCKED_RESOURCE_TYPES:
            await route.abort()
            return
        if request.resource_type == "script":
            for pattern in _BLOCKED_URL_PATTERNS:
                if pattern.search(request.url):
                    await route.abort()
                    return
        await route.continue_()

    async def close(self) -> None:
        """Close browser and Playwright."""
        if self._context:
            try:
                await self._context.close()
            except PlaywrightError as e:
                logger.debug(f"Error closing context: {e}")
            self._context = None
        if self._browser:
            try:
                await self._browser.close()
            except PlaywrightError as e:
                logger.debug(f"Error closing browser: {e}")
            self._browser = None
        if self._playwright:
            await self._playwright.stop()
            self._playwright = None

    def _require_context(self) -> BrowserContext:
        if self._context is None:
            raise NetworkOrRenderFailure("Renderer not started (use 'async with PlaywrightRenderer(...)')")
        return self._context

    # ------------------------------------------------------------------
    # PageRenderer
    # ------------------------------------------------------------------

    async def probe(self, url: str) -> ProbeResult:
        context = self._require_context()
        try:
            response = await context.request.get(
                url,
                timeout=self.config.probe_timeout_seconds * 1000,
                max_redirects=_MAX_REDIRECTS,
            )
        except PlaywrightError as e:
            raise NetworkOrRenderFailure(f"Probe failed for {url}: {e.message}") from e
        try:
            final_url = response.url
            return ProbeResult(
                status=response.status,
                redirected=not _same_url(final_url, url),
                final_url=final_url,
            )
        finally:
            await response.dispose()

    async def load(self, url: str) -> LoadedPage:
        context = self._require_context()
        page = await context.new_page()
        try:
            await page.goto(url, wait_until="load")
        except PlaywrightError as e:
            await page.close()
            raise NetworkOrRenderFailure(f"Cannot load {url}: {e.message}") from e
        return _PlaywrightPage(page)
