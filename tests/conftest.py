"""
Shared fixtures: an in-memory renderer and transformer.

``FakeRenderer`` serves ``FakePage`` entries keyed by their *remote* URL;
it maps the proxy URLs the scheduler asks for back to the remote URL via
the ``host`` query parameter, so tests can describe sites naturally.
"""

import asyncio
from dataclasses import dataclass
from typing import Dict, List, Optional, Set
from urllib.parse import parse_qsl, urlparse

import pytest

from site_importer.errors import TransformFailure
from site_importer.proxy import normalize_url, to_remote_url
from site_importer.renderer import LoadedPage, PageRenderer, ProbeResult, RenderedDocument
from site_importer.run_config import ImporterRunConfig
from site_importer.transform import TransformationAdapter, TransformResult, default_document_path


@dataclass
class FakePage:
    html: str = "<html><body><p>hello</p></body></html>"
    status: int = 200
    redirect_to: Optional[str] = None
    load_error: Optional[Exception] = None


def page_with_links(*hrefs: str, title: str = "Page") -> FakePage:
    anchors = "".join(f'<a href="{h}">link</a>' for h in hrefs)
    return FakePage(html=f"<html><head><title>{title}</title></head><body>{anchors}</body></html>")


def remote_of(proxy_url: str) -> str:
    """Undo the proxy rewrite: ``http://proxy/a?host=https://site`` → ``https://site/a``."""
    parsed = urlparse(proxy_url)
    params = parse_qsl(parsed.query, keep_blank_values=True)
    host = next((v for k, v in params if k == "host"), f"{parsed.scheme}://{parsed.netloc}")
    return to_remote_url(proxy_url, host, strip_param="host")


class _FakeLoaded(LoadedPage):
    def __init__(self, renderer: "FakeRenderer", url: str, page: FakePage):
        self._renderer = renderer
        self._url = url
        self._page = page
        self.closed = False

    async def snapshot(self) -> RenderedDocument:
        return RenderedDocument(url=self._url, html=self._page.html)

    async def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._renderer.open_pages -= 1


class FakeRenderer(PageRenderer):
    """In-memory renderer; unknown URLs probe as 404."""

    def __init__(self, pages: Optional[Dict[str, FakePage]] = None):
        self.pages = {normalize_url(url): page for url, page in (pages or {}).items()}
        self.probes: List[str] = []
        self.loads: List[str] = []
        self.open_pages = 0
        self.max_open_pages = 0
        self.loaded: List[_FakeLoaded] = []

    def lookup(self, proxy_url: str) -> Optional[FakePage]:
        return self.pages.get(normalize_url(remote_of(proxy_url)))

    async def probe(self, url: str) -> ProbeResult:
        self.probes.append(url)
        await asyncio.sleep(0)
        page = self.lookup(url)
        if page is None:
            return ProbeResult(status=404, final_url=url)
        if page.redirect_to:
            return ProbeResult(status=page.status, redirected=True, final_url=page.redirect_to)
        return ProbeResult(status=page.status, final_url=url)

    async def load(self, url: str) -> LoadedPage:
        self.loads.append(url)
        await asyncio.sleep(0)
        page = self.lookup(url) or FakePage(status=404)
        if page.load_error is not None:
            raise page.load_error
        self.open_pages += 1
        self.max_open_pages = max(self.max_open_pages, self.open_pages)
        loaded = _FakeLoaded(self, url, page)
        self.loaded.append(loaded)
        return loaded


class FakeTransformer(TransformationAdapter):
    """Records calls; raises ``TransformFailure`` for URLs in *fail_on*."""

    def __init__(self, fail_on: Optional[Set[str]] = None, docx: Optional[bytes] = b"DOCX"):
        self.fail_on = set(fail_on or ())
        self.docx = docx
        self.calls: List[str] = []
        self.active = 0
        self.max_active = 0

    async def transform(self, document: RenderedDocument, url: str) -> TransformResult:
        self.calls.append(url)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(0)
            if url in self.fail_on:
                raise TransformFailure(f"boom on {url}")
            return TransformResult(
                markdown=f"# {url}\n",
                html=document.html,
                path=default_document_path(url),
                docx=self.docx,
            )
        finally:
            self.active -= 1


@pytest.fixture
def fast_config():
    """Import-mode config with no settle delay."""
    return ImporterRunConfig(settle_delay=0)


@pytest.fixture
def crawl_config():
    return ImporterRunConfig(mode="crawl", settle_delay=0)
