"""
Transformation Adapter
======================
Converts a settled page into Markdown (and optionally DOCX).

The scheduler only relies on the ``TransformationAdapter`` contract: an
async ``transform(document, url)`` returning a ``TransformResult`` or
raising.  ``MarkdownTransformer`` is the default implementation:

1. Drop ``helix-importer`` / script / style / noscript elements
2. Let an optional ``transform_dom(soup, url)`` hook pick the element to
   convert (defaults to ``<body>``)
3. Convert with markdownify (ATX headings)
4. Compute the destination path (optional ``generate_document_path``
   hook, otherwise the sanitised URL path)
5. Optionally render DOCX via ``word_exporter.markdown_to_docx``
"""

from __future__ import annotations

import asyncio
import logging
import re
import unicodedata
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional
from urllib.parse import unquote, urlparse

from bs4 import BeautifulSoup
from markdownify import markdownify

from .errors import TransformFailure
from .renderer import BS_PARSER, RenderedDocument
from .word_exporter import markdown_to_docx

logger = logging.getLogger(__name__)

_STRIP_TAGS = ("script", "style", "noscript", "helix-importer")
_SEGMENT_RE = re.compile(r"[^a-z0-9]+")


@dataclass
class TransformResult:
    """Output of one transformation."""
    markdown: str
    html: str
    path: str                      # destination path, e.g. "/blog/post"
    docx: Optional[bytes] = None

    @property
    def docx_filename(self) -> str:
        return f"{self.path.lstrip('/')}.docx"

    @property
    def markdown_filename(self) -> str:
        return f"{self.path.lstrip('/')}.md"


class TransformationAdapter(ABC):
    """Converts a rendered document; one call at a time."""

    @abstractmethod
    async def transform(self, document: RenderedDocument, url: str) -> TransformResult:
        """Convert *document* (rendered from *url*)."""


# ---------------------------------------------------------------------------
# Destination paths
# ---------------------------------------------------------------------------

def sanitize_segment(segment: str) -> str:
    """Lower-case, strip accents, collapse anything else to ``-``."""
    text = unicodedata.normalize("NFD", unquote(segment).lower())
    text = "".join(c for c in text if not unicodedata.combining(c))
    return _SEGMENT_RE.sub("-", text).strip("-")


def default_document_path(url: str) -> str:
    """
    Destination path for *url*.

    ``https://site.com/Blog/My Post.html`` → ``/blog/my-post``;
    the site root maps to ``/index``.
    """
    path = urlparse(url).path
    path = re.sub(r"\.html?$", "", path).rstrip("/")
    segments = [sanitize_segment(s) for s in path.split("/")]
    segments = [s for s in segments if s]
    if not segments:
        return "/index"
    return "/" + "/".join(segments)


# ---------------------------------------------------------------------------
# Default adapter
# ---------------------------------------------------------------------------

class MarkdownTransformer(TransformationAdapter):
    """
    HTML → Markdown (+ DOCX) conversion of the rendered DOM.

    Args:
        include_docx:           Also render the DOCX artifact
        transform_dom:          ``(soup, url) -> element | None`` hook
        generate_document_path: ``(url, soup) -> str | None`` hook
    """

    def __init__(
        self,
        *,
        include_docx: bool = True,
        transform_dom: Optional[Callable] = None,
        generate_document_path: Optional[Callable] = None,
    ):
        self.include_docx = include_docx
        self.transform_dom = transform_dom
        self.generate_document_path = generate_document_path

    async def transform(self, document: RenderedDocument, url: str) -> TransformResult:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, self.convert, document.html, url)
        except TransformFailure:
            raise
        except Exception as exc:
            raise TransformFailure(f"Cannot transform {url}: {exc}") from exc

    def convert(self, html: str, url: str) -> TransformResult:
        """Synchronous conversion (runs in the default executor)."""
        soup = BeautifulSoup(html, BS_PARSER)
        for tag_name in _STRIP_TAGS:
            for tag in soup.find_all(tag_name):
                tag.decompose()

        title = ""
        if soup.title and soup.title.get_text(strip=True):
            title = soup.title.get_text(" ", strip=True)

        output = None
        if self.transform_dom:
            output = self.transform_dom(soup, url)
        output = output or soup.body or soup

        path = None
        if self.generate_document_path:
            path = self.generate_document_path(url, soup)
        if path:
            path = "/" + path.strip("/")
        else:
            path = default_document_path(url)

        output_html = str(output)
        markdown = markdownify(output_html, heading_style="ATX").strip() + "\n"

        docx = None
        if self.include_docx:
            docx = markdown_to_docx(markdown, title=title or None, source_url=url)

        logger.debug(f"[TRANSFORM] {url} -> {path} ({len(markdown)} chars)")
        return TransformResult(markdown=markdown, html=output_html, path=path, docx=docx)
