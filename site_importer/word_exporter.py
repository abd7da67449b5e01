"""
Word Document Exporter
======================
Renders converted Markdown into a DOCX artifact.

Features:
- ATX headings (``#`` … ``######``) → Word Heading 1–6
- Fenced code blocks in monospace with shading
- Bullet / numbered list items → ``List Bullet`` / ``List Number``
- Pipe tables → Word tables with a bold header row
- Images kept as ``[image: alt]`` placeholders with their source
- Source URL line under the title
"""

from __future__ import annotations

import io
import logging
import re
from typing import List, Optional

logger = logging.getLogger(__name__)

_HEADING_RE = re.compile(r"^(#{1,6})\s+(.*?)\s*#*\s*$")
_BULLET_RE = re.compile(r"^\s*[-*+]\s+(.*)$")
_NUMBERED_RE = re.compile(r"^\s*\d+[.)]\s+(.*)$")
_IMAGE_RE = re.compile(r"!\[([^\]]*)\]\(([^)\s]+)[^)]*\)")
_LINK_RE = re.compile(r"\[([^\]]+)\]\(([^)\s]+)[^)]*\)")
_EMPHASIS_RE = re.compile(r"(\*\*|__|\*|_)(\S(?:.*?\S)?)\1")
_TABLE_SEPARATOR_RE = re.compile(r"^\s*\|?\s*:?-{2,}:?\s*(\|\s*:?-{2,}:?\s*)*\|?\s*$")


def _inline_text(text: str) -> str:
    """Flatten inline Markdown (images, links, emphasis) to plain text."""
    text = _IMAGE_RE.sub(lambda m: f"[image: {m.group(1) or m.group(2)}]", text)
    text = _LINK_RE.sub(lambda m: m.group(1), text)
    text = _EMPHASIS_RE.sub(lambda m: m.group(2), text)
    return text.replace("\\", "")


def markdown_to_docx(
    markdown: str,
    *,
    title: Optional[str] = None,
    source_url: Optional[str] = None,
) -> bytes:
    """
    Render *markdown* into a Word document.

    Args:
        markdown:   Converted page content
        title:      Optional document title (rendered as Title style)
        source_url: Optional source URL printed under the title

    Returns:
        The DOCX file as bytes
    """
    from docx import Document
    from docx.shared import Pt, RGBColor

    doc = Document()

    # ── Configure base styles ──────────────────────────────────────
    style = doc.styles["Normal"]
    style.font.name = "Calibri"
    style.font.size = Pt(10)
    style.paragraph_format.space_after = Pt(4)

    if title:
        doc.add_heading(title[:200], level=0)
    if source_url:
        url_para = doc.add_paragraph()
        url_run = url_para.add_run(source_url)
        url_run.font.color.rgb = RGBColor(0x25, 0x63, 0xEB)
        url_run.font.size = Pt(9)

    lines = markdown.splitlines()
    paragraph: List[str] = []
    i = 0

    def flush_paragraph():
        if paragraph:
            text = _inline_text(" ".join(s.strip() for s in paragraph))
            if text.strip():
                doc.add_paragraph(text)
            paragraph.clear()

    while i < len(lines):
        line = lines[i]
        stripped = line.strip()

        if not stripped:
            flush_paragraph()
            i += 1
            continue

        # Fenced code block
        if stripped.startswith("```"):
            flush_paragraph()
            code: List[str] = []
            i += 1
            while i < len(lines) and not lines[i].strip().startswith("```"):
                code.append(lines[i])
                i += 1
            i += 1  # closing fence
            _render_code(doc, "\n".join(code))
            continue

        heading = _HEADING_RE.match(stripped)
        if heading:
            flush_paragraph()
            level = len(heading.group(1))
            doc.add_heading(_inline_text(heading.group(2))[:200], level=level)
            i += 1
            continue

        # Pipe table: header line followed by a separator line
        if "|" in stripped and i + 1 < len(lines) and _TABLE_SEPARATOR_RE.match(lines[i + 1]):
            flush_paragraph()
            table_lines = [stripped]
            i += 2
            while i < len(lines) and "|" in lines[i] and lines[i].strip():
                table_lines.append(lines[i].strip())
                i += 1
            _render_table(doc, table_lines)
            continue

        if set(stripped.replace(" ", "")) <= {"-", "*", "_"} and len(stripped.replace(" ", "")) >= 3:
            # Horizontal rule
            flush_paragraph()
            i += 1
            continue

        bullet = _BULLET_RE.match(line)
        if bullet:
            flush_paragraph()
            doc.add_paragraph(_inline_text(bullet.group(1)), style="List Bullet")
            i += 1
            continue

        numbered = _NUMBERED_RE.match(line)
        if numbered:
            flush_paragraph()
            doc.add_paragraph(_inline_text(numbered.group(1)), style="List Number")
            i += 1
            continue

        if stripped.startswith(">"):
            flush_paragraph()
            quote = doc.add_paragraph()
            quote.add_run(_inline_text(stripped.lstrip("> "))).italic = True
            i += 1
            continue

        paragraph.append(line)
        i += 1

    flush_paragraph()

    buffer = io.BytesIO()
    doc.save(buffer)
    data = buffer.getvalue()
    logger.debug(f"Rendered DOCX ({len(data):,} bytes) for {source_url or title or 'document'}")
    return data


# ---------------------------------------------------------------------------
# Block rendering
# ---------------------------------------------------------------------------

def _split_row(line: str) -> List[str]:
    line = line.strip()
    if line.startswith("|"):
        line = line[1:]
    if line.endswith("|"):
        line = line[:-1]
    return [_inline_text(c.strip()) for c in line.split("|")]


def _render_table(doc, lines: List[str]) -> None:
    """Render a pipe table as a proper Word table."""
    from docx.shared import Pt
    from docx.enum.table import WD_TABLE_ALIGNMENT

    header = _split_row(lines[0])
    rows = [_split_row(line) for line in lines[1:]]
    num_cols = max(len(header), max((len(r) for r in rows), default=0))

    table = doc.add_table(rows=1 + len(rows), cols=num_cols)
    table.alignment = WD_TABLE_ALIGNMENT.LEFT
    table.style = "Table Grid"

    for col, text in enumerate(header[:num_cols]):
        _cell_text(table.rows[0].cells[col], text, bold=True, size=Pt(9))
    for row_idx, row in enumerate(rows):
        for col, text in enumerate(row[:num_cols]):
            _cell_text(table.rows[row_idx + 1].cells[col], text, size=Pt(9))

    doc.add_paragraph()  # spacing after table


def _render_code(doc, content: str) -> None:
    """Render a code block with monospace font and shading."""
    from docx.shared import Pt
    from docx.oxml.ns import qn
    from docx.oxml import OxmlElement

    p = doc.add_paragraph()
    run = p.add_run(content)
    run.font.name = "Consolas"
    run.font.size = Pt(8)

    shading = OxmlElement("w:shd")
    shading.set(qn("w:fill"), "F5F5F5")
    shading.set(qn("w:val"), "clear")
    p.paragraph_format.element.get_or_add_pPr().append(shading)


def _cell_text(cell, text: str, bold: bool = False, size=None) -> None:
    """Set cell text with formatting."""
    cell.text = text
    for paragraph in cell.paragraphs:
        for run in paragraph.runs:
            run.bold = bold
            if size:
                run.font.size = size
