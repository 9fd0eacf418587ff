"""Markdown rendering of reconstructed lines and pages."""

from __future__ import annotations

import re
from typing import Iterable, Sequence

from .classifier import BULLET_GLYPHS
from .models import ContentItem, LineGroup
from .reading_order import reconstruct

__all__ = ["PAGE_SEPARATOR", "render_line", "emit", "render_page", "join_pages"]

PAGE_SEPARATOR = "\n---\n"

_LEADING_BULLET = re.compile("^\\s*[" + re.escape("".join(BULLET_GLYPHS)) + "]\\s*")


def render_line(line: LineGroup) -> str:
    """Render a non-OCR line: italics first, then the header or bullet prefix.

    A bullet holding nothing but its glyph renders as an empty string.
    """

    text = line.text
    if line.is_bullet:
        text = _LEADING_BULLET.sub("", text, count=1).strip()
        if not text:
            return ""
    if line.is_italic:
        text = f"*{text}*"
    if line.is_header:
        return f"{'#' * line.header_level} {text}"
    if line.is_bullet:
        return f"- {text}"
    return text


def emit(lines: Sequence[LineGroup]) -> str:
    """Render one page. Every output line, the last included, ends in a newline.

    OCR lines become blockquotes and are kept apart from neighbouring content by
    a blank line so Markdown does not fold the following text into the quote.
    """

    out: list[str] = []
    previous_ocr = False
    for line in lines:
        if line.is_ocr:
            quoted = [f"> {part.strip()}" for part in line.text.split("\n") if part.strip()]
            if not quoted:
                continue
            if out:
                out.append("")
            out.extend(quoted)
        else:
            rendered = render_line(line)
            if not rendered:
                continue
            if previous_ocr:
                out.append("")
            out.append(rendered)
        previous_ocr = line.is_ocr
    return "\n".join(out) + "\n" if out else ""


def render_page(items: Sequence[ContentItem]) -> str:
    return emit(reconstruct(items))


def join_pages(pages: Iterable[str]) -> str:
    """Join per-page Markdown with a horizontal rule between consecutive pages."""

    return PAGE_SEPARATOR.join(pages).strip()
