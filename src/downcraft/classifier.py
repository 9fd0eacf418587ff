"""Turn a page's raw text runs and image OCR text into content items.

Heading structure is inferred without any style metadata: the most frequent
font size on the page is taken as the body size, and sizes clearly above it
become heading tiers. The work happens in two passes over an immutable
snapshot of the runs, a histogram pass and a classification pass.
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import Iterable, Mapping, Sequence

from .models import ContentItem, ImageIdentity, ItemKind, TextRun, Transform

__all__ = [
    "BULLET_GLYPHS",
    "HEADING_SIZE_RATIO",
    "MAX_HEADING_SIZES",
    "MAX_HEADING_LEVEL",
    "NEW_BLOCK_RATIO",
    "image_position",
    "font_size_histogram",
    "default_font_size",
    "heading_levels",
    "is_bullet_text",
    "is_italic_font",
    "classify_page",
]

logger = logging.getLogger(__name__)

BULLET_GLYPHS = ("•", "-", "*", "‣", "◦", "⁃", "∙")
HEADING_SIZE_RATIO = 1.1
MAX_HEADING_SIZES = 4
MAX_HEADING_LEVEL = 3
NEW_BLOCK_RATIO = 1.5


def image_position(transform: Transform | None, page_height: float) -> tuple[float, float]:
    """``(x, y)`` of an image's top-left corner, or the page's vertical middle."""

    if transform is None:
        return 0.0, page_height / 2
    return transform[4], transform[5] + abs(transform[3])


def font_size_histogram(runs: Iterable[TextRun]) -> Counter[float]:
    return Counter(run.font_size for run in runs)


def default_font_size(histogram: Mapping[float, int]) -> float | None:
    """Body text size: the most frequent size, the smaller one on ties."""

    if not histogram:
        return None
    return min(histogram, key=lambda size: (-histogram[size], size))


def heading_levels(histogram: Mapping[float, int]) -> dict[float, int]:
    """Map heading font sizes to levels, largest size first.

    Only sizes more than 10% above the body size qualify; the four largest are
    kept and ranked from 1, with every rank past the third sharing level 3.
    """

    body = default_font_size(histogram)
    if body is None:
        return {}
    candidates = sorted((size for size in histogram if size > body * HEADING_SIZE_RATIO), reverse=True)
    return {
        size: min(rank, MAX_HEADING_LEVEL)
        for rank, size in enumerate(candidates[:MAX_HEADING_SIZES], start=1)
    }


def is_bullet_text(text: str) -> bool:
    return text.strip().startswith(BULLET_GLYPHS)


def is_italic_font(font_name: str | None) -> bool:
    return bool(font_name) and "italic" in font_name.lower()


def classify_page(
    runs: Sequence[TextRun],
    ocr_map: Mapping[ImageIdentity, str],
    placements: Mapping[ImageIdentity, Transform | None] | None = None,
    *,
    page_height: float = 0.0,
) -> list[ContentItem]:
    """Build the unsorted content items of one page.

    ``ocr_map`` holds the OCR text of this page's images by identity and
    ``placements`` their drawing transforms. Text items keep their
    content-stream order in ``order``; image items are numbered after them in
    identity order.
    """

    snapshot = tuple(runs)
    histogram = font_size_histogram(snapshot)
    levels = heading_levels(histogram)
    if levels:
        logger.debug("Heading sizes %s over body size %s", levels, default_font_size(histogram))

    items: list[ContentItem] = []
    previous_y: float | None = None
    for run in snapshot:
        text = run.text.strip()
        if not text:
            continue
        size = run.font_size
        bullet = is_bullet_text(text)
        starts_block = previous_y is None or abs(run.y - previous_y) > size * NEW_BLOCK_RATIO
        header = not bullet and size in levels and starts_block
        items.append(
            ContentItem(
                kind=ItemKind.TEXT,
                text=text,
                x=run.x,
                y=run.y,
                order=len(items),
                font_size=size,
                is_italic=is_italic_font(run.font_name),
                is_bullet=bullet,
                is_header=header,
                header_level=levels[size] if header else 0,
            )
        )
        previous_y = run.y

    placements = placements or {}
    for identity in sorted(ocr_map):
        text = (ocr_map[identity] or "").strip()
        if not text:
            continue
        x, y = image_position(placements.get(identity), page_height)
        items.append(ContentItem(kind=ItemKind.IMAGE_TEXT, text=text, x=x, y=y, order=len(items)))
    return items
