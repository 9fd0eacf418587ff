"""Reading-order reconstruction of classified page items."""

from __future__ import annotations

from typing import Iterable, Sequence

from .models import ContentItem, LineGroup

__all__ = ["LINE_THRESHOLD", "sort_items", "reconstruct"]

# Vertical distance, in page units, under which two items share a baseline.
LINE_THRESHOLD = 10.0


def sort_items(items: Iterable[ContentItem]) -> list[ContentItem]:
    """Order items top to bottom, then left to right within a line band.

    A band starts at the highest remaining item and takes every following item
    within :data:`LINE_THRESHOLD` of it. Ties keep content-stream draw order.
    """

    by_height = sorted(items, key=lambda item: (-item.y, item.order))
    ordered: list[ContentItem] = []
    band: list[ContentItem] = []
    for item in by_height:
        if band and band[0].y - item.y >= LINE_THRESHOLD:
            ordered.extend(sorted(band, key=lambda member: (member.x, member.order)))
            band = []
        band.append(item)
    ordered.extend(sorted(band, key=lambda member: (member.x, member.order)))
    return ordered


def reconstruct(items: Sequence[ContentItem]) -> list[LineGroup]:
    """Group sorted items into output lines.

    A line is flushed whenever the item kind switches between text and OCR text,
    or when consecutive items are more than :data:`LINE_THRESHOLD` apart
    vertically. Empty items are dropped.
    """

    lines: list[LineGroup] = []
    current: list[ContentItem] = []
    for item in sort_items(entry for entry in items if entry.text.strip()):
        if current:
            previous = current[-1]
            if previous.is_image_text != item.is_image_text or abs(item.y - previous.y) > LINE_THRESHOLD:
                lines.append(LineGroup.from_items(current))
                current = []
        current.append(item)
    if current:
        lines.append(LineGroup.from_items(current))
    return lines
