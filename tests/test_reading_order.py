from __future__ import annotations

import pytest

from downcraft.models import ContentItem, ItemKind, LineGroup
from downcraft.reading_order import reconstruct, sort_items


def text(value: str, x: float, y: float, order: int = 0, **flags) -> ContentItem:
    return ContentItem(kind=ItemKind.TEXT, text=value, x=x, y=y, order=order, **flags)


def ocr(value: str, x: float, y: float, order: int = 0) -> ContentItem:
    return ContentItem(kind=ItemKind.IMAGE_TEXT, text=value, x=x, y=y, order=order)


def test_items_sorted_top_down_then_left_to_right() -> None:
    items = [
        text("Next", 50, 650, order=2),
        text("world", 200, 700, order=1),
        text("Hello", 50, 705, order=0),
    ]

    assert [item.text for item in sort_items(items)] == ["Hello", "world", "Next"]
    assert [line.text for line in reconstruct(items)] == ["Hello world", "Next"]


def test_ties_keep_draw_order() -> None:
    items = [text("second", 10, 500, order=1), text("first", 10, 500, order=0)]
    assert [item.text for item in sort_items(items)] == ["first", "second"]


def test_large_vertical_gap_forces_new_line() -> None:
    lines = reconstruct([text("a", 0, 700, 0), text("b", 0, 689, 1)])
    assert [line.text for line in lines] == ["a", "b"]


def test_text_and_ocr_are_never_mixed_on_a_line() -> None:
    items = [
        text("Left", 0, 500, 0),
        ocr("Caption", 100, 500, 1),
        text("Right", 300, 500, 2),
    ]

    lines = reconstruct(items)

    assert [(line.text, line.is_ocr) for line in lines] == [
        ("Left", False),
        ("Caption", True),
        ("Right", False),
    ]
    for line in lines:
        assert len({item.kind for item in line.items}) == 1


def test_consecutive_ocr_items_share_a_line() -> None:
    lines = reconstruct([ocr("First figure", 0, 400, 0), ocr("Second figure", 200, 400, 1)])

    assert len(lines) == 1
    assert lines[0].is_ocr
    assert lines[0].text == "First figure\nSecond figure"


def test_line_flags_come_from_first_item() -> None:
    items = [
        text("Title", 0, 700, 0, is_header=True, header_level=2, font_size=18),
        text("tail", 80, 700, 1),
    ]

    (line,) = reconstruct(items)

    assert line.is_header and line.header_level == 2
    assert line.text == "Title tail"


def test_blank_items_are_dropped() -> None:
    assert reconstruct([text("  ", 0, 0)]) == []


def test_line_group_rejects_mixed_items() -> None:
    with pytest.raises(ValueError):
        LineGroup.from_items([text("a", 0, 0), ocr("b", 0, 0)])


def test_content_item_rejects_bullet_headers() -> None:
    with pytest.raises(ValueError):
        text("• x", 0, 0, is_bullet=True, is_header=True, header_level=1)
