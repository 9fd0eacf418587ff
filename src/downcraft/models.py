"""Domain types flowing between the extraction and reconstruction stages."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Sequence

__all__ = [
    "Transform",
    "ImageIdentity",
    "TextRun",
    "RawImage",
    "ImageOperator",
    "ImageRecord",
    "ItemKind",
    "ContentItem",
    "LineGroup",
]

# PDF text/image matrix ``[a, b, c, d, e, f]``; ``e``/``f`` are the origin in
# page space where y grows upward.
Transform = tuple[float, float, float, float, float, float]
ImageIdentity = tuple[int, int]


@dataclass(frozen=True, slots=True)
class TextRun:
    """One text-showing run as reported by the page source."""

    text: str
    transform: Transform
    font_name: str = ""

    @property
    def font_size(self) -> float:
        return abs(self.transform[0])

    @property
    def x(self) -> float:
        return self.transform[4]

    @property
    def y(self) -> float:
        return self.transform[5]


@dataclass(frozen=True, slots=True)
class RawImage:
    """Decoded pixel buffer, packed row-major with ``channels`` bytes per pixel."""

    samples: bytes
    width: int
    height: int
    channels: int


@dataclass(frozen=True, slots=True)
class ImageOperator:
    """An image drawing operation found in a page's content stream."""

    name: str
    transform: Transform | None
    decode: Callable[[], RawImage]
    inline: bool = False


@dataclass(slots=True)
class ImageRecord:
    """An extracted image, later enriched with OCR output."""

    page_number: int
    image_index: int
    path: Path
    width: int
    height: int
    transform: Transform | None = None
    ocr_text: str | None = None
    ocr_error: str | None = None

    @property
    def identity(self) -> ImageIdentity:
        return (self.page_number, self.image_index)

    @property
    def name(self) -> str:
        return self.path.name

    def as_dict(self, relative_to: Path | None = None) -> dict[str, Any]:
        path = self.path
        if relative_to is not None:
            try:
                path = self.path.relative_to(relative_to)
            except ValueError:
                pass
        return {
            "page": self.page_number,
            "index": self.image_index,
            "name": self.name,
            "path": path.as_posix(),
            "width": self.width,
            "height": self.height,
            "ocr_text": self.ocr_text,
            "ocr_error": self.ocr_error,
        }


class ItemKind(str, Enum):
    TEXT = "text"
    IMAGE_TEXT = "imageText"


@dataclass(frozen=True, slots=True)
class ContentItem:
    """A positioned unit of page content, either a text run or OCR output."""

    kind: ItemKind
    text: str
    x: float
    y: float
    order: int = 0
    font_size: float = 0.0
    is_italic: bool = False
    is_bullet: bool = False
    is_header: bool = False
    header_level: int = 0

    def __post_init__(self) -> None:
        if self.is_header and self.is_bullet:
            raise ValueError("A bullet item cannot also be a header")
        if self.is_header != (self.header_level > 0):
            raise ValueError(f"Inconsistent header level {self.header_level} for is_header={self.is_header}")
        if not 0 <= self.header_level <= 3:
            raise ValueError(f"Header level out of range: {self.header_level}")

    @property
    def is_image_text(self) -> bool:
        return self.kind is ItemKind.IMAGE_TEXT


@dataclass(frozen=True, slots=True)
class LineGroup:
    """A reconstructed output line. Flags come from the item that opened it."""

    text: str
    is_ocr: bool = False
    is_header: bool = False
    header_level: int = 0
    is_bullet: bool = False
    is_italic: bool = False
    items: tuple[ContentItem, ...] = field(default=(), repr=False)

    @classmethod
    def from_items(cls, items: Sequence[ContentItem]) -> "LineGroup":
        if not items:
            raise ValueError("A line needs at least one item")
        first = items[0]
        is_ocr = first.is_image_text
        if any(item.is_image_text != is_ocr for item in items):
            raise ValueError("A line cannot mix text and image-text items")
        separator = "\n" if is_ocr else " "
        return cls(
            text=separator.join(item.text for item in items),
            is_ocr=is_ocr,
            is_header=first.is_header,
            header_level=first.header_level,
            is_bullet=first.is_bullet,
            is_italic=first.is_italic,
            items=tuple(items),
        )
