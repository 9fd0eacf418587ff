"""Embedded image extraction.

Images are pulled from a page in the order the content stream draws them,
normalised to RGBA, encoded as PNG and persisted through a byte sink. Each
image receives a ``(page, index)`` identity (both 1-based) which is the join
key used later when OCR text is placed back onto the page.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

import numpy as np
from PIL import Image

from .errors import ExtractionError, StructuralError
from .io import ByteSink
from .models import ImageRecord, Transform
from .source import PageSource

__all__ = [
    "ExtractedImage",
    "image_filename",
    "to_rgba",
    "encode_png",
    "iter_page_images",
    "save_page_images",
    "extract_document_images",
]

logger = logging.getLogger(__name__)

DEFAULT_MIN_IMAGE_BYTES = 100


@dataclass(slots=True)
class ExtractedImage:
    """An image decoded from a page and encoded as PNG, not yet persisted."""

    page_number: int
    image_index: int
    name: str
    png: bytes
    width: int
    height: int
    transform: Transform | None = None
    inline: bool = False


def image_filename(page_number: int, image_index: int) -> str:
    return f"page_{page_number}_image_{image_index}.png"


def to_rgba(samples: bytes, width: int, height: int, channels: int) -> np.ndarray:
    """Expand a packed pixel buffer to an ``(height, width, 4)`` RGBA array."""

    if width <= 0 or height <= 0:
        raise ExtractionError(f"Invalid image dimensions {width}x{height}")
    expected = width * height * channels
    pixels = np.frombuffer(samples, dtype=np.uint8)
    if pixels.size < expected:
        raise ExtractionError(
            f"Pixel buffer too short for {width}x{height}x{channels}: {pixels.size} < {expected}"
        )
    pixels = pixels[:expected].reshape(height, width, channels)

    if channels == 4:
        return pixels.copy()
    opaque = np.full((height, width, 1), 255, dtype=np.uint8)
    if channels == 3:
        return np.concatenate([pixels, opaque], axis=2)
    if channels == 1:
        return np.concatenate([np.repeat(pixels, 3, axis=2), opaque], axis=2)
    if channels == 2:
        grey, alpha = pixels[:, :, :1], pixels[:, :, 1:]
        return np.concatenate([np.repeat(grey, 3, axis=2), alpha], axis=2)
    raise ExtractionError(f"Unsupported channel count: {channels}")


def encode_png(rgba: np.ndarray) -> bytes:
    buffer = io.BytesIO()
    Image.fromarray(rgba).save(buffer, format="PNG")
    return buffer.getvalue()


def iter_page_images(
    source: PageSource,
    page_number: int,
    *,
    min_bytes: int = DEFAULT_MIN_IMAGE_BYTES,
) -> Iterator[ExtractedImage]:
    """Yield the images of one page in draw order.

    A named image drawn several times is yielded once. Images that fail to
    decode, or whose raw pixel data is smaller than ``min_bytes``, are skipped
    with a warning and do not consume an index.
    """

    seen: set[str] = set()
    image_index = 0
    for operator in source.image_operators(page_number):
        if not operator.inline:
            if operator.name in seen:
                continue
            seen.add(operator.name)

        try:
            raw = operator.decode()
            if len(raw.samples) <= min_bytes:
                logger.debug(
                    "Skipping tiny image %s on page %d (%d bytes)", operator.name, page_number, len(raw.samples)
                )
                continue
            png = encode_png(to_rgba(raw.samples, raw.width, raw.height, raw.channels))
        except ExtractionError as exc:
            logger.warning("Skipping image %s on page %d: %s", operator.name, page_number, exc)
            continue

        image_index += 1
        yield ExtractedImage(
            page_number=page_number,
            image_index=image_index,
            name=operator.name,
            png=png,
            width=raw.width,
            height=raw.height,
            transform=operator.transform,
            inline=operator.inline,
        )


def save_page_images(
    source: PageSource,
    page_number: int,
    sink: ByteSink,
    directory: Path,
    *,
    min_bytes: int = DEFAULT_MIN_IMAGE_BYTES,
) -> list[ImageRecord]:
    records: list[ImageRecord] = []
    for image in iter_page_images(source, page_number, min_bytes=min_bytes):
        path = Path(directory) / image_filename(image.page_number, image.image_index)
        try:
            sink.write(path, image.png)
        except OSError as exc:
            logger.warning("Failed to save image %s: %s", path, exc)
            continue
        records.append(
            ImageRecord(
                page_number=image.page_number,
                image_index=image.image_index,
                path=path,
                width=image.width,
                height=image.height,
                transform=image.transform,
            )
        )
    return records


def extract_document_images(
    source: PageSource,
    sink: ByteSink,
    directory: Path,
    *,
    min_bytes: int = DEFAULT_MIN_IMAGE_BYTES,
) -> list[ImageRecord]:
    """Extract and persist the images of every page, pages in order."""

    records: list[ImageRecord] = []
    for page_number in range(1, source.page_count + 1):
        try:
            page_records = save_page_images(source, page_number, sink, directory, min_bytes=min_bytes)
        except StructuralError as exc:
            logger.warning("Skipping images of page %d: %s", page_number, exc)
            continue
        if page_records:
            logger.info("Extracted %d images from page %d", len(page_records), page_number)
        records.extend(page_records)
    return records
