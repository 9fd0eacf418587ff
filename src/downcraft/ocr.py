"""OCR over extracted images.

:func:`process_images` drives a :class:`Recognizer` over a list of
:class:`~downcraft.models.ImageRecord`, consulting the content-addressed
:class:`~downcraft.cache.OCRCache` first and enriching each record in place
with ``ocr_text`` / ``ocr_error``. One image failing never affects the others.
"""

from __future__ import annotations

import io
import logging
import re
from concurrent.futures import ThreadPoolExecutor
from typing import Protocol, Sequence, runtime_checkable

import pytesseract
from PIL import Image, UnidentifiedImageError

from .cache import OCRCache, key_for
from .errors import RecognitionError
from .io import ByteSink, LocalByteSink
from .models import ImageRecord

__all__ = [
    "DEFAULT_TESSERACT_CONFIG",
    "Recognizer",
    "TesseractRecognizer",
    "clean_ocr_text",
    "process_images",
]

logger = logging.getLogger(__name__)

# Automatic page segmentation with orientation detection, keep spacing.
DEFAULT_TESSERACT_CONFIG = "--psm 1 -c preserve_interword_spaces=1"

_HORIZONTAL_SPACE = re.compile(r"[^\S\n]+")
_ISOLATED_SYMBOLS = re.compile(r"(?<!\S)[^\w\s]{1,2}(?!\S)")

Outcome = tuple[str, str | None]


@runtime_checkable
class Recognizer(Protocol):
    def recognize(self, image_bytes: bytes) -> str: ...


class TesseractRecognizer:
    """Recognise encoded image bytes with the Tesseract CLI via pytesseract."""

    def __init__(self, lang: str = "eng", config: str = DEFAULT_TESSERACT_CONFIG):
        self.lang = lang
        self.config = config

    def recognize(self, image_bytes: bytes) -> str:
        try:
            with Image.open(io.BytesIO(image_bytes)) as image:
                prepared = image.convert("RGB") if image.mode != "RGB" else image.copy()
        except (UnidentifiedImageError, OSError) as err:
            raise RecognitionError(f"Unreadable image data: {err}") from err

        try:
            return pytesseract.image_to_string(prepared, lang=self.lang, config=self.config)
        except pytesseract.TesseractNotFoundError as err:
            raise RecognitionError("Tesseract executable not found.") from err
        except pytesseract.TesseractError as err:
            raise RecognitionError(f"Tesseract OCR failed: {err}") from err


def clean_ocr_text(text: str | None) -> str:
    """Normalise raw OCR output.

    Horizontal whitespace runs collapse to one space, stray one- or
    two-character punctuation tokens are removed, and lines without any
    alphanumeric character are dropped.
    """

    if not text:
        return ""
    lines: list[str] = []
    for raw_line in text.splitlines():
        line = _HORIZONTAL_SPACE.sub(" ", raw_line)
        line = _ISOLATED_SYMBOLS.sub("", line)
        line = _HORIZONTAL_SPACE.sub(" ", line).strip()
        if any(ch.isalnum() for ch in line):
            lines.append(line)
    return "\n".join(lines).strip()


def process_images(
    images: Sequence[ImageRecord],
    *,
    recognizer: Recognizer,
    sink: ByteSink | None = None,
    cache: OCRCache | None = None,
    batch_size: int = 1,
    use_cache: bool = True,
) -> list[ImageRecord]:
    """Run OCR over ``images`` and return them, in input order, enriched.

    ``batch_size`` bounds the number of recognitions in flight. With ``1`` the
    images are processed strictly one after another, which is required when
    the recognizer is not reentrant. Only non-empty text is written to the
    cache, so an image that recognised as blank is retried on the next run.
    """

    if batch_size < 1:
        raise ValueError(f"batch_size must be >= 1, got {batch_size}")

    records = list(images)
    sink = sink or LocalByteSink()
    active_cache = cache if use_cache else None
    # Outcomes by content digest; lets identical images inside one call share a result.
    memo: dict[str, Outcome] | None = {} if active_cache is not None else None
    total = len(records)

    if batch_size == 1 or total <= 1:
        for position, record in enumerate(records, start=1):
            logger.info("Processing image %d/%d: %s", position, total, record.name)
            data, error = _read(record, sink)
            outcome = ("", error) if data is None else _run(data, recognizer, active_cache, memo)
            _apply(record, outcome)
        return records

    with ThreadPoolExecutor(max_workers=batch_size) as executor:
        for start in range(0, total, batch_size):
            group = records[start : start + batch_size]
            logger.info("Processing images %d-%d/%d", start + 1, start + len(group), total)
            payloads = [_read(record, sink) for record in group]

            pending: dict[str, bytes] = {}
            for data, _ in payloads:
                if data is None:
                    continue
                key = key_for(data)
                if memo is not None and key in memo:
                    continue
                if memo is None:
                    # Without caching every image is recognised on its own.
                    key = f"{key}:{len(pending)}"
                pending.setdefault(key, data)

            keys = list(pending)
            results = executor.map(lambda key: _run(pending[key], recognizer, active_cache, None), keys)
            fresh = dict(zip(keys, results))
            if memo is not None:
                memo.update(fresh)

            unique_index = 0
            for record, (data, error) in zip(group, payloads):
                if data is None:
                    _apply(record, ("", error))
                    continue
                key = key_for(data)
                if memo is not None:
                    _apply(record, memo[key])
                else:
                    _apply(record, fresh[f"{key}:{unique_index}"])
                    unique_index += 1
    return records


def _read(record: ImageRecord, sink: ByteSink) -> tuple[bytes | None, str | None]:
    try:
        return sink.read(record.path), None
    except OSError as exc:
        logger.warning("Cannot read image %s: %s", record.path, exc)
        return None, f"Cannot read image: {exc}"


def _run(
    data: bytes,
    recognizer: Recognizer,
    cache: OCRCache | None,
    memo: dict[str, Outcome] | None,
) -> Outcome:
    key = key_for(data)
    if memo is not None and key in memo:
        return memo[key]

    outcome: Outcome
    cached = cache.get_by_key(key) if cache is not None else None
    if cached is not None:
        outcome = (cached, None)
    else:
        outcome = _recognize(data, recognizer, cache, key)

    if memo is not None:
        memo[key] = outcome
    return outcome


def _recognize(data: bytes, recognizer: Recognizer, cache: OCRCache | None, key: str) -> Outcome:
    try:
        raw_text = recognizer.recognize(data)
    except Exception as exc:  # external engine; any failure stays local to this image
        logger.warning("OCR failed for image %s: %s", key, exc)
        return "", str(exc) or exc.__class__.__name__

    text = clean_ocr_text(raw_text)
    if cache is not None and text:
        try:
            cache.put_by_key(key, text)
        except OSError as exc:
            logger.warning("Failed to write OCR cache entry %s: %s", key, exc)
    return text, None


def _apply(record: ImageRecord, outcome: Outcome) -> None:
    record.ocr_text, record.ocr_error = outcome
