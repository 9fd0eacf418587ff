"""Shared fixtures for the test suite."""
from __future__ import annotations

import io
import threading
import time
from dataclasses import dataclass, field
from typing import Callable

import pytest
from PIL import Image

from downcraft.errors import ExtractionError, RecognitionError, StructuralError
from downcraft.models import ImageOperator, RawImage, TextRun, Transform

ENV_VARS = {
    "DOWNCRAFT_INPUT_DIR",
    "DOWNCRAFT_OUTPUT_DIR",
    "DOWNCRAFT_EXTRACT_IMAGES",
    "DOWNCRAFT_USE_OCR",
    "DOWNCRAFT_USE_CACHE",
    "DOWNCRAFT_OCR_BATCH_SIZE",
    "DOWNCRAFT_TESSERACT_CONFIG",
    "DOWNCRAFT_OCR_CACHE_DIR",
    "DOWNCRAFT_TEMP_ROOT",
    "DOWNCRAFT_KEEP_IMAGES",
    "DOWNCRAFT_MIN_IMAGE_BYTES",
    "DOWNCRAFT_STALE_DIR_SECONDS",
    "OCR_LANGS",
}


@pytest.fixture(autouse=True)
def _clear_downcraft_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Ensure configuration environment variables do not leak between tests."""

    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def run(text: str, size: float, x: float, y: float, font: str = "Helvetica") -> TextRun:
    transform: Transform = (size, 0.0, 0.0, size, x, y)
    return TextRun(text=text, transform=transform, font_name=font)


def raw_rgb(width: int = 16, height: int = 16, value: int = 120) -> RawImage:
    return RawImage(samples=bytes([value]) * (width * height * 3), width=width, height=height, channels=3)


def png_bytes(color: tuple[int, int, int] = (200, 10, 10), size: tuple[int, int] = (8, 8)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


def operator(
    name: str,
    raw: RawImage | None = None,
    *,
    transform: Transform | None = None,
    inline: bool = False,
    error: str | None = None,
) -> ImageOperator:
    def decode() -> RawImage:
        if error is not None:
            raise ExtractionError(error)
        return raw or raw_rgb()

    return ImageOperator(name=name, transform=transform, decode=decode, inline=inline)


@dataclass
class FakePage:
    runs: list[TextRun] = field(default_factory=list)
    operators: list[ImageOperator] = field(default_factory=list)
    height: float = 800.0
    broken: bool = False


class FakePageSource:
    """In-memory :class:`~downcraft.source.PageSource`."""

    def __init__(self, pages: list[FakePage]):
        self.pages = pages
        self.closed = False

    @property
    def page_count(self) -> int:
        return len(self.pages)

    def _page(self, page_number: int) -> FakePage:
        page = self.pages[page_number - 1]
        if page.broken:
            raise StructuralError(f"page {page_number} is broken", page_number=page_number)
        return page

    def page_height(self, page_number: int) -> float:
        return self._page(page_number).height

    def text_runs(self, page_number: int) -> list[TextRun]:
        return list(self._page(page_number).runs)

    def image_operators(self, page_number: int) -> list[ImageOperator]:
        return list(self._page(page_number).operators)

    def close(self) -> None:
        self.closed = True


class FakeRecognizer:
    """Recognizer returning canned text keyed by image bytes."""

    def __init__(
        self,
        responses: dict[bytes, str] | Callable[[bytes], str] | None = None,
        *,
        default: str = "recognised text",
        fail_on: set[bytes] | None = None,
        delay: float = 0.0,
    ):
        self.responses = responses or {}
        self.default = default
        self.fail_on = fail_on or set()
        self.delay = delay
        self.calls: list[bytes] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self._lock = threading.Lock()

    def recognize(self, image_bytes: bytes) -> str:
        with self._lock:
            self.calls.append(image_bytes)
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                time.sleep(self.delay)
            if image_bytes in self.fail_on:
                raise RecognitionError("engine exploded")
            if callable(self.responses):
                return self.responses(image_bytes)
            return self.responses.get(image_bytes, self.default)
        finally:
            with self._lock:
                self.in_flight -= 1


@pytest.fixture
def fake_recognizer() -> FakeRecognizer:
    return FakeRecognizer()
