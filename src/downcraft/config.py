"""Dataclass-driven configuration with environment overrides."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from .cache import DEFAULT_CACHE_DIR
from .ocr import DEFAULT_TESSERACT_CONFIG

__all__ = ["DEFAULT_INPUT_DIR", "DEFAULT_OUTPUT_DIR", "ConversionConfig"]

DEFAULT_INPUT_DIR = Path("inputs")
DEFAULT_OUTPUT_DIR = Path("outputs") / "markdown"


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_path(name: str, default: Path | None) -> Path | None:
    raw = os.getenv(name)
    if not raw:
        return default
    return Path(raw).expanduser()


@dataclass(slots=True)
class ConversionConfig:
    """Runtime options for a PDF to Markdown conversion."""

    input_dir: Path = field(default_factory=lambda: _env_path("DOWNCRAFT_INPUT_DIR", DEFAULT_INPUT_DIR))
    output_dir: Path = field(default_factory=lambda: _env_path("DOWNCRAFT_OUTPUT_DIR", DEFAULT_OUTPUT_DIR))
    overwrite: bool = False
    extract_images: bool = field(default_factory=lambda: _env_bool("DOWNCRAFT_EXTRACT_IMAGES", True))
    use_ocr: bool = field(default_factory=lambda: _env_bool("DOWNCRAFT_USE_OCR", True))
    use_cache: bool = field(default_factory=lambda: _env_bool("DOWNCRAFT_USE_CACHE", True))
    batch_size: int = field(default_factory=lambda: _env_int("DOWNCRAFT_OCR_BATCH_SIZE", 1))
    ocr_langs: str = field(default_factory=lambda: os.getenv("OCR_LANGS", "eng"))
    tesseract_config: str = field(
        default_factory=lambda: os.getenv("DOWNCRAFT_TESSERACT_CONFIG", DEFAULT_TESSERACT_CONFIG)
    )
    cache_dir: Path = field(default_factory=lambda: _env_path("DOWNCRAFT_OCR_CACHE_DIR", DEFAULT_CACHE_DIR))
    temp_root: Path | None = field(default_factory=lambda: _env_path("DOWNCRAFT_TEMP_ROOT", None))
    keep_images: bool = field(default_factory=lambda: _env_bool("DOWNCRAFT_KEEP_IMAGES", False))
    min_image_bytes: int = field(default_factory=lambda: _env_int("DOWNCRAFT_MIN_IMAGE_BYTES", 100))
    stale_dir_seconds: int = field(default_factory=lambda: _env_int("DOWNCRAFT_STALE_DIR_SECONDS", 600))

    def __post_init__(self) -> None:
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {self.batch_size}")
        self.input_dir = Path(self.input_dir).expanduser()
        self.output_dir = Path(self.output_dir).expanduser()
        self.cache_dir = Path(self.cache_dir).expanduser()
        if self.temp_root is not None:
            self.temp_root = Path(self.temp_root).expanduser()
