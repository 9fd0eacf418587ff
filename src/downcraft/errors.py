"""Error taxonomy shared by the extraction, OCR and reconstruction stages."""

from __future__ import annotations

__all__ = [
    "DowncraftError",
    "ExtractionError",
    "RecognitionError",
    "StructuralError",
    "DocumentLoadError",
    "UnsupportedInputError",
]


class DowncraftError(RuntimeError):
    """Base error raised by the conversion pipeline."""


class ExtractionError(DowncraftError):
    """A single embedded image could not be decoded. Skipped by callers."""


class RecognitionError(DowncraftError):
    """OCR failed for a single image. Recorded on the image, never fatal."""


class StructuralError(DowncraftError):
    """A page (or the whole document) could not be loaded."""

    def __init__(self, message: str, *, page_number: int | None = None):
        super().__init__(message)
        self.page_number = page_number


class DocumentLoadError(StructuralError):
    """Raised to the caller when nothing could be produced from the input."""


class UnsupportedInputError(DowncraftError, ValueError):
    """The input bytes are not a PDF document."""
