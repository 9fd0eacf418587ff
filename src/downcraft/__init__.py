"""Layout-aware PDF to Markdown conversion with OCR of embedded images."""

from .cache import OCRCache
from .classifier import classify_page, heading_levels
from .config import ConversionConfig
from .errors import (
    DocumentLoadError,
    DowncraftError,
    ExtractionError,
    RecognitionError,
    StructuralError,
    UnsupportedInputError,
)
from .extractors import extract_document_images, iter_page_images
from .markdown import emit, join_pages
from .models import ContentItem, ImageRecord, ItemKind, LineGroup, TextRun
from .ocr import TesseractRecognizer, clean_ocr_text, process_images
from .processor import (
    ConversionResult,
    PDFMarkdownConverter,
    build_parser,
    convert_pdf_to_markdown,
    run_from_cli,
)
from .reading_order import reconstruct
from .source import PageSource, PyMuPDFPageSource

__version__ = "0.1.0"

__all__ = [
    "OCRCache",
    "classify_page",
    "heading_levels",
    "ConversionConfig",
    "DocumentLoadError",
    "DowncraftError",
    "ExtractionError",
    "RecognitionError",
    "StructuralError",
    "UnsupportedInputError",
    "extract_document_images",
    "iter_page_images",
    "emit",
    "join_pages",
    "ContentItem",
    "ImageRecord",
    "ItemKind",
    "LineGroup",
    "TextRun",
    "TesseractRecognizer",
    "clean_ocr_text",
    "process_images",
    "ConversionResult",
    "PDFMarkdownConverter",
    "build_parser",
    "convert_pdf_to_markdown",
    "run_from_cli",
    "reconstruct",
    "PageSource",
    "PyMuPDFPageSource",
]
