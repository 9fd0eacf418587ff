"""
Layout-aware PDF → Markdown pipeline.

The conversion runs as a small LangGraph workflow::

    extract_images → recognize_images → reconstruct_pages → assemble_markdown

Each request owns a fresh scratch directory for the extracted images; it is
removed when the conversion finishes, fails, or (with ``keep_images``) left for
the caller to clean up after a successful run.
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from shutil import which
from typing import Any, Callable, Iterable, TypedDict

from dotenv import load_dotenv
from langgraph.graph import END, START, StateGraph

from .cache import OCRCache
from .classifier import classify_page
from .config import DEFAULT_INPUT_DIR, DEFAULT_OUTPUT_DIR, ConversionConfig
from .errors import DocumentLoadError, DowncraftError, StructuralError, UnsupportedInputError
from .extractors import extract_document_images
from .io import ByteSink, LocalByteSink, cleanup_stale_dirs, create_session_dir, detect_file_type, remove_dir
from .markdown import join_pages, render_page
from .models import ImageRecord
from .ocr import Recognizer, TesseractRecognizer, process_images
from .source import PageSource, PyMuPDFPageSource

__all__ = [
    "ConversionResult",
    "PDFMarkdownConverter",
    "convert_pdf_to_markdown",
    "build_parser",
    "run_from_cli",
    "main",
]

logger = logging.getLogger(__name__)

PdfInput = Path | str | bytes
SourceFactory = Callable[[PdfInput], PageSource]


class ConversionState(TypedDict, total=False):
    """LangGraph state for a single conversion."""

    source: PageSource
    image_dir: str
    images: list[ImageRecord]
    page_markdown: list[str]
    failed_pages: list[int]
    markdown: str


@dataclass(slots=True)
class ConversionResult:
    """Markdown plus the manifest of the images found in the document."""

    markdown: str
    images: list[ImageRecord] = field(default_factory=list)
    image_dir: Path | None = None
    page_count: int = 0
    failed_pages: list[int] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {
            "markdown": self.markdown,
            "images": [image.as_dict() for image in self.images],
            "image_dir": str(self.image_dir) if self.image_dir is not None else None,
            "page_count": self.page_count,
            "failed_pages": list(self.failed_pages),
        }


class PDFMarkdownConverter:
    """Convert PDF documents into reading-order Markdown with OCR'd images."""

    def __init__(
        self,
        config: ConversionConfig | None = None,
        *,
        recognizer: Recognizer | None = None,
        sink: ByteSink | None = None,
        cache: OCRCache | None = None,
        source_factory: SourceFactory | None = None,
    ):
        load_dotenv()

        self.config = config or ConversionConfig()
        self.sink = sink or LocalByteSink()
        self.cache = cache or OCRCache(self.config.cache_dir)
        self.source_factory = source_factory or PyMuPDFPageSource.open

        self.ocr_enabled = self.config.use_ocr
        if recognizer is None and self.ocr_enabled:
            if which("tesseract") is None:
                logger.warning("tesseract executable not found; images will not be OCR'd.")
                self.ocr_enabled = False
            else:
                recognizer = TesseractRecognizer(lang=self.config.ocr_langs, config=self.config.tesseract_config)
        self.recognizer = recognizer

        self.workflow = self._build_workflow()

    def _build_workflow(self):
        graph = StateGraph(ConversionState)
        graph.add_node("extract_images", self._node_extract_images)
        graph.add_node("recognize_images", self._node_recognize_images)
        graph.add_node("reconstruct_pages", self._node_reconstruct_pages)
        graph.add_node("assemble_markdown", self._node_assemble_markdown)

        graph.add_edge(START, "extract_images")
        graph.add_edge("extract_images", "recognize_images")
        graph.add_edge("recognize_images", "reconstruct_pages")
        graph.add_edge("reconstruct_pages", "assemble_markdown")
        graph.add_edge("assemble_markdown", END)

        return graph.compile()

    def _node_extract_images(self, state: ConversionState) -> ConversionState:
        images: list[ImageRecord] = []
        if self.config.extract_images:
            images = extract_document_images(
                state["source"],
                self.sink,
                Path(state["image_dir"]),
                min_bytes=self.config.min_image_bytes,
            )
        logger.info("Extracted %d images.", len(images))
        return {"images": images}

    def _node_recognize_images(self, state: ConversionState) -> ConversionState:
        images = state.get("images", [])
        if not images:
            return {"images": images}
        if not self.ocr_enabled or self.recognizer is None:
            for image in images:
                image.ocr_text, image.ocr_error = "", None
            return {"images": images}

        processed = process_images(
            images,
            recognizer=self.recognizer,
            sink=self.sink,
            cache=self.cache,
            batch_size=self.config.batch_size,
            use_cache=self.config.use_cache,
        )
        recognised = sum(1 for image in processed if image.ocr_text)
        logger.info("OCR produced text for %d/%d images.", recognised, len(processed))
        return {"images": processed}

    def _node_reconstruct_pages(self, state: ConversionState) -> ConversionState:
        source = state["source"]
        images = state.get("images", [])
        page_markdown: list[str] = []
        failed_pages: list[int] = []

        for page_number in range(1, source.page_count + 1):
            page_images = [image for image in images if image.page_number == page_number]
            ocr_map = {
                image.identity: image.ocr_text
                for image in page_images
                if image.ocr_text and not image.ocr_error
            }
            placements = {image.identity: image.transform for image in page_images}
            try:
                items = classify_page(
                    source.text_runs(page_number),
                    ocr_map,
                    placements,
                    page_height=source.page_height(page_number),
                )
            except StructuralError as exc:
                logger.warning("Skipping page %d: %s", page_number, exc)
                failed_pages.append(page_number)
                continue
            page_markdown.append(render_page(items))
            logger.debug("Page %d: %d content items.", page_number, len(items))

        if source.page_count and len(failed_pages) == source.page_count:
            raise DocumentLoadError("No page of the document could be loaded.")
        return {"page_markdown": page_markdown, "failed_pages": failed_pages}

    def _node_assemble_markdown(self, state: ConversionState) -> ConversionState:
        markdown = join_pages(state.get("page_markdown", []))
        logger.info("Markdown assembled, %d characters.", len(markdown))
        return {"markdown": markdown}

    def convert(self, pdf: PdfInput) -> ConversionResult:
        """Convert one PDF, given as a path or as raw bytes."""

        _ensure_pdf(pdf)
        if self.config.temp_root is not None and self.config.stale_dir_seconds > 0:
            cleanup_stale_dirs(self.config.temp_root, self.config.stale_dir_seconds)

        source = self.source_factory(pdf)
        image_dir: Path | None = None
        keep_dir = False
        try:
            image_dir = create_session_dir(self.config.temp_root)
            final_state = self.workflow.invoke({"source": source, "image_dir": str(image_dir)})
            keep_dir = self.config.keep_images
            return ConversionResult(
                markdown=final_state.get("markdown", ""),
                images=final_state.get("images", []),
                image_dir=image_dir if keep_dir else None,
                page_count=source.page_count,
                failed_pages=final_state.get("failed_pages", []),
            )
        finally:
            source.close()
            if image_dir is not None and not keep_dir:
                remove_dir(image_dir)

    def convert_file(self, pdf_path: Path | str, output_path: Path | str | None = None) -> Path:
        pdf_path = Path(pdf_path).expanduser()
        target = Path(output_path).expanduser() if output_path else pdf_path.with_suffix(".md")
        result = self.convert(pdf_path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(result.markdown, encoding="utf-8")
        return target

    def process_all(self) -> list[Path]:
        input_dir = self.config.input_dir
        if not input_dir.exists():
            raise FileNotFoundError(f"Input directory does not exist: {input_dir}")
        self.config.output_dir.mkdir(parents=True, exist_ok=True)

        pdf_files = sorted(input_dir.glob("*.pdf"))
        if not pdf_files:
            logger.info("No PDF files found in %s.", input_dir)
            return []

        logger.info("Found %d PDF files.", len(pdf_files))
        generated: list[Path] = []
        for pdf_path in pdf_files:
            output_path = self.config.output_dir / (pdf_path.stem + ".md")
            if output_path.exists() and not self.config.overwrite:
                logger.info("Skipping existing file: %s", output_path)
                generated.append(output_path)
                continue
            try:
                generated.append(self.convert_file(pdf_path, output_path))
                logger.info("Generated %s", output_path)
            except DowncraftError as exc:
                logger.error("Failed to convert %s: %s", pdf_path.name, exc)
        return generated


def _ensure_pdf(pdf: PdfInput) -> None:
    if isinstance(pdf, (bytes, bytearray)):
        head = bytes(pdf[:2000])
    else:
        path = Path(pdf).expanduser()
        if not path.exists():
            raise FileNotFoundError(f"PDF file does not exist: {path}")
        with path.open("rb") as handle:
            head = handle.read(2000)
    detected = detect_file_type(head)
    if detected != "pdf":
        raise UnsupportedInputError(f"Expected a PDF document, detected {detected or 'unknown'} input")


def convert_pdf_to_markdown(
    pdf: PdfInput,
    *,
    config: ConversionConfig | None = None,
    **collaborators: Any,
) -> ConversionResult:
    """One-shot helper around :class:`PDFMarkdownConverter`."""

    return PDFMarkdownConverter(config, **collaborators).convert(pdf)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Convert PDF documents into Markdown, placing OCR text of embedded images in reading order."
    )
    parser.add_argument("pdf", nargs="?", type=Path, help="Single PDF to convert. Omit to process --input_dir.")
    parser.add_argument("-o", "--output", type=Path, help="Markdown output path for a single PDF (default: stdout).")
    parser.add_argument("--input_dir", type=Path, default=DEFAULT_INPUT_DIR, help="PDF input directory.")
    parser.add_argument("--output_dir", type=Path, default=DEFAULT_OUTPUT_DIR, help="Markdown output directory.")
    parser.add_argument("--overwrite", action="store_true", help="Overwrite existing Markdown files.")
    parser.add_argument("--ocr_langs", type=str, default=None, help="Tesseract languages, e.g. 'eng+deu'.")
    parser.add_argument("--batch_size", type=int, default=None, help="Maximum concurrent OCR calls.")
    parser.add_argument("--cache_dir", type=Path, default=None, help="OCR cache directory.")
    parser.add_argument("--temp_root", type=Path, default=None, help="Parent of per-request image directories.")
    parser.add_argument("--min_image_bytes", type=int, default=None, help="Ignore images with fewer pixel bytes.")
    parser.add_argument("--no-ocr", dest="use_ocr", action="store_false", default=None, help="Disable OCR.")
    parser.add_argument(
        "--no-cache", dest="use_cache", action="store_false", default=None, help="Bypass the OCR cache."
    )
    parser.add_argument(
        "--no-extract_images",
        dest="extract_images",
        action="store_false",
        default=None,
        help="Skip image extraction entirely.",
    )
    parser.add_argument(
        "--keep_images", action="store_true", default=None, help="Keep the extracted images after conversion."
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")
    return parser


def _config_from_args(parsed: argparse.Namespace) -> ConversionConfig:
    overrides = {
        name: getattr(parsed, name)
        for name in (
            "ocr_langs",
            "batch_size",
            "cache_dir",
            "temp_root",
            "min_image_bytes",
            "use_ocr",
            "use_cache",
            "extract_images",
            "keep_images",
        )
        if getattr(parsed, name) is not None
    }
    return ConversionConfig(
        input_dir=parsed.input_dir,
        output_dir=parsed.output_dir,
        overwrite=parsed.overwrite,
        **overrides,
    )


def run_from_cli(args: Iterable[str] | None = None) -> list[Path]:
    parser = build_parser()
    parsed = parser.parse_args(args=list(args) if args is not None else None)

    logging.basicConfig(
        level=logging.DEBUG if parsed.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    converter = PDFMarkdownConverter(_config_from_args(parsed))
    if parsed.pdf is None:
        return converter.process_all()

    if parsed.output is None:
        sys.stdout.write(converter.convert(parsed.pdf).markdown + "\n")
        return []
    return [converter.convert_file(parsed.pdf, parsed.output)]


def main() -> int:
    """Console entrypoint."""
    try:
        run_from_cli()
    except (DowncraftError, FileNotFoundError) as exc:
        logger.error("%s", exc)
        return 1
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
