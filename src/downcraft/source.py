"""PDF page source: text runs and image operators per page.

The reconstruction engine only needs three things from a PDF backend: how many
pages there are, the positioned text runs of a page, and the image drawing
operations of a page. :class:`PageSource` captures that contract and
:class:`PyMuPDFPageSource` fulfils it with PyMuPDF.

Coordinates handed out by a page source are in PDF page space, with the origin
at the bottom-left corner and ``y`` growing upward.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import fitz  # PyMuPDF

from .errors import DocumentLoadError, ExtractionError, StructuralError
from .models import ImageOperator, RawImage, TextRun, Transform

__all__ = ["PageSource", "PyMuPDFPageSource"]

logger = logging.getLogger(__name__)


@runtime_checkable
class PageSource(Protocol):
    """Read-only view of a loaded PDF document. Page numbers are 1-based."""

    @property
    def page_count(self) -> int: ...

    def page_height(self, page_number: int) -> float: ...

    def text_runs(self, page_number: int) -> list[TextRun]: ...

    def image_operators(self, page_number: int) -> list[ImageOperator]: ...

    def close(self) -> None: ...


class PyMuPDFPageSource:
    """:class:`PageSource` backed by a :class:`fitz.Document`."""

    def __init__(self, document: fitz.Document):
        self._doc = document
        self._cached_page: int | None = None
        self._cached_dict: dict[str, Any] | None = None

    @classmethod
    def open(cls, pdf: Path | str | bytes) -> "PyMuPDFPageSource":
        try:
            if isinstance(pdf, (bytes, bytearray)):
                doc = fitz.open(stream=bytes(pdf), filetype="pdf")
            else:
                doc = fitz.open(Path(pdf).expanduser())
        except Exception as exc:
            raise DocumentLoadError(f"Unable to open PDF: {exc}") from exc
        if doc.needs_pass:
            doc.close()
            raise DocumentLoadError("Encrypted PDF documents are not supported")
        return cls(doc)

    def __enter__(self) -> "PyMuPDFPageSource":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def page_count(self) -> int:
        return self._doc.page_count

    def close(self) -> None:
        self._cached_dict = None
        self._doc.close()

    def page_height(self, page_number: int) -> float:
        return float(self._load_page(page_number).rect.height)

    def text_runs(self, page_number: int) -> list[TextRun]:
        height = self.page_height(page_number)
        runs: list[TextRun] = []
        for block in self._page_dict(page_number).get("blocks", []):
            if block.get("type") != 0:
                continue
            for line in block.get("lines", []):
                for span in line.get("spans", []):
                    text = span.get("text", "")
                    if not text:
                        continue
                    size = float(span.get("size", 0.0))
                    origin_x, origin_y = span.get("origin", (0.0, 0.0))
                    transform: Transform = (size, 0.0, 0.0, size, float(origin_x), height - float(origin_y))
                    runs.append(TextRun(text=text, transform=transform, font_name=span.get("font", "")))
        return runs

    def image_operators(self, page_number: int) -> list[ImageOperator]:
        page = self._load_page(page_number)
        height = float(page.rect.height)
        try:
            infos = page.get_image_info(xrefs=True)
        except Exception as exc:
            raise StructuralError(f"Unable to list images: {exc}", page_number=page_number) from exc

        image_blocks = {
            block.get("number"): block
            for block in self._page_dict(page_number).get("blocks", [])
            if block.get("type") == 1
        }

        operators: list[ImageOperator] = []
        for info in infos:
            xref = int(info.get("xref") or 0)
            transform = _bbox_to_transform(info.get("bbox"), height)
            if xref > 0:
                operators.append(
                    ImageOperator(
                        name=f"xref{xref}",
                        transform=transform,
                        decode=lambda xref=xref: self._decode_xref(xref),
                    )
                )
                continue
            number = info.get("number")
            block = image_blocks.get(number)
            operators.append(
                ImageOperator(
                    name=f"inline{number}",
                    transform=transform,
                    decode=lambda block=block, number=number: _decode_inline(block, number),
                    inline=True,
                )
            )
        return operators

    def _load_page(self, page_number: int) -> fitz.Page:
        if not 1 <= page_number <= self.page_count:
            raise StructuralError(f"Page {page_number} is out of range", page_number=page_number)
        try:
            return self._doc.load_page(page_number - 1)
        except Exception as exc:
            raise StructuralError(f"Unable to load page {page_number}: {exc}", page_number=page_number) from exc

    def _page_dict(self, page_number: int) -> dict[str, Any]:
        if self._cached_page != page_number or self._cached_dict is None:
            page = self._load_page(page_number)
            try:
                self._cached_dict = page.get_text("dict")
            except Exception as exc:
                raise StructuralError(
                    f"Unable to read page {page_number} content: {exc}", page_number=page_number
                ) from exc
            self._cached_page = page_number
        return self._cached_dict

    def _decode_xref(self, xref: int) -> RawImage:
        try:
            pix = fitz.Pixmap(self._doc, xref)
        except Exception as exc:
            raise ExtractionError(f"Unable to decode image xref {xref}: {exc}") from exc
        return _pixmap_to_raw(pix)


def _decode_inline(block: dict[str, Any] | None, number: object) -> RawImage:
    if block is None or not block.get("image"):
        raise ExtractionError(f"Inline image {number} has no image data")
    try:
        pix = fitz.Pixmap(block["image"])
    except Exception as exc:
        raise ExtractionError(f"Unable to decode inline image {number}: {exc}") from exc
    return _pixmap_to_raw(pix)


def _pixmap_to_raw(pix: fitz.Pixmap) -> RawImage:
    if pix.colorspace is None:
        raise ExtractionError("Stencil masks carry no colour data")
    if pix.colorspace.n not in (1, 3):
        try:
            pix = fitz.Pixmap(fitz.csRGB, pix)
        except Exception as exc:
            raise ExtractionError(f"Unable to convert {pix.colorspace.name} image to RGB: {exc}") from exc
    return RawImage(samples=bytes(pix.samples), width=pix.width, height=pix.height, channels=pix.n)


def _bbox_to_transform(bbox: Any, page_height: float) -> Transform | None:
    if not bbox or len(bbox) != 4:
        return None
    x0, y0, x1, y1 = (float(v) for v in bbox)
    # PyMuPDF reports top-left based rectangles; flip back into PDF page space.
    return (x1 - x0, 0.0, 0.0, y1 - y0, x0, page_height - y1)
