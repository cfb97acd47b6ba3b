"""
Page Renderer
=============
Renders selected PDF pages to raster images using PyMuPDF (fitz) and
encodes them for transport to the completion service.
"""

from __future__ import annotations

import base64
import logging
import os
from typing import Iterable, Optional

import fitz  # PyMuPDF

from .models import PageImage

logger = logging.getLogger(__name__)

_MIME_TYPES = {
    "png": "image/png",
    "jpeg": "image/jpeg",
    "jpg": "image/jpeg",
}


def select_pages(
    total_pages: int,
    pages: Optional[Iterable[int]] = None,
    page_range: Optional[tuple[int, int]] = None,
    max_pages: Optional[int] = None,
) -> list[int]:
    """
    Resolve a page selection to a sorted list of 1-indexed page numbers.

    Args:
        total_pages: Number of pages in the document.
        pages: Explicit page numbers. Duplicates are dropped; any page outside
            1..total_pages raises ValueError.
        page_range: Optional (start, end) range, inclusive, clamped to the
            document. Ignored when ``pages`` is given.
        max_pages: Keep only the first N selected pages.

    Returns:
        Sorted list of page numbers.

    Raises:
        ValueError: If the selection is out of range or empty.
    """
    if total_pages < 1:
        raise ValueError("Document has no pages")

    if pages is not None:
        selected = sorted(set(int(p) for p in pages))
        invalid = [p for p in selected if p < 1 or p > total_pages]
        if invalid:
            raise ValueError(
                f"Pages out of range 1-{total_pages}: {invalid}"
            )
    elif page_range is not None:
        start = max(1, page_range[0])
        end = min(total_pages, page_range[1])
        selected = list(range(start, end + 1))
    else:
        selected = list(range(1, total_pages + 1))

    if max_pages is not None and max_pages > 0:
        selected = selected[:max_pages]

    if not selected:
        raise ValueError("Page selection is empty")

    return selected


class PageRenderer:
    """
    Converts PDF pages to base64-encoded images and plain text.

    Rendering uses a zoom of ``dpi / 72`` with the alpha channel dropped,
    so every page image has an opaque white background.
    """

    def __init__(self, dpi: int = 150, image_format: str = "png"):
        image_format = image_format.lower()
        if image_format not in _MIME_TYPES:
            raise ValueError(f"Unsupported image format: {image_format}")
        if dpi < 36:
            raise ValueError(f"DPI too low for legible text: {dpi}")

        self.dpi = dpi
        self.image_format = "jpeg" if image_format == "jpg" else image_format
        self.mime_type = _MIME_TYPES[self.image_format]

    def get_page_count(self, pdf_path: str) -> int:
        """Get total number of pages in the PDF."""
        with self._open(pdf_path) as doc:
            return doc.page_count

    def render(
        self,
        pdf_path: str,
        pages: Optional[list[int]] = None,
        progress_callback: Optional[callable] = None,
    ) -> list[PageImage]:
        """
        Render pages of a PDF.

        Args:
            pdf_path: Path to the PDF file.
            pages: 1-indexed page numbers (default: every page).
            progress_callback: Optional callable(current, total).

        Returns:
            PageImage objects in the order of ``pages``.
        """
        images: list[PageImage] = []

        with self._open(pdf_path) as doc:
            selected = pages or list(range(1, doc.page_count + 1))
            logger.info(
                f"Rendering {len(selected)} page(s) of {pdf_path} "
                f"at {self.dpi} DPI as {self.image_format}"
            )

            for idx, page_number in enumerate(selected, start=1):
                images.append(self.render_page(doc, page_number))
                if progress_callback:
                    progress_callback(idx, len(selected))

        return images

    def render_page(self, doc: fitz.Document, page_number: int) -> PageImage:
        """Render a single page of an open document."""
        if page_number < 1 or page_number > doc.page_count:
            raise ValueError(
                f"Page {page_number} out of range 1-{doc.page_count}"
            )

        page = doc[page_number - 1]
        zoom = self.dpi / 72.0
        pix = page.get_pixmap(matrix=fitz.Matrix(zoom, zoom), alpha=False)
        image_bytes = pix.tobytes(self.image_format)

        logger.debug(
            f"Rendered page {page_number}: {pix.width}x{pix.height}, "
            f"{len(image_bytes)} bytes"
        )

        return PageImage(
            page_number=page_number,
            mime_type=self.mime_type,
            width=pix.width,
            height=pix.height,
            data=base64.b64encode(image_bytes).decode("ascii"),
        )

    def extract_page_text(
        self,
        pdf_path: str,
        pages: Optional[list[int]] = None,
    ) -> dict[int, str]:
        """Extract plain text per page, keyed by 1-indexed page number."""
        texts: dict[int, str] = {}
        with self._open(pdf_path) as doc:
            selected = pages or list(range(1, doc.page_count + 1))
            for page_number in selected:
                page = doc[page_number - 1]
                texts[page_number] = page.get_text("text").strip()
        return texts

    def _open(self, pdf_path: str) -> fitz.Document:
        if not os.path.exists(pdf_path):
            raise FileNotFoundError(f"PDF not found: {pdf_path}")
        try:
            return fitz.open(pdf_path)
        except Exception as e:
            raise RuntimeError(f"Cannot open PDF {pdf_path}: {e}") from e
