"""Positional text extraction from PDF documents."""
from __future__ import annotations

import io
import logging
from typing import Any, List, Optional, Sequence

from PyPDF2 import PdfReader

from taxdoc.errors import ExtractionError

from .cancellation import NEVER_CANCELLED, CancellationToken
from .models import Page, TextFragment

LOGGER = logging.getLogger(__name__)

DEFAULT_FONT_SIZE = 12.0
MIN_PDF_BYTES = 100
PDF_HEADER = b"%PDF"

Matrix = Sequence[float]


def multiply(m: Matrix, n: Matrix) -> List[float]:
    """Compose two PDF affine matrices ``[a b c d e f]`` (``m`` applied first)."""

    return [
        m[0] * n[0] + m[1] * n[2],
        m[0] * n[1] + m[1] * n[3],
        m[2] * n[0] + m[3] * n[2],
        m[2] * n[1] + m[3] * n[3],
        m[4] * n[0] + m[5] * n[2] + n[4],
        m[4] * n[1] + m[5] * n[3] + n[5],
    ]


def fragment_from_run(
    text: str,
    *,
    cm: Matrix,
    tm: Matrix,
    font_size: float,
    page_height: float,
    page_number: int,
    font_name: Optional[str] = None,
) -> Optional[TextFragment]:
    """Build a fragment from a text run; whitespace-only runs yield ``None``.

    The run transform is the font matrix composed with the text and current
    transformation matrices. Its translation gives the baseline origin, which is
    flipped so that ``y`` grows downwards from the top of the page.
    """

    cleaned = " ".join(text.split())
    if not cleaned:
        return None

    size = float(font_size or 0.0)
    transform = multiply(multiply([size, 0.0, 0.0, size, 0.0, 0.0], tm), cm)
    scale = max(abs(transform[0]), abs(transform[3]))
    return TextFragment(
        text=cleaned,
        font_size=scale or DEFAULT_FONT_SIZE,
        x=float(transform[4]),
        y=float(page_height) - float(transform[5]),
        page_number=page_number,
        font_name=font_name,
    )


def _font_name(font_dict: Any) -> Optional[str]:
    if not font_dict:
        return None
    try:
        name = font_dict.get("/BaseFont")
    except AttributeError:
        return None
    return str(name).lstrip("/") if name else None


class PDFExtractor:
    """Extract positioned text fragments from every page of a PDF."""

    def extract(self, data: bytes, token: CancellationToken = NEVER_CANCELLED) -> List[Page]:
        self._validate(data)
        try:
            reader = PdfReader(io.BytesIO(data))
            page_count = len(reader.pages)
        except Exception as error:
            raise ExtractionError(
                "Invalid PDF structure: the file appears to be corrupted", cause=error
            ) from error

        pages: List[Page] = []
        for index in range(page_count):
            token.raise_if_cancelled()
            page_number = index + 1
            try:
                fragments = self._extract_page(reader.pages[index], page_number)
            except Exception as error:
                LOGGER.warning("Failed to extract text from PDF page %s: %s", page_number, error)
                fragments = []
            pages.append(Page(page_number=page_number, fragments=tuple(fragments)))

        if all(page.is_empty for page in pages):
            raise ExtractionError(
                "Failed to extract text from PDF. The PDF may be scanned, corrupted or empty."
            )

        LOGGER.debug(
            "Extracted %s fragments from %s pages",
            sum(len(page.fragments) for page in pages),
            len(pages),
        )
        return pages

    @staticmethod
    def _validate(data: bytes) -> None:
        if not data:
            raise ExtractionError("PDF file is empty")
        if len(data) < MIN_PDF_BYTES:
            raise ExtractionError("PDF file is too small to be valid")
        if data.lstrip()[:4] != PDF_HEADER:
            raise ExtractionError(
                f"Invalid PDF file: missing %PDF header (found {data[:4]!r})"
            )

    @staticmethod
    def _extract_page(page: Any, page_number: int) -> List[TextFragment]:
        page_height = float(page.mediabox.height)
        fragments: List[TextFragment] = []

        def visitor(text: str, cm: Matrix, tm: Matrix, font_dict: Any, font_size: float) -> None:
            fragment = fragment_from_run(
                text,
                cm=cm,
                tm=tm,
                font_size=font_size,
                page_height=page_height,
                page_number=page_number,
                font_name=_font_name(font_dict),
            )
            if fragment is not None:
                fragments.append(fragment)

        page.extract_text(visitor_text=visitor)
        return fragments
