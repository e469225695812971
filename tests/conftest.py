"""Shared fixtures: synthetic PDFs and in-memory documents."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable, List, Sequence, Tuple

import pytest

from taxdoc.ingest.chunking import StructuralChunker
from taxdoc.ingest.hierarchy import build_structure
from taxdoc.ingest.models import Page, TextFragment
from taxdoc.ingest.normalization import normalize_pages
from taxdoc.ingest.pipeline import IngestedDocument, index_chunks
from taxdoc.ingest.structure import StructureDetector

Line = Tuple[float, float, float, str]


def _escape(text: str) -> str:
    return text.replace("\\", "\\\\").replace("(", "\\(").replace(")", "\\)")


def build_pdf(pages: Sequence[Sequence[Line]], *, page_height: float = 792.0) -> bytes:
    """Assemble a PDF whose pages draw ``(x, y, size, text)`` lines in Helvetica.

    ``y`` is in PDF user space (origin at the bottom-left corner).
    """

    page_count = len(pages)
    font_id = 3 + 2 * page_count
    objects: List[bytes] = [
        b"<< /Type /Catalog /Pages 2 0 R >>",
        (
            "<< /Type /Pages /Kids ["
            + " ".join(f"{3 + 2 * i} 0 R" for i in range(page_count))
            + f"] /Count {page_count} >>"
        ).encode("ascii"),
    ]
    for index, lines in enumerate(pages):
        content = "\n".join(
            f"BT /F1 {size:g} Tf {x:g} {y:g} Td ({_escape(text)}) Tj ET" for x, y, size, text in lines
        ).encode("latin-1")
        objects.append(
            (
                f"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 {page_height:g}] "
                f"/Contents {4 + 2 * index} 0 R /Resources << /Font << /F1 {font_id} 0 R >> >> >>"
            ).encode("ascii")
        )
        objects.append(
            b"<< /Length " + str(len(content)).encode("ascii") + b" >>\nstream\n" + content + b"\nendstream"
        )
    objects.append(b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>")

    output = bytearray(b"%PDF-1.4\n")
    offsets: List[int] = []
    for number, body in enumerate(objects, start=1):
        offsets.append(len(output))
        output += f"{number} 0 obj\n".encode("ascii") + body + b"\nendobj\n"
    xref_offset = len(output)
    output += f"xref\n0 {len(objects) + 1}\n".encode("ascii")
    output += b"0000000000 65535 f \n"
    for offset in offsets:
        output += f"{offset:010d} 00000 n \n".encode("ascii")
    output += (
        f"trailer\n<< /Size {len(objects) + 1} /Root 1 0 R >>\nstartxref\n{xref_offset}\n%%EOF\n"
    ).encode("ascii")
    return bytes(output)


def text_lines(lines: Iterable[str], *, top: float = 740.0, step: float = 16.0, size: float = 11.0) -> List[Line]:
    return [(72.0, top - step * i, size, line) for i, line in enumerate(lines)]


def make_page(page_number: int, lines: Sequence[str], *, font_size: float = 11.0) -> Page:
    """A page whose fragments are one per line, already top-down."""

    fragments = tuple(
        TextFragment(text=line, font_size=font_size, x=72.0, y=50.0 + 16.0 * i, page_number=page_number)
        for i, line in enumerate(lines)
    )
    return Page(page_number=page_number, fragments=fragments)


TAX_ACT_PAGES: List[List[str]] = [
    [
        "CHAPTER 1",
        "",
        "Interpretation and application of this Act.",
        "This Act applies to the income of every individual resident in Nigeria.",
    ],
    [
        "PART II",
        "",
        "Section 30(1) sets the individual income tax rates for chargeable income.",
        "The first 800,000 of chargeable income is taxed at zero percent.",
    ],
    [
        "CHAPTER 2",
        "",
        "Relief allowance and exemptions are granted to qualifying persons.",
        "A deduction is allowed for pension contributions.",
    ],
]


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def tax_act_pdf() -> bytes:
    pages = [text_lines([line for line in page if line]) for page in TAX_ACT_PAGES]
    return build_pdf(pages)


@pytest.fixture
def hello_pdf() -> bytes:
    return build_pdf([text_lines(["Hello PDF"])])


def build_document(pages: Sequence[Page], *, source_id: str = "doc-1", backend: str = "bm25"):
    """Run every stage after extraction over synthetic pages."""

    normalized = normalize_pages(pages)
    roots = build_structure(StructureDetector().detect(normalized))
    chunks = StructuralChunker().chunk(roots)
    return IngestedDocument(
        source_id=source_id,
        pages=tuple(pages),
        normalized_pages=tuple(normalized),
        structure=tuple(roots),
        chunks=tuple(chunks),
        index=index_chunks(chunks, backend),
        ingested_at=datetime.now(timezone.utc),
        metadata={"url": None, "file_name": "act.pdf", "page_count": len(pages), "language": "en"},
    )


@pytest.fixture
def tax_document():
    pages = [make_page(number, [line for line in lines if line]) for number, lines in enumerate(TAX_ACT_PAGES, 1)]
    return build_document(pages)
