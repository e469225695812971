"""Data models used by the ingestion pipeline."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

HEADING = "heading"
PARAGRAPH = "paragraph"
LIST_ITEM = "list-item"
ELEMENT_TYPES = (HEADING, PARAGRAPH, LIST_ITEM)


@dataclass(frozen=True, slots=True)
class TextFragment:
    """A run of text positioned on a page, y measured from the top edge."""

    text: str
    font_size: float
    x: float
    y: float
    page_number: int
    font_name: Optional[str] = None


@dataclass(frozen=True, slots=True)
class Page:
    page_number: int
    fragments: Tuple[TextFragment, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.fragments


@dataclass(frozen=True, slots=True)
class NormalizedPage:
    """Cleaned text of a single page with paragraphs separated by blank lines."""

    page_number: int
    text: str


@dataclass(frozen=True, slots=True)
class StructuralElement:
    """A paragraph-level unit classified as heading, paragraph or list item."""

    type: str
    level: int
    text: str
    page_number: int
    confidence: float
    numbering: Optional[str] = None

    @property
    def is_heading(self) -> bool:
        return self.type == HEADING


@dataclass(frozen=True, slots=True)
class PageRange:
    start: int
    end: int

    def __post_init__(self) -> None:
        if self.start > self.end:
            raise ValueError(f"Invalid page range {self.start}-{self.end}")

    def contains(self, other: "PageRange") -> bool:
        return self.start <= other.start and other.end <= self.end

    def union(self, other: "PageRange") -> "PageRange":
        return PageRange(min(self.start, other.start), max(self.end, other.end))

    @classmethod
    def single(cls, page_number: int) -> "PageRange":
        return cls(page_number, page_number)


@dataclass(slots=True)
class StructureNode:
    """Node of the document outline. Only headings own children."""

    id: str
    type: str
    level: int
    text: str
    page_number: int
    page_range: PageRange
    section_path: Tuple[str, ...]
    parent_id: Optional[str] = None
    numbering: Optional[str] = None
    children: List["StructureNode"] = field(default_factory=list)

    @property
    def is_heading(self) -> bool:
        return self.type == HEADING


@dataclass(frozen=True, slots=True)
class Chunk:
    """Token-bounded unit of retrievable text with its provenance."""

    id: str
    content: str
    section_path: Tuple[str, ...]
    page_range: PageRange
    node_ids: Tuple[str, ...]
    token_estimate: int

    @property
    def page_label(self) -> str:
        if self.page_range.start == self.page_range.end:
            return f"Page {self.page_range.start}"
        return f"Pages {self.page_range.start}-{self.page_range.end}"
