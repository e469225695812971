"""Heading, paragraph and list-item detection over normalised pages."""
from __future__ import annotations

import logging
import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from .models import HEADING, LIST_ITEM, PARAGRAPH, NormalizedPage, Page, StructuralElement
from .normalization import group_lines

LOGGER = logging.getLogger(__name__)

_PARAGRAPH_SPLIT_RE = re.compile(r"\n\s*\n")
_NUMBERING_PATTERNS: Tuple[Tuple[str, re.Pattern[str]], ...] = (
    ("chapter", re.compile(r"^chapter\s+([ivxlcdm]+|\d+|[a-z]+)\b", re.IGNORECASE)),
    ("part", re.compile(r"^part\s+([ivxlcdm]+|\d+|[a-z]+)\b", re.IGNORECASE)),
    ("numeric", re.compile(r"^(\d+(?:\.\d+)*)[.)](?!\d)|^(\d+(?:\.\d+)+)\s")),
    ("lettered", re.compile(r"^\(([a-z]+)\)|^([a-z])\.", re.IGNORECASE)),
    ("roman", re.compile(r"^([IVX]+)[.)]")),
)
_LIST_ITEM_RE = re.compile(r"^(?:[-•*]\s|\d+[.)]\s)")
_HEADING_KEYWORD_RE = re.compile(
    r"^(?:section|chapter|part|article|subsection|sub-section)\b", re.IGNORECASE
)
_LETTERS_RE = re.compile(r"[^A-Za-z]")


@dataclass(slots=True)
class HeadingHeuristics:
    """Weights and thresholds of the heading confidence score."""

    numbering_weight: float = 0.4
    all_caps_weight: float = 0.3
    font_weight: float = 0.2
    keyword_weight: float = 0.2
    short_bonus: float = 0.1
    long_penalty: float = 0.2
    short_length: int = 100
    long_length: int = 200
    neutral_font_score: float = 0.5
    heading_threshold: float = 0.5
    min_caps_letters: int = 3


def detect_numbering(text: str) -> Optional[str]:
    """Return the leading numbering of a paragraph, if any."""

    stripped = text.lstrip()
    for kind, pattern in _NUMBERING_PATTERNS:
        match = pattern.match(stripped)
        if match is None:
            continue
        if kind in ("chapter", "part"):
            return f"{kind.upper()} {match.group(1)}"
        return next(group for group in match.groups() if group)
    return None


def is_all_caps(text: str, min_letters: int = 3) -> bool:
    letters = _LETTERS_RE.sub("", text)
    return len(letters) >= min_letters and letters == letters.upper() and letters != letters.lower()


def _clamp01(value: float) -> float:
    return max(0.0, min(1.0, value))


@dataclass(slots=True)
class FontProfile:
    """Per-line font sizes kept from extraction for the opt-in font signal."""

    body_size: float
    lines: Dict[int, List[Tuple[str, float]]] = field(default_factory=dict)

    @classmethod
    def from_pages(cls, pages: Sequence[Page]) -> "FontProfile":
        weights: Counter[float] = Counter()
        lines: Dict[int, List[Tuple[str, float]]] = {}
        for page in pages:
            page_lines: List[Tuple[str, float]] = []
            for line in group_lines(page.fragments):
                text = " ".join(fragment.text for fragment in line)
                size = max(fragment.font_size for fragment in line)
                page_lines.append((" ".join(text.split()), size))
                for fragment in line:
                    weights[round(fragment.font_size, 1)] += len(fragment.text)
            lines[page.page_number] = page_lines
        body_size = weights.most_common(1)[0][0] if weights else 12.0
        return cls(body_size=body_size or 12.0, lines=lines)

    def score(self, page_number: int, paragraph: str, default: float = 0.5) -> float:
        """Map the size of the paragraph's first line relative to body text into [0, 1]."""

        for text, size in self.lines.get(page_number, []):
            if text and paragraph.startswith(text[:40]):
                return _clamp01(default + (size / self.body_size - 1.0))
        return default


class StructureDetector:
    """Classify the paragraphs of each page into structural elements."""

    def __init__(
        self,
        heuristics: Optional[HeadingHeuristics] = None,
        font_profile: Optional[FontProfile] = None,
    ) -> None:
        self.heuristics = heuristics or HeadingHeuristics()
        self.font_profile = font_profile

    def detect(self, pages: Sequence[NormalizedPage]) -> List[StructuralElement]:
        elements: List[StructuralElement] = []
        for page in pages:
            for raw in _PARAGRAPH_SPLIT_RE.split(page.text):
                text = " ".join(raw.split())
                if text:
                    elements.append(self.classify(text, page.page_number))
        LOGGER.debug(
            "Detected %s elements (%s headings)",
            len(elements),
            sum(1 for element in elements if element.is_heading),
        )
        return elements

    def heading_confidence(self, text: str, page_number: int) -> float:
        h = self.heuristics
        numbering = detect_numbering(text)
        font_score = h.neutral_font_score
        if self.font_profile is not None:
            font_score = self.font_profile.score(page_number, text, h.neutral_font_score)

        score = h.font_weight * font_score
        if numbering:
            score += h.numbering_weight
        if is_all_caps(text, h.min_caps_letters):
            score += h.all_caps_weight
        if len(text) < h.short_length:
            score += h.short_bonus
        elif len(text) > h.long_length:
            score -= h.long_penalty
        if _HEADING_KEYWORD_RE.match(text):
            score += h.keyword_weight
        return _clamp01(score)

    def classify(self, text: str, page_number: int) -> StructuralElement:
        h = self.heuristics
        numbering = detect_numbering(text)
        confidence = self.heading_confidence(text, page_number)

        if confidence > h.heading_threshold:
            if numbering:
                level = numbering.count(".") + 1
            elif is_all_caps(text, h.min_caps_letters) and len(text) < h.short_length:
                level = 1
            else:
                level = 2
            return StructuralElement(
                type=HEADING,
                level=level,
                text=text,
                page_number=page_number,
                confidence=confidence,
                numbering=numbering,
            )

        if _LIST_ITEM_RE.match(text):
            return StructuralElement(
                type=LIST_ITEM,
                level=0,
                text=text,
                page_number=page_number,
                confidence=1.0 - confidence,
                numbering=numbering,
            )
        return StructuralElement(
            type=PARAGRAPH,
            level=0,
            text=text,
            page_number=page_number,
            confidence=1.0 - confidence,
        )
