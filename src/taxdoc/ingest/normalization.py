"""Text normalisation: line layout, wrap merging, header/footer removal."""
from __future__ import annotations

import re
import unicodedata
from collections import Counter
from typing import Iterable, List, Sequence, Set

from .models import NormalizedPage, Page, TextFragment

LINE_Y_TOLERANCE = 5.0
REPEAT_RATIO = 0.5
MIN_REPEAT_PAGES = 2
MIN_REPEAT_LENGTH = 3

_HORIZONTAL_WS_RE = re.compile(r"[^\S\n]+")
_SPACE_AROUND_NEWLINE_RE = re.compile(r" *\n *")
_MULTIPLE_NEWLINES_RE = re.compile(r"\n{2,}")
_HYPHEN_WRAP_RE = re.compile(r"(\w+)-\n(\w+)")
_SOFT_WRAP_RE = re.compile(r"([a-z])\n([a-z])")
_SINGLE_NEWLINE_RE = re.compile(r"(?<=[^\n])\n(?=[^\n])")
_PAGE_LABEL_RE = re.compile(
    r"^(?:page\s+)?[-–(\[]?\s*\d+\s*[-–)\]]?(?:\s*(?:of|/)\s*\d+)?$",
    re.IGNORECASE,
)
_PAGE_LABEL_KEY = "<page-label>"


def normalize_text(text: str) -> str:
    """Normalise Unicode representation and line endings."""

    normalized = unicodedata.normalize("NFC", text)
    return normalized.replace("\r\n", "\n").replace("\r", "\n")


def group_lines(fragments: Iterable[TextFragment]) -> List[List[TextFragment]]:
    """Group fragments into lines top-to-bottom, each line ordered left-to-right."""

    ordered = sorted(fragments, key=lambda fragment: (fragment.y, fragment.x))
    lines: List[List[TextFragment]] = []
    current: List[TextFragment] = []
    anchor_y = 0.0
    for fragment in ordered:
        if current and abs(fragment.y - anchor_y) > LINE_Y_TOLERANCE:
            lines.append(current)
            current = []
        if not current:
            anchor_y = fragment.y
        current.append(fragment)
    if current:
        lines.append(current)
    return [sorted(line, key=lambda item: item.x) for line in lines]


def layout_lines(fragments: Iterable[TextFragment]) -> List[str]:
    return [" ".join(fragment.text for fragment in line) for line in group_lines(fragments)]


def collapse_whitespace(text: str) -> str:
    collapsed = _HORIZONTAL_WS_RE.sub(" ", text)
    return _SPACE_AROUND_NEWLINE_RE.sub("\n", collapsed).strip()


def merge_line_wraps(text: str) -> str:
    merged = _HYPHEN_WRAP_RE.sub(r"\1\2", text)
    return _SOFT_WRAP_RE.sub(r"\1 \2", merged)


def _repeat_key(line: str) -> str:
    stripped = line.strip()
    if _PAGE_LABEL_RE.match(stripped):
        return _PAGE_LABEL_KEY
    return stripped.lower()


def detect_repeating_lines(page_texts: Sequence[str]) -> Set[str]:
    """Return keys of first/last lines shared by enough pages to be page furniture.

    Page-number labels ("Page 2 of 9", "- 4 -") share a single key so that
    numbered footers are recognised even though their digits differ.
    """

    first_counts: Counter[str] = Counter()
    last_counts: Counter[str] = Counter()
    for text in page_texts:
        lines = [line for line in text.split("\n") if line.strip()]
        if not lines:
            continue
        first_counts[_repeat_key(lines[0])] += 1
        last_counts[_repeat_key(lines[-1])] += 1

    threshold = max(MIN_REPEAT_PAGES, len(page_texts) * REPEAT_RATIO)
    repeating: Set[str] = set()
    for counts in (first_counts, last_counts):
        for key, count in counts.items():
            if count < threshold:
                continue
            if key == _PAGE_LABEL_KEY or len(key) > MIN_REPEAT_LENGTH:
                repeating.add(key)
    return repeating


def strip_repeating_lines(text: str, repeating: Set[str]) -> str:
    if not repeating:
        return text
    lines = text.split("\n")
    start, end = 0, len(lines)
    while start < end and (not lines[start].strip() or _repeat_key(lines[start]) in repeating):
        start += 1
    while end > start and (not lines[end - 1].strip() or _repeat_key(lines[end - 1]) in repeating):
        end -= 1
    return "\n".join(lines[start:end])


def rebuild_paragraphs(text: str) -> str:
    """Turn sentence-ending line breaks into paragraph breaks and join the rest."""

    normalized = _MULTIPLE_NEWLINES_RE.sub("\n\n", text)

    def _replace(match: re.Match[str]) -> str:
        before = normalized[match.start() - 1]
        after = normalized[match.end()]
        if before in ".!?" and after.isupper():
            return "\n\n"
        return " "

    return _SINGLE_NEWLINE_RE.sub(_replace, normalized)


def normalize_pages(pages: Sequence[Page]) -> List[NormalizedPage]:
    """Convert extracted pages into cleaned per-page text."""

    if not pages:
        return []

    page_texts = [
        merge_line_wraps(collapse_whitespace(normalize_text("\n".join(layout_lines(page.fragments)))))
        for page in pages
    ]
    repeating = detect_repeating_lines(page_texts)

    normalized: List[NormalizedPage] = []
    for page, text in zip(pages, page_texts):
        cleaned = rebuild_paragraphs(strip_repeating_lines(text, repeating)).strip()
        if cleaned:
            normalized.append(NormalizedPage(page_number=page.page_number, text=cleaned))
    return normalized
