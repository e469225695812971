"""Document language detection over a bounded text sample."""
from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Sequence

from langdetect import DetectorFactory, LangDetectException, detect

from .models import NormalizedPage

LOGGER = logging.getLogger(__name__)

# langdetect is randomised; a fixed seed keeps repeated ingests identical.
DetectorFactory.seed = 0

SAMPLE_CHARS = 5000


def sample_text(texts: Iterable[str], limit: int = SAMPLE_CHARS) -> str:
    """Concatenate texts in order until ``limit`` characters are collected."""

    parts: List[str] = []
    remaining = limit
    for text in texts:
        if remaining <= 0:
            break
        cleaned = text.strip()
        if cleaned:
            parts.append(cleaned[:remaining])
            remaining -= len(parts[-1]) + 1
    return "\n".join(parts)


class LanguageDetector:
    def __init__(self, sample_chars: int = SAMPLE_CHARS) -> None:
        self.sample_chars = sample_chars

    def detect(self, text: str) -> Optional[str]:
        """ISO 639-1 code of ``text``, or ``None`` when it cannot be told."""

        sample = sample_text([text], self.sample_chars)
        if not sample:
            return None
        try:
            return detect(sample)
        except LangDetectException as error:
            LOGGER.info("Language undetermined for %s sampled chars: %s", len(sample), error)
            return None

    def detect_pages(self, pages: Sequence[NormalizedPage]) -> Optional[str]:
        language = self.detect(sample_text((page.text for page in pages), self.sample_chars))
        LOGGER.debug("Detected language %s over %s pages", language, len(pages))
        return language
