"""Tokenisation shared by the search backends."""
from __future__ import annotations

import re
from typing import List

_THOUSANDS_RE = re.compile(r"(?<=\d),(?=\d{3}\b)")
_TOKEN_RE = re.compile(r"\w+")


def tokenize(text: str) -> List[str]:
    """Lower-case word tokens; ``2,200,000`` and ``2200000`` tokenize alike."""

    return _TOKEN_RE.findall(_THOUSANDS_RE.sub("", text.lower()))
