"""Environment driven settings for the retrieval service."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

LOGGER = logging.getLogger(__name__)

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}


def _int_from_env(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        LOGGER.warning("Invalid integer for %s: %s; using default %s", name, value, default)
        return default


def _float_from_env(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        LOGGER.warning("Invalid float for %s: %s; using default %s", name, value, default)
        return default


def _bool_from_env(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    flag = value.strip().lower()
    if flag in _TRUTHY:
        return True
    if flag in _FALSY:
        return False
    LOGGER.warning("Invalid boolean for %s: %s; using default %s", name, value, default)
    return default


@dataclass(slots=True)
class Settings:
    search_backend: str = "bm25"
    fetch_timeout_seconds: float = 30.0
    cache_dir: Path | None = None
    context_max_tokens: int = 4000
    query_limit: int = 15
    query_min_score: float = 0.01
    use_font_metrics: bool = False

    @classmethod
    def from_env(cls) -> "Settings":
        cache_dir = os.getenv("DOCUMENT_CACHE_DIR")
        return cls(
            search_backend=os.getenv("SEARCH_BACKEND", "bm25").strip().lower(),
            fetch_timeout_seconds=_float_from_env("FETCH_TIMEOUT_SECONDS", 30.0),
            cache_dir=Path(cache_dir) if cache_dir else None,
            context_max_tokens=_int_from_env("CONTEXT_MAX_TOKENS", 4000),
            query_limit=_int_from_env("QUERY_LIMIT", 15),
            query_min_score=_float_from_env("QUERY_MIN_SCORE", 0.01),
            use_font_metrics=_bool_from_env("USE_FONT_METRICS", False),
        )


__all__ = ["Settings"]
