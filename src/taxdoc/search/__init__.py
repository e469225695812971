"""Full-text search backends and the per-document index."""

from __future__ import annotations

from typing import Callable, Dict, List, Protocol, Tuple, runtime_checkable

from .bm25_engine import BM25SearchEngine
from .index import DocumentIndex
from .memory_engine import InvertedIndexSearchEngine
from .tokens import tokenize

DEFAULT_BACKEND = "bm25"


@runtime_checkable
class SearchEngine(Protocol):
    def index(self, doc_id: str, text: str) -> None:
        ...

    def finalize(self) -> None:
        ...

    def search(self, query: str, limit: int) -> List[Tuple[str, float]]:
        ...


_BACKENDS: Dict[str, Callable[[], SearchEngine]] = {
    "bm25": BM25SearchEngine,
    "memory": InvertedIndexSearchEngine,
}


def create_search_engine(backend: str | None = None) -> SearchEngine:
    """Return a fresh engine for ``backend`` (``bm25`` or ``memory``)."""

    name = (backend or DEFAULT_BACKEND).strip().lower()
    try:
        factory = _BACKENDS[name]
    except KeyError:
        raise ValueError(f"Unsupported SEARCH_BACKEND: {name!r}") from None
    return factory()


__all__ = [
    "BM25SearchEngine",
    "DocumentIndex",
    "InvertedIndexSearchEngine",
    "SearchEngine",
    "create_search_engine",
    "tokenize",
]
