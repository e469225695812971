"""Per-document search index over chunks."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Dict, List, Sequence, Tuple

from taxdoc.ingest.models import Chunk

if TYPE_CHECKING:  # pragma: no cover - import for type checking only
    from . import SearchEngine

LOGGER = logging.getLogger(__name__)


def searchable_text(chunk: Chunk) -> str:
    return f"{chunk.content}\n{' '.join(chunk.section_path)}"


class DocumentIndex:
    """Maps engine hits back to chunks with rank-based scores ``1 / (rank + 1)``."""

    def __init__(self, chunks: Sequence[Chunk], engine: "SearchEngine") -> None:
        self._chunks: Dict[str, Chunk] = {chunk.id: chunk for chunk in chunks}
        self.engine = engine

    @classmethod
    def build(cls, chunks: Sequence[Chunk], engine: "SearchEngine") -> "DocumentIndex":
        for chunk in chunks:
            engine.index(chunk.id, searchable_text(chunk))
        engine.finalize()
        LOGGER.debug("Indexed %s chunks with %s", len(chunks), type(engine).__name__)
        return cls(chunks, engine)

    def __len__(self) -> int:
        return len(self._chunks)

    def search(self, query: str, limit: int) -> List[Tuple[Chunk, float]]:
        if not query.strip() or limit <= 0:
            return []
        results: List[Tuple[Chunk, float]] = []
        for doc_id, _ in self.engine.search(query, limit):
            chunk = self._chunks.get(doc_id)
            if chunk is None:
                continue
            results.append((chunk, 1.0 / (len(results) + 1)))
        return results
