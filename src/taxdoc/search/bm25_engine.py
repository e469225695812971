"""Okapi BM25 keyword search backed by rank_bm25."""
from __future__ import annotations

import logging
from typing import Dict, List, Optional, Set, Tuple

from rank_bm25 import BM25Okapi

from .tokens import tokenize

LOGGER = logging.getLogger(__name__)


class BM25SearchEngine:
    """Keyword index; a document matches when it shares a token with the query."""

    def __init__(self) -> None:
        self._ids: List[str] = []
        self._positions: Dict[str, int] = {}
        self._corpus: List[List[str]] = []
        self._vocab: List[Set[str]] = []
        self._bm25: Optional[BM25Okapi] = None

    def __len__(self) -> int:
        return len(self._ids)

    def index(self, doc_id: str, text: str) -> None:
        tokens = tokenize(text)
        position = self._positions.get(doc_id)
        if position is None:
            self._positions[doc_id] = len(self._ids)
            self._ids.append(doc_id)
            self._corpus.append(tokens)
            self._vocab.append(set(tokens))
        else:
            self._corpus[position] = tokens
            self._vocab[position] = set(tokens)
        self._bm25 = None

    def finalize(self) -> None:
        """Build the BM25 model so later searches only read it."""

        if self._bm25 is None and self._ids:
            # rank_bm25 divides by the average document length
            self._bm25 = BM25Okapi([doc or [""] for doc in self._corpus])
            LOGGER.debug("Built BM25 index over %s documents", len(self._ids))

    def search(self, query: str, limit: int) -> List[Tuple[str, float]]:
        tokens = tokenize(query)
        if not tokens or not self._ids or limit <= 0:
            return []
        self.finalize()
        assert self._bm25 is not None

        wanted = set(tokens)
        scores = self._bm25.get_scores(tokens)
        matches = [
            (position, float(scores[position]))
            for position, vocab in enumerate(self._vocab)
            if vocab & wanted
        ]
        if not matches:
            return []

        # IDF goes negative for very common terms; shift into (0, 1] keeping order.
        lowest = min(score for _, score in matches)
        shifted = [(position, score - lowest + 1.0) for position, score in matches]
        best = max(score for _, score in shifted)
        shifted.sort(key=lambda item: (-item[1], item[0]))
        return [(self._ids[position], score / best) for position, score in shifted[:limit]]
