"""Dependency-free inverted index with prefix matching."""
from __future__ import annotations

import math
from collections import Counter, defaultdict
from typing import DefaultDict, Dict, List, Tuple

from .tokens import tokenize


class InvertedIndexSearchEngine:
    """Term postings held in memory; query tokens match any term they prefix."""

    def __init__(self) -> None:
        self._postings: DefaultDict[str, Dict[str, int]] = defaultdict(dict)
        self._order: Dict[str, int] = {}
        self._terms: Dict[str, Counter[str]] = {}

    def __len__(self) -> int:
        return len(self._order)

    def index(self, doc_id: str, text: str) -> None:
        for term in self._terms.get(doc_id, ()):
            self._postings[term].pop(doc_id, None)
        counts = Counter(tokenize(text))
        self._terms[doc_id] = counts
        self._order.setdefault(doc_id, len(self._order))
        for term, count in counts.items():
            self._postings[term][doc_id] = count

    def finalize(self) -> None:
        """Postings are complete after each ``index`` call."""

    def search(self, query: str, limit: int) -> List[Tuple[str, float]]:
        tokens = tokenize(query)
        if not tokens or not self._order or limit <= 0:
            return []

        total = len(self._order)
        scores: Dict[str, float] = defaultdict(float)
        for token in tokens:
            for term, postings in self._postings.items():
                if not postings or not term.startswith(token):
                    continue
                idf = math.log(1.0 + total / len(postings))
                for doc_id, count in postings.items():
                    scores[doc_id] += idf * (1.0 + math.log(count))

        if not scores:
            return []
        best = max(scores.values())
        ranked = sorted(scores.items(), key=lambda item: (-item[1], self._order[item[0]]))
        return [(doc_id, score / best) for doc_id, score in ranked[:limit]]
