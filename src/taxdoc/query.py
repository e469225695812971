"""Ranked retrieval over an ingested document and prompt-context assembly."""
from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, List, Optional, Sequence, Tuple

from taxdoc.errors import EmptyResultWarning
from taxdoc.ingest.chunking import estimate_tokens
from taxdoc.ingest.hierarchy import section_path_string
from taxdoc.ingest.models import Chunk
from taxdoc.telemetry import emit_context_event, emit_retriever_event, log_event

if TYPE_CHECKING:  # pragma: no cover - import for type checking only
    from taxdoc.ingest.pipeline import IngestedDocument

LOGGER = logging.getLogger(__name__)

HIGH = "high"
MEDIUM = "medium"
LOW = "low"
_TIER_RANK = {HIGH: 3, MEDIUM: 2, LOW: 1}

_FIRST_SENTENCE_RE = re.compile(r"^[^.!?]+[.!?]")
_SENTENCE_BREAK_RE = re.compile(r"[.!?]+")
_REFERENCE_VALUES = "800000 2200000 9000000 13000000 25000000 50000000"


@dataclass(slots=True)
class AnchorTerms:
    """Domain vocabulary used to bias retrieval toward the current rate tables."""

    triggers: Tuple[str, ...] = (
        "tax",
        "taxation",
        "income",
        "chargeable",
        "assessable",
        "deduction",
        "allowance",
        "exemption",
        "relief",
        "section 30(1)",
        "individual income tax rates",
        "relief allowance",
        "800000",
        "2,200,000",
        "9,000,000",
        "13,000,000",
        "25,000,000",
        "50,000,000",
    )
    general_suffix: str = (
        "tax income chargeable section 30(1) individual income tax rates " + _REFERENCE_VALUES
    )
    reference_suffix: str = (
        "section 30(1) individual income tax rates relief allowance " + _REFERENCE_VALUES
    )
    boost_terms: Tuple[str, ...] = (
        "section 30(1)",
        "individual income tax rates",
        "relief allowance",
        "800,000",
        "800000",
        "2,200,000",
        "2200000",
        "9,000,000",
        "9000000",
        "13,000,000",
        "13000000",
        "25,000,000",
        "25000000",
        "50,000,000",
        "50000000",
    )
    boost_bonus: float = 0.5
    important_terms: Tuple[str, ...] = (
        "tax",
        "rate",
        "deduction",
        "allowance",
        "exemption",
        "chargeable",
        "assessable",
        "income",
        "relief",
    )


@dataclass(slots=True)
class QueryConfig:
    limit: int = 10
    min_score: float = 0.01
    expansion_factor: int = 3
    fallback_words: int = 3
    min_word_length: int = 3
    fallback_score: float = 0.1
    high_threshold: float = 0.5
    medium_threshold: float = 0.2
    max_context_chunks: int = 8
    low_tier_fallback: int = 3
    summary_chars: int = 400
    short_summary_chars: int = 200
    separator: str = "\n\n---\n\n"
    anchors: AnchorTerms = field(default_factory=AnchorTerms)


DEFAULT_QUERY_CONFIG = QueryConfig()


@dataclass(frozen=True, slots=True)
class QueryResult:
    chunk: Chunk
    score: float
    relevance: str


@dataclass(frozen=True, slots=True)
class QueryResponse:
    results: Tuple[QueryResult, ...]
    total_results: int
    query: str

    def __bool__(self) -> bool:
        return self.total_results > 0


def expand_query(query: str, anchors: Optional[AnchorTerms] = None) -> str:
    """Append anchor vocabulary so searches lean on the current reference figures."""

    anchors = anchors or DEFAULT_QUERY_CONFIG.anchors
    lowered = query.lower()
    if not any(term in lowered for term in anchors.triggers):
        return f"{query} {anchors.general_suffix}"
    return f"{query} {anchors.reference_suffix}"


def relevance_for(score: float, config: QueryConfig = DEFAULT_QUERY_CONFIG) -> str:
    if score >= config.high_threshold:
        return HIGH
    if score >= config.medium_threshold:
        return MEDIUM
    return LOW


def _warn_empty(query: str, tier: str, source_id: str) -> None:
    warning = EmptyResultWarning(f"No direct match for query; answered from {tier} fallback")
    log_event(
        LOGGER,
        "query.fallback",
        level="warning",
        source_id=source_id,
        details={"tier": tier, "query_preview": query[:120]},
        warning=type(warning).__name__,
        message=str(warning),
    )


def query_document(
    document: "IngestedDocument",
    query: str,
    limit: Optional[int] = None,
    min_score: Optional[float] = None,
    *,
    config: QueryConfig = DEFAULT_QUERY_CONFIG,
) -> QueryResponse:
    """Search ``document``; never returns an empty response when it has chunks.

    Tiers, each tried only when the previous one found nothing: the anchored
    query, the raw query, the first few words of the query one at a time, and
    finally the document's opening chunks with descending synthetic scores.
    """

    limit = limit if limit and limit > 0 else config.limit
    min_score = config.min_score if min_score is None else min_score
    started = time.perf_counter()
    index = document.index

    tier = "expanded"
    hits: List[Tuple[Chunk, float]] = index.search(
        expand_query(query, config.anchors), limit * config.expansion_factor
    )
    if not hits:
        tier = "raw"
        hits = index.search(query, limit * config.expansion_factor)
    if not hits and query.strip():
        tier = "word"
        words = [word for word in query.split() if len(word) >= config.min_word_length]
        for word in words[: config.fallback_words]:
            hits = index.search(word, limit)
            if hits:
                break
        if hits:
            _warn_empty(query, tier, document.source_id)
    if not hits:
        tier = "general"
        hits = [
            (chunk, config.fallback_score / (position + 1))
            for position, chunk in enumerate(document.chunks[:limit])
        ]
        if hits:
            _warn_empty(query, tier, document.source_id)

    results = tuple(
        QueryResult(chunk=chunk, score=score, relevance=relevance_for(score, config))
        for chunk, score in hits
        if score >= min_score
    )[:limit]

    emit_retriever_event(
        query=query,
        limit=limit,
        tier=tier,
        results=[
            {"chunk_id": result.chunk.id, "score": round(result.score, 4), "relevance": result.relevance}
            for result in results
        ],
        duration_ms=(time.perf_counter() - started) * 1000.0,
    )
    return QueryResponse(results=results, total_results=len(results), query=query)


def summarize_chunk(chunk: Chunk, max_length: int = 300, anchors: Optional[AnchorTerms] = None) -> str:
    """Condense a chunk to its first sentence plus sentences with significant terms."""

    anchors = anchors or DEFAULT_QUERY_CONFIG.anchors
    content = chunk.content.strip()
    if len(content) <= max_length:
        return content

    match = _FIRST_SENTENCE_RE.match(content)
    first_sentence = match.group(0).strip() if match else ""
    sentences = [part for part in _SENTENCE_BREAK_RE.split(content) if len(part.strip()) > 20]

    key_sentences: List[str] = [first_sentence] if first_sentence else []
    for sentence in sentences[1:5]:
        lowered = sentence.lower()
        if any(term in lowered for term in anchors.important_terms):
            key_sentences.append(sentence.strip())
            if len(" ".join(key_sentences)) > max_length:
                break

    if key_sentences:
        summary = ". ".join(key_sentences)
        if len(summary) > max_length:
            summary = summary[: max_length - 3] + "..."
        return summary
    return content[: max_length - 3] + "..."


def _format_block(chunk: Chunk, body: str) -> str:
    return f"[{section_path_string(chunk.section_path)} - {chunk.page_label}]\n{body}"


def _rank_for_context(results: Sequence[QueryResult], config: QueryConfig) -> List[QueryResult]:
    preferred = [result for result in results if result.relevance in (HIGH, MEDIUM)]
    candidates = preferred or list(results[: config.low_tier_fallback])
    boost_terms = [term.lower() for term in config.anchors.boost_terms]

    def boosted(result: QueryResult) -> float:
        content = result.chunk.content.lower()
        bonus = config.anchors.boost_bonus if any(term in content for term in boost_terms) else 0.0
        return result.score + bonus

    candidates.sort(key=lambda result: (-_TIER_RANK[result.relevance], -boosted(result)))
    return candidates[: config.max_context_chunks]


def get_chunks_for_ai(
    response: QueryResponse,
    max_tokens: int = 2000,
    *,
    config: QueryConfig = DEFAULT_QUERY_CONFIG,
) -> str:
    """Format the best results into a context string of at most ``max_tokens``.

    The first block that does not fit is retried once as a shorter summary and
    assembly stops there, whether or not the shorter block was included.
    """

    blocks: List[str] = []
    total_tokens = 0
    truncated = False

    for result in _rank_for_context(response.results, config):
        block = _format_block(result.chunk, summarize_chunk(result.chunk, config.summary_chars, config.anchors))
        tokens = estimate_tokens(block)
        if total_tokens + tokens > max_tokens:
            truncated = True
            shorter = _format_block(
                result.chunk, summarize_chunk(result.chunk, config.short_summary_chars, config.anchors)
            )
            shorter_tokens = estimate_tokens(shorter)
            if total_tokens + shorter_tokens <= max_tokens:
                blocks.append(shorter)
                total_tokens += shorter_tokens
            break
        blocks.append(block)
        total_tokens += tokens

    emit_context_event(
        sources=[result.chunk.id for result in response.results],
        context_tokens=total_tokens,
        truncated=truncated,
    )
    return config.separator.join(blocks)
