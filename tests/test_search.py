from __future__ import annotations

import pytest
from rank_bm25 import BM25Okapi

from taxdoc.ingest.models import Chunk, PageRange
from taxdoc.search import (
    BM25SearchEngine,
    DocumentIndex,
    InvertedIndexSearchEngine,
    SearchEngine,
    create_search_engine,
    tokenize,
)


def make_chunk(chunk_id: str, content: str, path=("Document",), page: int = 1) -> Chunk:
    return Chunk(
        id=chunk_id,
        content=content,
        section_path=tuple(path),
        page_range=PageRange.single(page),
        node_ids=(f"node_{chunk_id}",),
        token_estimate=len(content) // 4 + 1,
    )


CORPUS = {
    "a": "Pension contributions are an allowable deduction from income.",
    "b": "The first 800,000 of chargeable income is taxed at zero percent.",
    "c": "Companies file returns within six months of the year end.",
}


def test_tokenize_normalises_case_and_thousands() -> None:
    assert tokenize("Section 30(1): 2,200,000 Naira") == ["section", "30", "1", "2200000", "naira"]


@pytest.mark.parametrize("engine_cls", [BM25SearchEngine, InvertedIndexSearchEngine])
def test_engines_rank_matching_documents(engine_cls) -> None:
    engine = engine_cls()
    for doc_id, text in CORPUS.items():
        engine.index(doc_id, text)

    hits = engine.search("pension deduction", 5)

    assert hits[0][0] == "a"
    assert hits[0][1] == pytest.approx(1.0)
    assert all(0.0 < score <= 1.0 for _, score in hits)
    assert "c" not in [doc_id for doc_id, _ in hits]


@pytest.mark.parametrize("engine_cls", [BM25SearchEngine, InvertedIndexSearchEngine])
def test_engines_return_nothing_without_overlap(engine_cls) -> None:
    engine = engine_cls()
    for doc_id, text in CORPUS.items():
        engine.index(doc_id, text)

    assert engine.search("xylophone quartz", 5) == []
    assert engine.search("", 5) == []
    assert engine_cls().search("pension", 5) == []


@pytest.mark.parametrize("engine_cls", [BM25SearchEngine, InvertedIndexSearchEngine])
def test_thousands_separators_match_plain_numbers(engine_cls) -> None:
    engine = engine_cls()
    for doc_id, text in CORPUS.items():
        engine.index(doc_id, text)

    assert [doc_id for doc_id, _ in engine.search("800000", 5)] == ["b"]


@pytest.mark.parametrize("engine_cls", [BM25SearchEngine, InvertedIndexSearchEngine])
def test_reindexing_replaces_document(engine_cls) -> None:
    engine = engine_cls()
    engine.index("a", "pension")
    engine.index("a", "gratuity")

    assert engine.search("pension", 5) == []
    assert [doc_id for doc_id, _ in engine.search("gratuity", 5)] == ["a"]
    assert len(engine) == 1


def test_memory_engine_matches_prefixes() -> None:
    engine = InvertedIndexSearchEngine()
    engine.index("a", CORPUS["a"])

    assert [doc_id for doc_id, _ in engine.search("deduct", 5)] == ["a"]


def test_bm25_respects_limit() -> None:
    engine = BM25SearchEngine()
    for doc_id, text in CORPUS.items():
        engine.index(doc_id, text)

    assert len(engine.search("income the of", 1)) == 1


def test_create_search_engine_by_name() -> None:
    assert isinstance(create_search_engine(), BM25SearchEngine)
    assert isinstance(create_search_engine(" Memory "), InvertedIndexSearchEngine)
    assert isinstance(create_search_engine("bm25"), SearchEngine)
    with pytest.raises(ValueError, match="trigram"):
        create_search_engine("trigram")


def test_document_index_uses_section_path_and_rank_scores() -> None:
    chunks = [
        make_chunk("chunk_0", "General provisions on residence.", path=("CHAPTER 1",)),
        make_chunk("chunk_1", "Amounts granted to individuals.", path=("Relief allowance",)),
        make_chunk("chunk_2", "Allowance for dependants and relief for rent.", path=("CHAPTER 3",)),
    ]
    index = DocumentIndex.build(chunks, BM25SearchEngine())

    results = index.search("relief allowance", 10)

    assert {chunk.id for chunk, _ in results} == {"chunk_1", "chunk_2"}
    assert [score for _, score in results] == [1.0, 0.5]
    assert index.search("   ", 10) == []
    assert len(index) == 3


def test_document_index_skips_unknown_ids() -> None:
    class StaleEngine:
        def index(self, doc_id: str, text: str) -> None:
            pass

        def search(self, query: str, limit: int):
            return [("gone", 0.9), ("chunk_0", 0.4)]

    index = DocumentIndex([make_chunk("chunk_0", "Body")], StaleEngine())

    results = index.search("body", 5)

    assert [(chunk.id, score) for chunk, score in results] == [("chunk_0", 1.0)]


def test_document_index_build_leaves_engine_ready_for_reads() -> None:
    engine = BM25SearchEngine()
    index = DocumentIndex.build([make_chunk(key, text) for key, text in CORPUS.items()], engine)

    model = engine._bm25
    assert isinstance(model, BM25Okapi)

    index.search("pension deduction", 3)
    index.search("chargeable income", 3)

    assert engine._bm25 is model
