"""High level ingestion pipeline entry point."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Sequence, Tuple

from taxdoc.search import DocumentIndex, create_search_engine
from taxdoc.telemetry import emit_ingest_event, traced_duration

from .cancellation import NEVER_CANCELLED, CancellationToken
from .chunking import ChunkingConfig, StructuralChunker
from .extractors import PDFExtractor
from .hierarchy import build_structure
from .language import LanguageDetector
from .models import Chunk, NormalizedPage, Page, StructureNode
from .normalization import normalize_pages
from .structure import FontProfile, HeadingHeuristics, StructureDetector

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class IngestPipelineConfig:
    chunking: ChunkingConfig = field(default_factory=ChunkingConfig)
    heuristics: HeadingHeuristics = field(default_factory=HeadingHeuristics)
    search_backend: str = "bm25"
    use_font_metrics: bool = False


@dataclass(frozen=True, slots=True)
class IngestedDocument:
    """Immutable result of one ingestion run."""

    source_id: str
    pages: Tuple[Page, ...]
    normalized_pages: Tuple[NormalizedPage, ...]
    structure: Tuple[StructureNode, ...]
    chunks: Tuple[Chunk, ...]
    index: DocumentIndex
    ingested_at: datetime
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def page_count(self) -> int:
        return len(self.pages)


def index_chunks(chunks: Sequence[Chunk], backend: str = "bm25") -> DocumentIndex:
    return DocumentIndex.build(chunks, create_search_engine(backend))


class IngestPipeline:
    """Pipeline orchestrating extraction, normalisation, structuring, chunking and indexing."""

    def __init__(self, config: Optional[IngestPipelineConfig] = None) -> None:
        self.config = config or IngestPipelineConfig()
        self.extractor = PDFExtractor()
        self.chunker = StructuralChunker(self.config.chunking)
        self.language_detector = LanguageDetector()

    def run(
        self,
        data: bytes,
        *,
        source_id: str,
        file_name: str | None = None,
        url: str | None = None,
        token: CancellationToken = NEVER_CANCELLED,
    ) -> IngestedDocument:
        """Turn PDF bytes into an indexed, immutable document snapshot."""

        LOGGER.info("Processing %s (%s bytes) with id %s", file_name or url or "upload", len(data), source_id)
        fields = {"source_id": source_id}

        with traced_duration("ingest.extract", logger=LOGGER, **fields):
            pages = self.extractor.extract(data, token)
        token.raise_if_cancelled()

        with traced_duration("ingest.normalize", logger=LOGGER, **fields):
            normalized = normalize_pages(pages)
        token.raise_if_cancelled()

        with traced_duration("ingest.structure", logger=LOGGER, **fields):
            font_profile = FontProfile.from_pages(pages) if self.config.use_font_metrics else None
            detector = StructureDetector(self.config.heuristics, font_profile)
            elements = detector.detect(normalized)
            roots = build_structure(elements)
        token.raise_if_cancelled()

        with traced_duration("ingest.chunk", logger=LOGGER, **fields):
            chunks = self.chunker.chunk(roots)
        token.raise_if_cancelled()

        with traced_duration("ingest.index", logger=LOGGER, **fields):
            index = index_chunks(chunks, self.config.search_backend)
        token.raise_if_cancelled()

        language = self.language_detector.detect_pages(normalized)
        LOGGER.info("Generated %s chunks from %s pages for %s", len(chunks), len(pages), source_id)
        emit_ingest_event(
            "ingest.pipeline",
            source_id=source_id,
            file_name=file_name,
            size_bytes=len(data),
            language=language,
            pages=len(pages),
            chunks=len(chunks),
        )
        return IngestedDocument(
            source_id=source_id,
            pages=tuple(pages),
            normalized_pages=tuple(normalized),
            structure=tuple(roots),
            chunks=tuple(chunks),
            index=index,
            ingested_at=datetime.now(timezone.utc),
            metadata={
                "url": url,
                "file_name": file_name,
                "page_count": len(pages),
                "language": language,
            },
        )
