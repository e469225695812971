"""Document lifecycle: ingestion, caching and retrieval entry points."""
from __future__ import annotations

import asyncio
import enum
import logging
import time
from dataclasses import dataclass
from functools import lru_cache
from typing import Dict, Mapping, Optional, Union

import httpx

from taxdoc.cache import DocumentCache, InMemoryDocumentCache, JsonFileDocumentCache
from taxdoc.config import Settings
from taxdoc.errors import IndexUnavailableError, IngestionCancelledError, TaxDocError
from taxdoc.ingest.cancellation import CancellationToken
from taxdoc.ingest.pipeline import IngestedDocument, IngestPipeline, IngestPipelineConfig
from taxdoc.ingest.sources import DocumentSource
from taxdoc.logging_config import AUDIT_LOGGER_NAME
from taxdoc.query import QueryConfig, QueryResponse, get_chunks_for_ai, query_document
from taxdoc.telemetry import emit_exception, emit_ingest_event

LOGGER = logging.getLogger(__name__)
AUDIT_LOGGER = logging.getLogger(AUDIT_LOGGER_NAME)

GENERIC_FALLBACK_QUERY = "tax act provisions"
GENERIC_FALLBACK_LIMIT = 10

SourceLike = Union[DocumentSource, bytes, str]
DocumentRef = Union[IngestedDocument, str, None]


class DocumentState(str, enum.Enum):
    NOT_LOADED = "not_loaded"
    INGESTING = "ingesting"
    INGESTED = "ingested"


@dataclass(slots=True)
class _Run:
    task: "asyncio.Task[IngestedDocument]"
    token: CancellationToken


def _coerce_source(source: SourceLike) -> DocumentSource:
    if isinstance(source, DocumentSource):
        return source
    if isinstance(source, (bytes, bytearray, memoryview)):
        return DocumentSource.from_bytes(bytes(source))
    if isinstance(source, str):
        return DocumentSource.from_url(source)
    raise TypeError(f"Unsupported document source: {type(source).__name__}")


class DocumentManager:
    """Owns the ingested documents of the process and the runs producing them.

    Concurrent loads of one source share a single pipeline run. The run itself
    executes in a worker thread and can be superseded by a forced re-ingest.
    """

    def __init__(
        self,
        *,
        settings: Optional[Settings] = None,
        pipeline: Optional[IngestPipeline] = None,
        cache: Optional[DocumentCache] = None,
        client: Optional[httpx.AsyncClient] = None,
        query_config: Optional[QueryConfig] = None,
    ) -> None:
        self.settings = settings or Settings()
        self.pipeline = pipeline or IngestPipeline(
            IngestPipelineConfig(
                search_backend=self.settings.search_backend,
                use_font_metrics=self.settings.use_font_metrics,
            )
        )
        if cache is None:
            if self.settings.cache_dir is not None:
                cache = JsonFileDocumentCache(
                    self.settings.cache_dir, search_backend=self.settings.search_backend
                )
            else:
                cache = InMemoryDocumentCache()
        self.cache = cache
        self.client = client
        self.query_config = query_config or QueryConfig(
            limit=self.settings.query_limit, min_score=self.settings.query_min_score
        )
        self._documents: Dict[str, IngestedDocument] = {}
        self._in_flight: Dict[str, _Run] = {}
        self._current_id: Optional[str] = None

    # lifecycle -----------------------------------------------------------

    async def load(self, source: SourceLike, force_reingest: bool = False) -> IngestedDocument:
        source = _coerce_source(source)
        source_id = source.source_id

        if not force_reingest:
            document = self._lookup(source_id)
            if document is not None:
                self._current_id = source_id
                return document
            run = self._in_flight.get(source_id)
            if run is not None:
                LOGGER.debug("Joining in-flight ingestion of %s", source_id)
                return await asyncio.shield(run.task)
        else:
            previous = self._in_flight.get(source_id)
            if previous is not None:
                LOGGER.info("Superseding in-flight ingestion of %s", source_id)
                previous.token.cancel("superseded by a forced re-ingest")

        token = CancellationToken()
        task = asyncio.create_task(self._ingest(source, source_id, token))
        run = _Run(task=task, token=token)
        self._in_flight[source_id] = run
        task.add_done_callback(lambda finished: self._finish(source_id, run))
        return await asyncio.shield(task)

    def cancel(self, source_id: str) -> bool:
        """Signal the in-flight run for ``source_id``; returns whether one existed."""

        run = self._in_flight.get(source_id)
        if run is None:
            return False
        run.token.cancel()
        return True

    def state(self, source_id: str) -> DocumentState:
        if source_id in self._in_flight:
            return DocumentState.INGESTING
        if source_id in self._documents:
            return DocumentState.INGESTED
        return DocumentState.NOT_LOADED

    def get(self, source_id: str) -> Optional[IngestedDocument]:
        """Return an ingested document, restoring it from the cache if needed."""

        return self._lookup(source_id)

    def is_ingested(self, source: Union[SourceLike, IngestedDocument]) -> bool:
        if isinstance(source, IngestedDocument):
            source_id = source.source_id
        elif isinstance(source, str) and self._lookup(source) is not None:
            return True
        else:
            source_id = _coerce_source(source).source_id
        return self._lookup(source_id) is not None

    @property
    def current(self) -> Optional[IngestedDocument]:
        if self._current_id is None:
            return None
        return self._documents.get(self._current_id)

    @property
    def documents(self) -> Mapping[str, IngestedDocument]:
        return dict(self._documents)

    # retrieval -----------------------------------------------------------

    def query(
        self,
        document: DocumentRef,
        text: str,
        limit: Optional[int] = None,
        min_score: Optional[float] = None,
    ) -> Optional[QueryResponse]:
        """Rank chunks for ``text``; ``None`` while the document is not ingested."""

        try:
            resolved = self._resolve(document)
        except IndexUnavailableError as error:
            LOGGER.info("Query skipped: %s", error)
            return None
        return query_document(
            resolved,
            text,
            limit if limit is not None else self.query_config.limit,
            min_score if min_score is not None else self.query_config.min_score,
            config=self.query_config,
        )

    def context_for(self, document: DocumentRef, text: str, max_tokens: Optional[int] = None) -> str:
        resolved = self._resolve(document)
        budget = max_tokens if max_tokens is not None else self.settings.context_max_tokens

        response = query_document(resolved, text, config=self.query_config, limit=self.query_config.limit)
        if not response.results:
            LOGGER.info("No results for query on %s; using generic provisions query", resolved.source_id)
            response = query_document(
                resolved, GENERIC_FALLBACK_QUERY, GENERIC_FALLBACK_LIMIT, config=self.query_config
            )
        if not response.results:
            return ""

        context = get_chunks_for_ai(response, budget, config=self.query_config)
        AUDIT_LOGGER.info(
            {
                "event": "context",
                "source_id": resolved.source_id,
                "query": text,
                "sources": [result.chunk.id for result in response.results],
                "max_tokens": budget,
            }
        )
        return context

    # internals -----------------------------------------------------------

    def _lookup(self, source_id: str) -> Optional[IngestedDocument]:
        document = self._documents.get(source_id)
        if document is not None:
            return document
        document = self.cache.get(source_id)
        if document is not None:
            LOGGER.info("Restored %s from cache", source_id)
            self._documents[source_id] = document
        return document

    def _resolve(self, document: DocumentRef) -> IngestedDocument:
        if isinstance(document, IngestedDocument):
            return document
        source_id = document if document is not None else self._current_id
        if source_id is None:
            raise IndexUnavailableError("<current>")
        resolved = self._lookup(source_id)
        if resolved is None:
            raise IndexUnavailableError(source_id)
        return resolved

    async def _ingest(
        self, source: DocumentSource, source_id: str, token: CancellationToken
    ) -> IngestedDocument:
        started = time.perf_counter()
        try:
            data = await source.read(timeout=self.settings.fetch_timeout_seconds, client=self.client)
            token.raise_if_cancelled()
            document = await asyncio.to_thread(
                self.pipeline.run,
                data,
                source_id=source_id,
                file_name=source.file_name,
                url=source.url,
                token=token,
            )
            token.raise_if_cancelled()
        except IngestionCancelledError:
            LOGGER.info("Ingestion of %s cancelled: %s", source_id, token.reason)
            raise
        except TaxDocError as error:
            emit_exception(
                module=__name__,
                error=error,
                source_id=source_id,
                suggestion="retry later" if error.retryable else "check the source document",
            )
            raise

        self._documents[source_id] = document
        self._current_id = source_id
        try:
            self.cache.set(source_id, document)
        except OSError as error:
            LOGGER.warning("Failed to persist %s to the document cache: %s", source_id, error)

        duration_ms = (time.perf_counter() - started) * 1000.0
        emit_ingest_event(
            "ingest.complete",
            source_id=source_id,
            file_name=source.file_name,
            size_bytes=len(data),
            duration_ms=duration_ms,
            language=document.metadata.get("language"),
            pages=document.page_count,
            chunks=len(document.chunks),
        )
        AUDIT_LOGGER.info(
            {
                "event": "ingest",
                "source_id": source_id,
                "file_name": source.file_name,
                "url": source.url,
                "chunk_count": len(document.chunks),
            }
        )
        return document

    def _finish(self, source_id: str, run: _Run) -> None:
        if self._in_flight.get(source_id) is run:
            del self._in_flight[source_id]
        if not run.task.cancelled():
            # mark the outcome as retrieved; awaiters re-raise it themselves
            run.task.exception()


@lru_cache()
def get_document_manager() -> DocumentManager:
    """FastAPI dependency returning the shared :class:`DocumentManager`."""

    return DocumentManager(settings=Settings.from_env())


def reset_document_manager() -> None:
    """Clear the cached manager (primarily for testing)."""

    get_document_manager.cache_clear()
