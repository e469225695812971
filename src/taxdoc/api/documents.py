"""API router exposing document ingestion and retrieval."""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile
from pydantic import BaseModel, Field

from taxdoc.errors import (
    ExtractionError,
    IndexUnavailableError,
    IngestionCancelledError,
    NetworkError,
    TaxDocError,
)
from taxdoc.ingest.hierarchy import section_path_string
from taxdoc.ingest.pipeline import IngestedDocument
from taxdoc.ingest.sources import DocumentSource
from taxdoc.manager import DocumentManager, DocumentState, get_document_manager

router = APIRouter(prefix="/documents", tags=["documents"])

RETRY_AFTER_SECONDS = "5"


class DocumentSummary(BaseModel):
    """Description of an ingested document."""

    source_id: str
    state: str
    page_count: int | None = None
    chunk_count: int | None = None
    ingested_at: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class FetchRequest(BaseModel):
    url: str = Field(..., min_length=1, description="Location of the PDF to ingest.")
    force_reingest: bool = False


class SearchRequest(BaseModel):
    query: str = Field(..., min_length=1, description="Free-text question or keywords.")
    limit: int | None = Field(None, ge=1, le=100)
    min_score: float | None = Field(None, ge=0.0, le=1.0)


class SearchHit(BaseModel):
    chunk_id: str
    score: float
    relevance: str
    section: str
    pages: str
    content: str


class SearchResponse(BaseModel):
    source_id: str
    query: str
    total_results: int
    results: list[SearchHit]


class ContextRequest(BaseModel):
    query: str = Field(..., min_length=1)
    max_tokens: int | None = Field(None, ge=1, le=32000)


class ContextResponse(BaseModel):
    source_id: str
    query: str
    context: str


def _summarise(document: IngestedDocument, state: DocumentState) -> DocumentSummary:
    return DocumentSummary(
        source_id=document.source_id,
        state=state.value,
        page_count=document.page_count,
        chunk_count=len(document.chunks),
        ingested_at=document.ingested_at.isoformat(),
        metadata=dict(document.metadata),
    )


def _http_error(exc: TaxDocError) -> HTTPException:
    if isinstance(exc, IndexUnavailableError):
        return HTTPException(status_code=503, detail=str(exc), headers={"Retry-After": RETRY_AFTER_SECONDS})
    if isinstance(exc, ExtractionError):
        return HTTPException(status_code=422, detail=str(exc))
    if isinstance(exc, NetworkError):
        return HTTPException(status_code=502, detail=str(exc))
    if isinstance(exc, IngestionCancelledError):
        return HTTPException(status_code=409, detail=str(exc))
    return HTTPException(status_code=500, detail=str(exc))


async def _load(manager: DocumentManager, source: DocumentSource, force_reingest: bool) -> DocumentSummary:
    try:
        document = await manager.load(source, force_reingest=force_reingest)
    except TaxDocError as exc:
        raise _http_error(exc) from exc
    return _summarise(document, manager.state(document.source_id))


@router.post("", response_model=DocumentSummary)
async def upload_document(
    file: UploadFile = File(...),
    force_reingest: bool = Query(False),
    manager: DocumentManager = Depends(get_document_manager),
) -> DocumentSummary:
    """Ingest an uploaded PDF."""

    data = await file.read()
    if not data:
        raise HTTPException(status_code=400, detail="Uploaded file is empty")
    return await _load(manager, DocumentSource.from_bytes(data, file.filename), force_reingest)


@router.post("/fetch", response_model=DocumentSummary)
async def fetch_document(
    request: FetchRequest,
    manager: DocumentManager = Depends(get_document_manager),
) -> DocumentSummary:
    """Download and ingest a PDF from a URL."""

    return await _load(manager, DocumentSource.from_url(request.url), request.force_reingest)


@router.get("/{source_id}", response_model=DocumentSummary)
def get_document(
    source_id: str,
    manager: DocumentManager = Depends(get_document_manager),
) -> DocumentSummary:
    document = manager.get(source_id)
    state = manager.state(source_id)
    if document is None:
        if state is DocumentState.NOT_LOADED:
            raise HTTPException(status_code=404, detail=f"Unknown document {source_id!r}")
        return DocumentSummary(source_id=source_id, state=state.value)
    return _summarise(document, state)


@router.post("/{source_id}/query", response_model=SearchResponse)
def query_document_endpoint(
    source_id: str,
    request: SearchRequest,
    manager: DocumentManager = Depends(get_document_manager),
) -> SearchResponse:
    """Rank the chunks of an ingested document against a query."""

    response = manager.query(source_id, request.query, limit=request.limit, min_score=request.min_score)
    if response is None:
        raise _http_error(IndexUnavailableError(source_id))
    return SearchResponse(
        source_id=source_id,
        query=response.query,
        total_results=response.total_results,
        results=[
            SearchHit(
                chunk_id=result.chunk.id,
                score=result.score,
                relevance=result.relevance,
                section=section_path_string(result.chunk.section_path),
                pages=result.chunk.page_label,
                content=result.chunk.content,
            )
            for result in response.results
        ],
    )


@router.post("/{source_id}/context", response_model=ContextResponse)
def context_endpoint(
    source_id: str,
    request: ContextRequest,
    manager: DocumentManager = Depends(get_document_manager),
) -> ContextResponse:
    """Assemble a token-budgeted context string for prompt construction."""

    try:
        context = manager.context_for(source_id, request.query, request.max_tokens)
    except TaxDocError as exc:
        raise _http_error(exc) from exc
    return ContextResponse(source_id=source_id, query=request.query, context=context)
