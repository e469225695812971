"""Ingestion and retrieval of legal PDF documents for tax-assistant prompts."""

from .errors import (
    EmptyResultWarning,
    ExtractionError,
    IndexUnavailableError,
    IngestionCancelledError,
    NetworkError,
    TaxDocError,
)
from .ingest import DocumentSource, IngestedDocument
from .manager import DocumentManager, DocumentState, get_document_manager
from .query import QueryResponse, QueryResult, expand_query, get_chunks_for_ai, query_document

__version__ = "0.1.0"

__all__ = [
    "DocumentManager",
    "DocumentSource",
    "DocumentState",
    "EmptyResultWarning",
    "ExtractionError",
    "IndexUnavailableError",
    "IngestedDocument",
    "IngestionCancelledError",
    "NetworkError",
    "QueryResponse",
    "QueryResult",
    "TaxDocError",
    "expand_query",
    "get_chunks_for_ai",
    "get_document_manager",
    "query_document",
]
