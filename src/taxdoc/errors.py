"""Exceptions raised by the ingestion and retrieval pipeline."""
from __future__ import annotations


class TaxDocError(RuntimeError):
    """Base class for all pipeline errors."""

    retryable: bool = False

    def __init__(self, message: str, *, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.__cause__ = cause


class ExtractionError(TaxDocError):
    """Raised when a source PDF is unreadable or yields no text on any page."""


class NetworkError(TaxDocError):
    """Raised when fetching a remote source fails. Callers may retry."""

    retryable = True


class IndexUnavailableError(TaxDocError):
    """Raised when a document is queried before its ingestion has completed."""

    retryable = True

    def __init__(self, source_id: str, *, cause: Exception | None = None) -> None:
        super().__init__(f"Document {source_id!r} is not ingested yet", cause=cause)
        self.source_id = source_id


class IngestionCancelledError(TaxDocError):
    """Raised inside an ingestion run that was superseded or cancelled."""


class EmptyResultWarning(UserWarning):
    """A query matched nothing directly and was answered from a fallback tier."""


__all__ = [
    "EmptyResultWarning",
    "ExtractionError",
    "IndexUnavailableError",
    "IngestionCancelledError",
    "NetworkError",
    "TaxDocError",
]
