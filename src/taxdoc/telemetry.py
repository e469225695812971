"""Structured lifecycle events for ingestion and retrieval."""

from __future__ import annotations

import logging
import time
import traceback
from contextlib import contextmanager
from typing import Any, Iterator, Optional

LOGGER = logging.getLogger("taxdoc.telemetry")


def _format_exception(error: BaseException) -> str:
    return "".join(traceback.format_exception(error.__class__, error, error.__traceback__))


def log_event(
    logger: Optional[logging.Logger],
    step: str,
    *,
    level: str = "info",
    source_id: str | None = None,
    duration_ms: float | None = None,
    exc: BaseException | str | None = None,
    details: dict[str, Any] | None = None,
    **payload: Any,
) -> None:
    """Emit a structured log event."""

    logger = logger or LOGGER
    event: dict[str, Any] = {"step": step, "module": logger.name}
    if source_id:
        event["source_id"] = source_id
    if duration_ms is not None:
        event["duration_ms"] = round(duration_ms, 3)
    if details is not None:
        event["details"] = details
    event.update(payload)

    exc_info = None
    if exc is not None:
        if isinstance(exc, BaseException):
            event["exc"] = _format_exception(exc)
            exc_info = (exc.__class__, exc, exc.__traceback__)
        else:
            event["exc"] = str(exc)

    log_method = getattr(logger, level.lower(), logger.info)
    log_method(event, exc_info=exc_info)


def emit_ingest_event(
    step: str,
    *,
    source_id: str,
    file_name: str | None = None,
    size_bytes: int | None = None,
    duration_ms: float | None = None,
    language: str | None = None,
    pages: int | None = None,
    chunks: int | None = None,
) -> None:
    details = {
        "file": file_name,
        "size_bytes": size_bytes,
        "language": language,
        "pages": pages,
        "chunks": chunks,
    }
    log_event(LOGGER, step, source_id=source_id, duration_ms=duration_ms, details=details)


def emit_retriever_event(
    *,
    query: str,
    limit: int,
    tier: str,
    results: list[dict[str, Any]],
    duration_ms: float,
) -> None:
    details = {
        "query_preview": query[:120],
        "limit": limit,
        "tier": tier,
        "results": results,
    }
    log_event(LOGGER, "retriever.search", duration_ms=duration_ms, details=details)


def emit_context_event(*, sources: list[str], context_tokens: int, truncated: bool) -> None:
    details = {
        "sources": sources,
        "context_tokens": context_tokens,
        "truncated": truncated,
    }
    log_event(LOGGER, "context.compose", details=details)


def emit_exception(
    *,
    module: str,
    error: BaseException,
    source_id: str | None = None,
    suggestion: str | None = None,
) -> None:
    details = {"module": module}
    if suggestion:
        details["suggestion"] = suggestion
    log_event(
        LOGGER,
        "exception",
        level="error",
        source_id=source_id,
        details=details,
        exc=error,
    )


@contextmanager
def traced_duration(step: str, *, logger: Optional[logging.Logger] = None, **fields: Any) -> Iterator[None]:
    start = time.perf_counter()
    log_event(logger or LOGGER, f"{step}.start", level="debug", details=fields)
    try:
        yield
    except Exception as error:
        log_event(logger or LOGGER, f"{step}.error", level="warning", details=fields, exc=error)
        raise
    finally:
        end = time.perf_counter()
        log_event(
            logger or LOGGER,
            f"{step}.complete",
            level="debug",
            duration_ms=(end - start) * 1000.0,
            details=fields,
        )
