"""FastAPI application exposing the document retrieval service."""
import logging

from fastapi import Depends, FastAPI
from fastapi.responses import PlainTextResponse

from taxdoc.api.documents import router as documents_router
from taxdoc.logging_config import configure_logging
from taxdoc.manager import DocumentManager, get_document_manager

configure_logging()

LOGGER = logging.getLogger(__name__)

app = FastAPI(title="Tax Document Retrieval API")
app.include_router(documents_router)


@app.get("/", response_class=PlainTextResponse)
def read_root() -> str:
    """Healthcheck endpoint for the service."""
    return "ok"


@app.get("/healthz")
def healthcheck(manager: DocumentManager = Depends(get_document_manager)) -> dict[str, object]:
    """Liveness probe reporting the loaded document catalog."""

    current = manager.current
    return {
        "status": "ok",
        "documents": len(manager.documents),
        "current": current.source_id if current is not None else None,
        "search_backend": manager.settings.search_backend,
    }
