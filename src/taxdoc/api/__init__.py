"""HTTP adapters for the document manager."""

from .documents import router

__all__ = ["router"]
