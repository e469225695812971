"""Byte sources for documents: in-memory uploads and fetchable URLs."""
from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Optional
from urllib.parse import urlparse

import httpx

from taxdoc.errors import NetworkError

LOGGER = logging.getLogger(__name__)

DEFAULT_FETCH_TIMEOUT = 30.0
_ACCEPTED_CONTENT_TYPES = ("pdf", "octet-stream")


def hash_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


@dataclass(frozen=True, slots=True)
class DocumentSource:
    """Either raw PDF bytes or a URL pointing at a PDF."""

    data: Optional[bytes] = None
    url: Optional[str] = None
    file_name: Optional[str] = None

    def __post_init__(self) -> None:
        if (self.data is None) == (self.url is None):
            raise ValueError("Exactly one of data or url must be provided")

    @classmethod
    def from_bytes(cls, data: bytes, file_name: str | None = None) -> "DocumentSource":
        return cls(data=bytes(data), file_name=file_name)

    @classmethod
    def from_url(cls, url: str) -> "DocumentSource":
        name = PurePosixPath(urlparse(url).path).name or None
        return cls(url=url, file_name=name)

    @property
    def source_id(self) -> str:
        """Stable cache key: content hash for buffers, URL hash for URLs."""

        if self.data is not None:
            return hash_bytes(self.data)
        assert self.url is not None
        return hash_bytes(self.url.encode("utf-8"))

    async def read(
        self,
        *,
        timeout: float = DEFAULT_FETCH_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ) -> bytes:
        if self.data is not None:
            return self.data
        assert self.url is not None
        return await fetch_pdf(self.url, timeout=timeout, client=client)


async def fetch_pdf(
    url: str,
    *,
    timeout: float = DEFAULT_FETCH_TIMEOUT,
    client: httpx.AsyncClient | None = None,
) -> bytes:
    """Download a PDF, converting every transport failure into :class:`NetworkError`."""

    if PurePosixPath(urlparse(url).path).suffix.lower() != ".pdf":
        LOGGER.warning("URL does not end with .pdf: %s", url)

    try:
        if client is not None:
            response = await client.get(url, timeout=timeout, follow_redirects=True)
        else:
            async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as owned:
                response = await owned.get(url)
    except httpx.TimeoutException as exc:
        raise NetworkError(f"Timed out after {timeout:.0f}s fetching {url}", cause=exc) from exc
    except httpx.HTTPError as exc:
        raise NetworkError(f"Failed to fetch {url}: {exc}", cause=exc) from exc

    if response.status_code >= 400:
        raise NetworkError(
            f"Failed to load PDF: {response.status_code} {response.reason_phrase} for {url}"
        )

    content_type = response.headers.get("content-type", "")
    if content_type and not any(kind in content_type for kind in _ACCEPTED_CONTENT_TYPES):
        LOGGER.warning("Unexpected content type %s for %s", content_type, url)

    return response.content
