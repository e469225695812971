"""Keyed stores for ingested documents."""
from __future__ import annotations

import json
import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

from taxdoc.ingest.hierarchy import flatten_structure
from taxdoc.ingest.models import (
    Chunk,
    NormalizedPage,
    Page,
    PageRange,
    StructureNode,
    TextFragment,
)
from taxdoc.ingest.pipeline import IngestedDocument, index_chunks

LOGGER = logging.getLogger(__name__)

_SAFE_KEY_RE = re.compile(r"[^A-Za-z0-9_.-]")


class DocumentCache(Protocol):
    def get(self, key: str) -> Optional[IngestedDocument]:
        ...

    def set(self, key: str, document: IngestedDocument) -> None:
        ...


class InMemoryDocumentCache:
    """Process-local cache; documents are shared by reference."""

    def __init__(self) -> None:
        self._documents: Dict[str, IngestedDocument] = {}

    def get(self, key: str) -> Optional[IngestedDocument]:
        return self._documents.get(key)

    def set(self, key: str, document: IngestedDocument) -> None:
        self._documents[key] = document

    def __contains__(self, key: object) -> bool:
        return key in self._documents

    def __len__(self) -> int:
        return len(self._documents)


def _range_payload(page_range: PageRange) -> List[int]:
    return [page_range.start, page_range.end]


def document_to_payload(document: IngestedDocument) -> Dict[str, Any]:
    return {
        "source_id": document.source_id,
        "ingested_at": document.ingested_at.isoformat(),
        "metadata": dict(document.metadata),
        "pages": [
            {
                "page_number": page.page_number,
                "fragments": [
                    [f.text, f.font_size, f.x, f.y, f.font_name] for f in page.fragments
                ],
            }
            for page in document.pages
        ],
        "normalized_pages": [
            {"page_number": page.page_number, "text": page.text}
            for page in document.normalized_pages
        ],
        "nodes": [
            {
                "id": node.id,
                "type": node.type,
                "level": node.level,
                "text": node.text,
                "page_number": node.page_number,
                "page_range": _range_payload(node.page_range),
                "section_path": list(node.section_path),
                "parent_id": node.parent_id,
                "numbering": node.numbering,
            }
            for node in flatten_structure(document.structure)
        ],
        "chunks": [
            {
                "id": chunk.id,
                "content": chunk.content,
                "section_path": list(chunk.section_path),
                "page_range": _range_payload(chunk.page_range),
                "node_ids": list(chunk.node_ids),
                "token_estimate": chunk.token_estimate,
            }
            for chunk in document.chunks
        ],
    }


def document_from_payload(payload: Dict[str, Any], *, search_backend: str = "bm25") -> IngestedDocument:
    """Rebuild a document, re-creating its outline and search index from the stored chunks."""

    pages = tuple(
        Page(
            page_number=int(page["page_number"]),
            fragments=tuple(
                TextFragment(
                    text=text,
                    font_size=float(size),
                    x=float(x),
                    y=float(y),
                    page_number=int(page["page_number"]),
                    font_name=font_name,
                )
                for text, size, x, y, font_name in page["fragments"]
            ),
        )
        for page in payload["pages"]
    )
    normalized = tuple(
        NormalizedPage(page_number=int(page["page_number"]), text=page["text"])
        for page in payload["normalized_pages"]
    )

    # Nodes are stored in pre-order, so every parent precedes its children.
    by_id: Dict[str, StructureNode] = {}
    roots: List[StructureNode] = []
    for record in payload["nodes"]:
        node = StructureNode(
            id=record["id"],
            type=record["type"],
            level=int(record["level"]),
            text=record["text"],
            page_number=int(record["page_number"]),
            page_range=PageRange(*record["page_range"]),
            section_path=tuple(record["section_path"]),
            parent_id=record.get("parent_id"),
            numbering=record.get("numbering"),
        )
        by_id[node.id] = node
        if node.parent_id is None:
            roots.append(node)
        else:
            by_id[node.parent_id].children.append(node)

    chunks = tuple(
        Chunk(
            id=record["id"],
            content=record["content"],
            section_path=tuple(record["section_path"]),
            page_range=PageRange(*record["page_range"]),
            node_ids=tuple(record["node_ids"]),
            token_estimate=int(record["token_estimate"]),
        )
        for record in payload["chunks"]
    )
    return IngestedDocument(
        source_id=payload["source_id"],
        pages=pages,
        normalized_pages=normalized,
        structure=tuple(roots),
        chunks=chunks,
        index=index_chunks(chunks, search_backend),
        ingested_at=datetime.fromisoformat(payload["ingested_at"]),
        metadata=dict(payload.get("metadata", {})),
    )


class JsonFileDocumentCache:
    """Persist each document as ``<cache_dir>/<key>.json`` for reuse across processes."""

    def __init__(self, cache_dir: Path | str, *, search_backend: str = "bm25") -> None:
        self.cache_dir = Path(cache_dir)
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self.search_backend = search_backend

    def _path_for(self, key: str) -> Path:
        return self.cache_dir / f"{_SAFE_KEY_RE.sub('_', key)}.json"

    def get(self, key: str) -> Optional[IngestedDocument]:
        path = self._path_for(key)
        if not path.exists():
            return None
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
            document = document_from_payload(payload, search_backend=self.search_backend)
        except (OSError, ValueError, KeyError, TypeError) as error:
            LOGGER.warning("Failed to load cached document from %s: %s", path, error)
            return None
        LOGGER.debug("Loaded cached document %s with %s chunks", key, len(document.chunks))
        return document

    def set(self, key: str, document: IngestedDocument) -> None:
        path = self._path_for(key)
        tmp_path = path.with_suffix(".tmp")
        tmp_path.write_text(json.dumps(document_to_payload(document), ensure_ascii=False), encoding="utf-8")
        tmp_path.replace(path)
