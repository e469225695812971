"""Structure-aware chunking of the document outline into token-bounded units."""
from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from .hierarchy import flatten_structure
from .models import Chunk, PageRange, StructureNode

_SENTENCE_SPLIT_RE = re.compile(r"(?<=[.!?])\s+")
CHUNK_SEPARATOR = "\n\n"
LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class ChunkingConfig:
    target_tokens: int = 600
    min_tokens: int = 500
    max_tokens: int = 800


def estimate_tokens(text: str) -> int:
    return math.ceil(len(text) / 4)


def split_into_sentences(text: str) -> List[str]:
    return [sentence.strip() for sentence in _SENTENCE_SPLIT_RE.split(text) if sentence.strip()]


@dataclass(slots=True)
class _OpenChunk:
    section_path: Tuple[str, ...]
    page_range: PageRange
    contents: List[str] = field(default_factory=list)
    node_ids: List[str] = field(default_factory=list)

    @property
    def text(self) -> str:
        return CHUNK_SEPARATOR.join(self.contents)

    def add(self, node: StructureNode) -> None:
        self.contents.append(node.text)
        self.node_ids.append(node.id)
        self.page_range = self.page_range.union(node.page_range)
        if len(node.section_path) > len(self.section_path):
            self.section_path = node.section_path


class StructuralChunker:
    """Pack outline nodes into chunks, preferring heading boundaries."""

    def __init__(self, config: Optional[ChunkingConfig] = None) -> None:
        self.config = config or ChunkingConfig()

    def chunk(self, roots: Sequence[StructureNode]) -> List[Chunk]:
        chunks: List[Chunk] = []
        current: Optional[_OpenChunk] = None

        for node in flatten_structure(roots):
            if estimate_tokens(node.text) > self.config.max_tokens:
                if current is not None:
                    chunks.append(self._finalize(current, len(chunks)))
                    current = None
                for part in self._split_oversized(node.text):
                    chunks.append(
                        Chunk(
                            id=f"chunk_{len(chunks)}",
                            content=part,
                            section_path=node.section_path,
                            page_range=node.page_range,
                            node_ids=(node.id,),
                            token_estimate=estimate_tokens(part),
                        )
                    )
                continue

            if current is not None and self._should_close(current, node):
                chunks.append(self._finalize(current, len(chunks)))
                current = None
            if current is None:
                current = _OpenChunk(section_path=node.section_path, page_range=node.page_range)
            current.add(node)

        if current is not None:
            chunks.append(self._finalize(current, len(chunks)))

        LOGGER.debug("Produced %s chunks", len(chunks))
        return chunks

    def _should_close(self, current: _OpenChunk, node: StructureNode) -> bool:
        current_tokens = estimate_tokens(current.text)
        combined = estimate_tokens(current.text + CHUNK_SEPARATOR + node.text)
        if combined > self.config.max_tokens:
            return True
        return (
            current_tokens >= self.config.min_tokens
            and node.is_heading
            and combined > self.config.target_tokens
        )

    def _split_oversized(self, text: str) -> List[str]:
        """Greedily pack sentences into parts of at most ``max_tokens``."""

        parts: List[str] = []
        buffer: List[str] = []
        for sentence in split_into_sentences(text):
            candidate = " ".join(buffer + [sentence])
            if buffer and estimate_tokens(candidate) > self.config.max_tokens:
                parts.append(" ".join(buffer))
                buffer = [sentence]
            else:
                buffer.append(sentence)
        if buffer:
            parts.append(" ".join(buffer))
        return parts

    @staticmethod
    def _finalize(current: _OpenChunk, index: int) -> Chunk:
        text = current.text
        return Chunk(
            id=f"chunk_{index}",
            content=text,
            section_path=current.section_path,
            page_range=current.page_range,
            node_ids=tuple(current.node_ids),
            token_estimate=estimate_tokens(text),
        )
