from __future__ import annotations

"""Text normalization and boundary-aware character chunking."""

import re
from typing import Callable

from src.rag.types import Chunk, ChunkMetadata, RAGConfig

_WHITESPACE_RE = re.compile(r"\s+")
_SENTENCE_BOUNDARY_RE = re.compile(r"[.!?]\s+[A-Z]")

# Given a lookback window, return the offset just past the boundary or None.
BoundaryDetector = Callable[[str], "int | None"]


def normalize_text(text: str) -> str:
    """Collapse whitespace runs into single spaces and trim."""
    return _WHITESPACE_RE.sub(" ", text).strip()


def latin_sentence_boundary(window: str) -> int | None:
    """Find the first sentence end followed by an uppercase letter.

    The returned offset sits after the punctuation and one space, so the cut
    keeps the terminator with the preceding chunk.
    """
    match = _SENTENCE_BOUNDARY_RE.search(window)
    if match is None:
        return None
    return match.start() + 2


def chunk_text(
    text: str,
    document_id: str,
    document_name: str,
    config: RAGConfig | None = None,
    boundary: BoundaryDetector = latin_sentence_boundary,
) -> list[Chunk]:
    """Split text into overlapping chunks with offsets into the normalized text."""
    config = config or RAGConfig()
    chunk_size = config.chunk_size
    overlap = config.chunk_overlap
    if chunk_size <= 0:
        raise ValueError("chunk_size must be greater than zero")
    if overlap < 0:
        raise ValueError("chunk_overlap must not be negative")

    normalized = normalize_text(text)
    if not normalized:
        return []

    length = len(normalized)
    chunks: list[Chunk] = []
    start = 0
    chunk_index = 0
    while start < length:
        end = min(start + chunk_size, length)
        if end < length:
            lookback_start = max(start, end - int(chunk_size * 0.2))
            offset = boundary(normalized[lookback_start:end])
            if offset is not None:
                end = lookback_start + offset
            else:
                last_space = normalized.rfind(" ", 0, end + 1)
                if last_space > start:
                    end = last_space

        content = normalized[start:end].strip()
        if content:
            chunks.append(
                Chunk(
                    id=f"{document_id}-chunk-{chunk_index}",
                    document_id=document_id,
                    content=content,
                    metadata=ChunkMetadata(
                        document_name=document_name,
                        chunk_index=chunk_index,
                        start_char=start,
                        end_char=end,
                    ),
                )
            )
            chunk_index += 1

        if end >= length:
            break
        next_start = end - overlap
        if next_start <= start:
            # overlap >= the distance covered; step past the window instead of looping
            next_start = end
        start = next_start
    return chunks
