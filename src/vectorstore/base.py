from __future__ import annotations

"""Shared contract and helpers for similarity indexes."""

import threading
from typing import Iterable, Protocol, Sequence

from src.rag.types import Chunk, RetrievalResult

ALL_TENANTS = "*"


class VectorIndex(Protocol):
    """Similarity index over embedded chunks, scoped by tenant and document."""

    def add(self, document_id: str, chunks: Sequence[Chunk], tenant_id: str | None = None) -> int:
        """Store a document's chunks, replacing any previous set for that document."""
        raise NotImplementedError

    def remove(self, document_id: str) -> int:
        """Drop a document's chunks; absent documents are a no-op."""
        raise NotImplementedError

    def has(self, document_id: str) -> bool:
        raise NotImplementedError

    def tenant_of(self, document_id: str) -> str | None:
        """Owning tenant of an indexed document (``""`` when unscoped), or None if absent."""
        raise NotImplementedError

    def count(self, tenant_id: str | None = None) -> int:
        raise NotImplementedError

    def search(
        self,
        query_vector: Sequence[float],
        top_k: int,
        score_threshold: float,
        document_ids: Iterable[str] | None = None,
        tenant_id: str | None = None,
    ) -> RetrievalResult:
        raise NotImplementedError

    def stats(self) -> dict[str, int | str]:
        raise NotImplementedError

    def health(self) -> dict[str, str | bool]:
        raise NotImplementedError


def clamp_score(score: float) -> float:
    """Map a cosine score into [0, 1]; anti-correlated vectors count as irrelevant."""
    return min(1.0, max(0.0, score))


def tenant_matches(stored: str | None, requested: str | None) -> bool:
    """Exact, case-sensitive match; ``None`` or ``"*"`` matches every tenant."""
    if requested is None or requested == ALL_TENANTS:
        return True
    return (stored or "") == requested


def require_embeddings(chunks: Sequence[Chunk]) -> None:
    for chunk in chunks:
        if chunk.embedding is None:
            raise ValueError(f"Chunk {chunk.id} has no embedding")


class KeyedLocks:
    """One lock per key so mutations of the same document serialize."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    def get(self, key: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock
