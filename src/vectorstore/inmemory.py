from __future__ import annotations

"""In-memory vector store for local testing and small corpora."""

import math
import threading
from dataclasses import dataclass, field
from typing import Iterable, Sequence

from src.rag.types import Chunk, RetrievalResult, ScoredChunk
from src.vectorstore.base import KeyedLocks, clamp_score, require_embeddings, tenant_matches


@dataclass(frozen=True)
class _DocumentEntry:
    """Immutable snapshot of one document's indexed chunks."""
    tenant_id: str | None
    chunks: tuple[Chunk, ...]
    norms: tuple[float, ...]


@dataclass
class InMemoryVectorStore:
    """In-memory vector store with cosine similarity search.

    Each document is held as one immutable entry. Mutations build the new
    entry first and then swap it into the registry, and searches take a
    snapshot of the registry, so a search never sees half of a document.
    """
    dimension: int = 0
    _entries: dict[str, _DocumentEntry] = field(default_factory=dict, init=False, repr=False)
    _registry_lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)
    _document_locks: KeyedLocks = field(default_factory=KeyedLocks, init=False, repr=False)

    def add(self, document_id: str, chunks: Sequence[Chunk], tenant_id: str | None = None) -> int:
        """Store chunks for a document, replacing any previous set."""
        require_embeddings(chunks)
        ordered = tuple(sorted(chunks, key=lambda chunk: chunk.metadata.chunk_index))
        norms = tuple(_norm(chunk.embedding or ()) for chunk in ordered)
        entry = _DocumentEntry(tenant_id=tenant_id, chunks=ordered, norms=norms)
        with self._document_locks.get(document_id):
            with self._registry_lock:
                # re-adding moves the document to the end of the insertion order
                self._entries.pop(document_id, None)
                self._entries[document_id] = entry
        return len(ordered)

    def remove(self, document_id: str) -> int:
        """Remove a document's chunks. Unknown documents are ignored."""
        with self._document_locks.get(document_id):
            with self._registry_lock:
                entry = self._entries.pop(document_id, None)
        return len(entry.chunks) if entry else 0

    def has(self, document_id: str) -> bool:
        with self._registry_lock:
            return document_id in self._entries

    def tenant_of(self, document_id: str) -> str | None:
        with self._registry_lock:
            entry = self._entries.get(document_id)
        return None if entry is None else entry.tenant_id or ""

    def count(self, tenant_id: str | None = None) -> int:
        """Count indexed chunks, optionally for a single tenant."""
        with self._registry_lock:
            entries = list(self._entries.values())
        return sum(len(entry.chunks) for entry in entries if tenant_matches(entry.tenant_id, tenant_id))

    def search(
        self,
        query_vector: Sequence[float],
        top_k: int,
        score_threshold: float,
        document_ids: Iterable[str] | None = None,
        tenant_id: str | None = None,
    ) -> RetrievalResult:
        """Rank chunks in scope by cosine similarity and apply top-k and threshold."""
        if top_k <= 0:
            return RetrievalResult.empty()
        with self._registry_lock:
            entries = list(self._entries.items())
        allowed = set(document_ids) if document_ids else None
        query_norm = _norm(query_vector)

        scored: list[ScoredChunk] = []
        for document_id, entry in entries:
            if not tenant_matches(entry.tenant_id, tenant_id):
                continue
            if allowed is not None and document_id not in allowed:
                continue
            for chunk, norm in zip(entry.chunks, entry.norms):
                score = _cosine(query_vector, query_norm, chunk.embedding or (), norm)
                scored.append(ScoredChunk(chunk=chunk, score=score))
        # sort is stable, so equal scores keep insertion order
        scored.sort(key=lambda item: item.score, reverse=True)
        kept = [item for item in scored if item.score >= score_threshold][:top_k]
        return RetrievalResult(chunks=kept, is_empty=not kept)

    def stats(self) -> dict[str, int | str]:
        """Return basic stats for the vector store."""
        with self._registry_lock:
            documents = len(self._entries)
        return {
            "backend": "memory",
            "document_count": documents,
            "chunk_count": self.count(),
            "embedding_dimension": self.dimension,
        }

    def health(self) -> dict[str, str | bool]:
        return {"backend": "memory", "ok": True}


def _norm(vector: Sequence[float]) -> float:
    return math.sqrt(sum(value * value for value in vector))


def _cosine(
    query: Sequence[float], query_norm: float, vector: Sequence[float], norm: float
) -> float:
    if query_norm == 0.0 or norm == 0.0:
        return 0.0
    dot = sum(x * y for x, y in zip(query, vector))
    return clamp_score(dot / (query_norm * norm))
