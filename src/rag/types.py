from __future__ import annotations

"""Core data types for chunks, retrieval and citations."""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class RAGConfig:
    """Pipeline tuning shared by every stage."""
    chunk_size: int = 500
    chunk_overlap: int = 100
    top_k: int = 8
    score_threshold: float = 0.1


@dataclass(frozen=True)
class ChunkMetadata:
    """Position of a chunk inside the normalized document text."""
    document_name: str
    chunk_index: int
    start_char: int
    end_char: int


@dataclass(frozen=True)
class Chunk:
    """Contiguous span of a document."""
    id: str
    document_id: str
    content: str
    metadata: ChunkMetadata
    embedding: tuple[float, ...] | None = None

    def with_embedding(self, embedding: list[float]) -> Chunk:
        """Return a copy carrying the embedding vector."""
        return Chunk(
            id=self.id,
            document_id=self.document_id,
            content=self.content,
            metadata=self.metadata,
            embedding=tuple(embedding),
        )


@dataclass(frozen=True)
class ScoredChunk:
    """Chunk with similarity score from retrieval."""
    chunk: Chunk
    score: float


@dataclass(frozen=True)
class RetrievalResult:
    """Ranked retrieval output.

    ``is_empty`` is the signal consumers branch on: it is set when nothing
    passed the threshold or when there was no corpus to search.
    """
    chunks: list[ScoredChunk] = field(default_factory=list)
    is_empty: bool = True

    @classmethod
    def empty(cls) -> RetrievalResult:
        return cls(chunks=[], is_empty=True)


@dataclass(frozen=True)
class CitationMetadata:
    source: str
    chunk_index: int | None = None


@dataclass(frozen=True)
class CitationData:
    """Per-request citation record (``c1``, ``c2``...), not a chunk reference."""
    id: str
    snippet: str
    content: str
    metadata: CitationMetadata

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "snippet": self.snippet,
            "content": self.content,
            "metadata": {
                "source": self.metadata.source,
                "chunk_index": self.metadata.chunk_index,
            },
        }


@dataclass(frozen=True)
class CitationContext:
    """Prompt context block plus the citations allocated for it."""
    context_string: str
    citations: list[CitationData]
