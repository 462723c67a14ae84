from __future__ import annotations

"""Milvus-backed persistent chunk index."""

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Sequence

from src.rag.embeddings import EmbeddingConfigError
from src.rag.types import Chunk, ChunkMetadata, RetrievalResult, ScoredChunk
from src.vectorstore.base import ALL_TENANTS, KeyedLocks, clamp_score, require_embeddings

logger = logging.getLogger(__name__)

_OUTPUT_FIELDS = [
    "chunk_id",
    "document_id",
    "document_name",
    "content",
    "chunk_index",
    "start_char",
    "end_char",
]


class MilvusDependencyError(RuntimeError):
    """Raised when Milvus dependencies are missing."""
    pass


@dataclass
class MilvusConfig:
    """Configuration for Milvus connection and indexing."""
    uri: str
    token: str | None
    collection: str
    dimension: int
    consistency: str = "Strong"
    index_type: str = "HNSW"
    nlist: int = 1024
    nprobe: int = 10
    hnsw_m: int = 16
    hnsw_ef_construction: int = 200
    hnsw_ef: int = 64
    insert_batch_size: int = 100
    max_content_length: int = 65535


def quote_value(value: str) -> str:
    """Quote a string literal for a Milvus boolean expression."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def build_filter_expr(
    document_ids: Iterable[str] | None = None,
    tenant_id: str | None = None,
) -> str | None:
    """Build the scope filter: tenant first, then the document subset."""
    clauses: list[str] = []
    if tenant_id is not None and tenant_id != ALL_TENANTS:
        clauses.append(f"tenant_id == {quote_value(tenant_id)}")
    ids = sorted({value for value in document_ids or [] if value})
    if ids:
        quoted = ", ".join(quote_value(value) for value in ids)
        clauses.append(f"document_id in [{quoted}]")
    if not clauses:
        return None
    return " and ".join(f"({clause})" for clause in clauses)


class MilvusVectorStore:
    """Chunk index persisted in a Milvus collection using the COSINE metric.

    Same-document mutations are serialized in-process. Visibility of a
    replace to concurrent searches follows the collection's consistency level.
    """

    def __init__(self, config: MilvusConfig) -> None:
        """Connect to Milvus and ensure the collection exists."""
        try:
            from pymilvus import connections
        except ImportError as exc:
            raise MilvusDependencyError("pymilvus is required for MilvusVectorStore") from exc
        if config.dimension <= 0:
            raise EmbeddingConfigError(
                "Embedding dimension must be set before initializing MilvusVectorStore"
            )
        self.config = config
        self._document_locks = KeyedLocks()
        connections.connect(alias="default", uri=config.uri, token=config.token)
        self.ensure_collection()

    def ensure_collection(self) -> None:
        """Create collection schema and index when missing."""
        from pymilvus import Collection, CollectionSchema, DataType, FieldSchema, utility

        if utility.has_collection(self.config.collection):
            self.collection = Collection(
                self.config.collection, consistency_level=self.config.consistency
            )
            existing_dim = self._existing_embedding_dim()
            if existing_dim is not None and existing_dim != self.config.dimension:
                raise EmbeddingConfigError(
                    "Milvus collection embedding dimension mismatch: "
                    f"{existing_dim} (collection) vs {self.config.dimension} (embedder). "
                    "Update EMBEDDING_DIMENSION or use a new MILVUS_COLLECTION."
                )
            return

        fields = [
            FieldSchema(name="chunk_id", dtype=DataType.VARCHAR, is_primary=True, max_length=512),
            FieldSchema(name="document_id", dtype=DataType.VARCHAR, max_length=256),
            FieldSchema(name="tenant_id", dtype=DataType.VARCHAR, max_length=256),
            FieldSchema(name="document_name", dtype=DataType.VARCHAR, max_length=1024),
            FieldSchema(
                name="content",
                dtype=DataType.VARCHAR,
                max_length=self.config.max_content_length,
            ),
            FieldSchema(name="chunk_index", dtype=DataType.INT64),
            FieldSchema(name="start_char", dtype=DataType.INT64),
            FieldSchema(name="end_char", dtype=DataType.INT64),
            FieldSchema(name="embedding", dtype=DataType.FLOAT_VECTOR, dim=self.config.dimension),
        ]
        schema = CollectionSchema(fields=fields, description="Document chunks")
        self.collection = Collection(
            self.config.collection,
            schema,
            consistency_level=self.config.consistency,
        )
        self._create_index()

    def _create_index(self) -> None:
        if self.config.index_type.upper() == "HNSW":
            index_params = {
                "index_type": "HNSW",
                "metric_type": "COSINE",
                "params": {
                    "M": self.config.hnsw_m,
                    "efConstruction": self.config.hnsw_ef_construction,
                },
            }
        else:
            index_params = {
                "index_type": self.config.index_type,
                "metric_type": "COSINE",
                "params": {"nlist": self.config.nlist},
            }
        self.collection.create_index(field_name="embedding", index_params=index_params)

    def _existing_embedding_dim(self) -> int | None:
        """Read embedding dimension from existing collection schema."""
        for field in self.collection.schema.fields:
            if field.name != "embedding":
                continue
            params = getattr(field, "params", None)
            dim = params.get("dim") if isinstance(params, dict) else None
            if dim is None:
                dim = getattr(field, "dim", None)
            try:
                return int(dim) if dim is not None else None
            except (TypeError, ValueError):
                return None
        return None

    def add(self, document_id: str, chunks: Sequence[Chunk], tenant_id: str | None = None) -> int:
        """Replace a document's chunks, inserting in bounded batches."""
        require_embeddings(chunks)
        rows = [self._to_row(chunk, tenant_id) for chunk in chunks]
        with self._document_locks.get(document_id):
            self.collection.delete(f"document_id == {quote_value(document_id)}")
            batch_size = max(1, self.config.insert_batch_size)
            for start in range(0, len(rows), batch_size):
                self.collection.insert(rows[start : start + batch_size])
            self.collection.flush()
        logger.info(
            "milvus_chunks_added",
            extra={"document_id": document_id, "chunks": len(rows)},
        )
        return len(rows)

    def _to_row(self, chunk: Chunk, tenant_id: str | None) -> dict[str, Any]:
        return {
            "chunk_id": chunk.id,
            "document_id": chunk.document_id,
            "tenant_id": tenant_id or "",
            "document_name": chunk.metadata.document_name,
            "content": chunk.content[: self.config.max_content_length],
            "chunk_index": chunk.metadata.chunk_index,
            "start_char": chunk.metadata.start_char,
            "end_char": chunk.metadata.end_char,
            "embedding": list(chunk.embedding or ()),
        }

    def remove(self, document_id: str) -> int:
        with self._document_locks.get(document_id):
            result = self.collection.delete(f"document_id == {quote_value(document_id)}")
            self.collection.flush()
        return int(getattr(result, "delete_count", 0) or 0)

    def has(self, document_id: str) -> bool:
        self.collection.load()
        rows = self.collection.query(
            expr=f"document_id == {quote_value(document_id)}",
            output_fields=["chunk_id"],
            limit=1,
        )
        return bool(rows)

    def tenant_of(self, document_id: str) -> str | None:
        self.collection.load()
        rows = self.collection.query(
            expr=f"document_id == {quote_value(document_id)}",
            output_fields=["tenant_id"],
            limit=1,
        )
        if not rows:
            return None
        return str(rows[0].get("tenant_id") or "")

    def count(self, tenant_id: str | None = None) -> int:
        self.collection.load()
        expr = build_filter_expr(tenant_id=tenant_id) or 'chunk_id != ""'
        rows = self.collection.query(expr=expr, output_fields=["count(*)"])
        if not rows:
            return 0
        return int(rows[0].get("count(*)", 0))

    def search(
        self,
        query_vector: Sequence[float],
        top_k: int,
        score_threshold: float,
        document_ids: Iterable[str] | None = None,
        tenant_id: str | None = None,
    ) -> RetrievalResult:
        """Nearest-neighbour search, with the threshold applied to returned hits."""
        if top_k <= 0:
            return RetrievalResult.empty()
        self.collection.load()
        if self.config.index_type.upper() == "HNSW":
            params: dict[str, Any] = {"ef": max(self.config.hnsw_ef, top_k)}
        else:
            params = {"nprobe": self.config.nprobe}
        results = self.collection.search(
            data=[list(query_vector)],
            anns_field="embedding",
            param={"metric_type": "COSINE", "params": params},
            limit=top_k,
            expr=build_filter_expr(document_ids, tenant_id),
            output_fields=_OUTPUT_FIELDS,
        )
        kept: list[ScoredChunk] = []
        for hit in results[0]:
            score = clamp_score(float(hit.score))
            if score < score_threshold:
                continue
            kept.append(ScoredChunk(chunk=self._from_entity(hit.entity), score=score))
        kept.sort(key=lambda item: item.score, reverse=True)
        kept = kept[:top_k]
        return RetrievalResult(chunks=kept, is_empty=not kept)

    def _from_entity(self, entity: Any) -> Chunk:
        return Chunk(
            id=str(entity.get("chunk_id")),
            document_id=str(entity.get("document_id")),
            content=str(entity.get("content")),
            metadata=ChunkMetadata(
                document_name=str(entity.get("document_name") or "Unknown"),
                chunk_index=int(entity.get("chunk_index")),
                start_char=int(entity.get("start_char")),
                end_char=int(entity.get("end_char")),
            ),
        )

    def stats(self) -> dict[str, int | str]:
        """Return collection stats."""
        return {
            "backend": "milvus",
            "chunk_count": int(self.collection.num_entities),
            "embedding_dimension": self.config.dimension,
            "collection": self.config.collection,
        }

    def health(self) -> dict[str, str | bool]:
        """Return collection health info."""
        try:
            _ = self.collection.num_entities
        except Exception as exc:
            return {"backend": "milvus", "ok": False, "detail": str(exc)}
        return {"backend": "milvus", "ok": True, "collection": self.config.collection}
