from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class DocumentCreateRequest(BaseModel):
    name: str = Field(min_length=1)
    content: str = Field(min_length=1)
    document_id: str | None = Field(default=None, min_length=1, max_length=64)


class DocumentResponse(BaseModel):
    id: str
    name: str
    chunk_count: int
    size_bytes: int | None = None
    page_count: int | None = None
    created_at: datetime | None = None


class DocumentListResponse(BaseModel):
    documents: list[DocumentResponse]


class DeleteResponse(BaseModel):
    document_id: str
    deleted_chunks: int


class ChatRequest(BaseModel):
    query: str = Field(min_length=1)
    document_ids: list[str] | None = None
    top_k: int | None = Field(default=None, ge=1, le=20)
    score_threshold: float | None = Field(default=None, ge=0.0, le=1.0)


class CitationMetadataSchema(BaseModel):
    source: str
    chunk_index: int | None = None


class CitationSchema(BaseModel):
    id: str
    snippet: str
    content: str
    metadata: CitationMetadataSchema


class ChatResponse(BaseModel):
    response: str
    citations: list[CitationSchema]
    is_valid: bool


class StatsResponse(BaseModel):
    backend: str
    tenant_id: str
    chunk_count: int
    embedding_dimension: int
    document_count: int | None = None
    collection: str | None = None


class EmbeddingHealthResponse(BaseModel):
    provider: str
    model: str | None
    configured_dimension: int
    expected_dimension: int | None
    ok: bool
    status: str
    detail: str | None = None
    action: str | None = None
