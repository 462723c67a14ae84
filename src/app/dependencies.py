from __future__ import annotations

import logging
from functools import lru_cache

from fastapi import Request

from src.app.settings import settings
from src.metadata.store import DocumentRegistry
from src.rag.embeddings import (
    EmbeddingClient,
    EmbeddingConfigError,
    EmbeddingConfigReport,
    HashEmbeddingClient,
    OpenAIEmbeddingClient,
    build_embedding_config_report,
)
from src.rag.llm import CompletionClient, build_completion_client
from src.rag.pipeline import RAGPipeline
from src.vectorstore.base import VectorIndex
from src.vectorstore.inmemory import InMemoryVectorStore
from src.vectorstore.milvus import MilvusConfig, MilvusVectorStore

logger = logging.getLogger(__name__)


@lru_cache
def get_pipeline() -> RAGPipeline:
    embedder = build_embedder()
    return RAGPipeline(
        index=build_vectorstore(embedder),
        embedder=embedder,
        completion=build_completion(),
        config=settings.rag_config,
    )


def reset_pipeline_cache() -> None:
    get_pipeline.cache_clear()
    get_document_registry.cache_clear()


@lru_cache
def get_document_registry() -> DocumentRegistry | None:
    if not settings.document_db_uri:
        return None
    return DocumentRegistry(settings.document_db_uri)


def get_embedding_config_report() -> EmbeddingConfigReport:
    provider = settings.embedding_provider
    model = settings.embedding_model if provider.lower().strip() == "openai" else None
    return build_embedding_config_report(
        provider, model, settings.embedding_dimension, api_key=settings.llm_api_key
    )


def resolve_tenant_id(request: Request) -> str:
    """Tenant from the X-Tenant-ID header, else the configured default."""
    header = request.headers.get("x-tenant-id")
    if header and header.strip():
        return header.strip()
    return settings.default_tenant_id


def build_embedder() -> EmbeddingClient:
    provider = settings.embedding_provider.lower().strip()
    if provider == "hash":
        return HashEmbeddingClient(dimension=settings.embedding_dimension)
    if provider == "openai":
        headers: dict[str, str] = {}
        if settings.app_url:
            headers["HTTP-Referer"] = settings.app_url
        if settings.app_name:
            headers["X-Title"] = settings.app_name
        return OpenAIEmbeddingClient(
            api_key=settings.llm_api_key or "",
            model=settings.embedding_model,
            base_url=settings.llm_base_url,
            dimension=settings.embedding_dimension,
            batch_size=settings.embedding_batch_size,
            batch_delay=settings.embedding_batch_delay,
            timeout=settings.llm_timeout,
            extra_headers=headers,
        )
    raise EmbeddingConfigError(f"Unsupported embedding provider: {provider}")


def build_vectorstore(embedder: EmbeddingClient) -> VectorIndex:
    backend = settings.vectorstore_backend.lower().strip()
    if backend == "milvus":
        config = MilvusConfig(
            uri=settings.milvus_uri,
            token=settings.milvus_token,
            collection=settings.milvus_collection,
            dimension=embedder.dimension,
            consistency=settings.milvus_consistency,
            index_type=settings.milvus_index_type,
            nlist=settings.milvus_nlist,
            nprobe=settings.milvus_nprobe,
        )
        return MilvusVectorStore(config)
    return InMemoryVectorStore(dimension=embedder.dimension)


def build_completion() -> CompletionClient | None:
    """Completion client, or None when no API key is configured."""
    if not settings.llm_api_key:
        logger.warning("llm_api_key_missing", extra={"model": settings.llm_model})
        return None
    return build_completion_client(
        api_key=settings.llm_api_key,
        model=settings.llm_model,
        base_url=settings.llm_base_url,
        temperature=settings.llm_temperature,
        max_tokens=settings.llm_max_tokens,
        timeout=settings.llm_timeout,
        app_name=settings.app_name,
        app_url=settings.app_url,
    )
