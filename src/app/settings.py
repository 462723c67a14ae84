from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

from src.rag.types import RAGConfig

load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in {"1", "true", "yes"}


@dataclass(frozen=True)
class Settings:
    chunk_size: int = int(os.getenv("RAG_CHUNK_SIZE", "500"))
    chunk_overlap: int = int(os.getenv("RAG_CHUNK_OVERLAP", "100"))
    top_k: int = int(os.getenv("RAG_TOP_K", "8"))
    score_threshold: float = float(os.getenv("RAG_SCORE_THRESHOLD", "0.1"))
    vectorstore_backend: str = os.getenv("RAG_VECTORSTORE", "memory")
    embedding_provider: str = os.getenv("EMBEDDING_PROVIDER", "hash")
    embedding_dimension: int = int(os.getenv("EMBEDDING_DIMENSION", "256"))
    embedding_model: str = os.getenv("EMBEDDING_MODEL", "openai/text-embedding-3-large")
    embedding_batch_size: int = int(os.getenv("EMBEDDING_BATCH_SIZE", "100"))
    embedding_batch_delay: float = float(os.getenv("EMBEDDING_BATCH_DELAY", "0.1"))
    llm_api_key: str | None = os.getenv("LLM_API_KEY") or os.getenv("OPENROUTER_API_KEY")
    llm_base_url: str = os.getenv("LLM_BASE_URL", "https://openrouter.ai/api/v1")
    llm_model: str = os.getenv("LLM_MODEL", "google/gemini-2.0-flash-001")
    llm_temperature: float = float(os.getenv("LLM_TEMPERATURE", "0.3"))
    llm_max_tokens: int = int(os.getenv("LLM_MAX_TOKENS", "1024"))
    llm_timeout: float = float(os.getenv("LLM_TIMEOUT", "60"))
    app_name: str = os.getenv("RAG_APP_NAME", "Cited Document Q&A")
    app_url: str | None = os.getenv("RAG_APP_URL")
    max_file_bytes: int = int(os.getenv("RAG_MAX_FILE_BYTES", str(10 * 1024 * 1024)))
    default_tenant_id: str = os.getenv("RAG_DEFAULT_TENANT_ID", "default")
    document_db_uri: str | None = os.getenv("RAG_DOCUMENT_DB_URI")
    log_level: str = os.getenv("RAG_LOG_LEVEL", "INFO")
    metrics_enabled: bool = _env_bool("RAG_METRICS_ENABLED", "true")
    milvus_uri: str = os.getenv("MILVUS_URI", "http://localhost:19530")
    milvus_token: str | None = os.getenv("MILVUS_TOKEN")
    milvus_collection: str = os.getenv("MILVUS_COLLECTION", "document_chunks")
    milvus_consistency: str = os.getenv("MILVUS_CONSISTENCY", "Strong")
    milvus_index_type: str = os.getenv("MILVUS_INDEX_TYPE", "HNSW")
    milvus_nlist: int = int(os.getenv("MILVUS_NLIST", "1024"))
    milvus_nprobe: int = int(os.getenv("MILVUS_NPROBE", "10"))

    @property
    def rag_config(self) -> RAGConfig:
        return RAGConfig(
            chunk_size=self.chunk_size,
            chunk_overlap=self.chunk_overlap,
            top_k=self.top_k,
            score_threshold=self.score_threshold,
        )


settings = Settings()
