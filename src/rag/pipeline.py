from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Iterable

from src.loaders.chunking import BoundaryDetector, chunk_text, latin_sentence_boundary
from src.rag.embeddings import EmbeddingClient, EmbeddingError
from src.rag.llm import CompletionClient, LLMConfigError
from src.rag.prompts import build_prompt_with_citations
from src.rag.response_parser import ParseOutcome, parse_structured_response
from src.rag.types import CitationData, RAGConfig, RetrievalResult
from src.vectorstore.base import VectorIndex, tenant_matches

logger = logging.getLogger(__name__)


class DocumentOwnershipError(RuntimeError):
    """Raised when a document id is already indexed for a different tenant."""


@dataclass(frozen=True)
class IngestResult:
    document_id: str
    chunk_count: int


@dataclass(frozen=True)
class RAGResponse:
    answer: str
    citations: list[CitationData]
    outcome: ParseOutcome
    error: str | None = None
    retrieved: int = 0

    @property
    def is_valid(self) -> bool:
        return self.outcome is ParseOutcome.PARSED


@dataclass
class RAGPipeline:
    index: VectorIndex
    embedder: EmbeddingClient
    completion: CompletionClient | None
    config: RAGConfig = field(default_factory=RAGConfig)
    boundary: BoundaryDetector = latin_sentence_boundary

    async def ingest_document(
        self,
        text: str,
        document_id: str,
        document_name: str,
        tenant_id: str | None = None,
    ) -> IngestResult:
        """Chunk, embed and index a document, replacing earlier chunks for the same id.

        Raises ``DocumentOwnershipError`` when the id is already indexed for
        another tenant; nothing is embedded in that case.
        """
        await self.check_owner(document_id, tenant_id)
        chunks = chunk_text(text, document_id, document_name, self.config, boundary=self.boundary)
        if not chunks:
            logger.info("ingest_empty_document", extra={"document_id": document_id})
            return IngestResult(document_id=document_id, chunk_count=0)
        vectors = await self.embedder.embed_batch([chunk.content for chunk in chunks])
        if len(vectors) != len(chunks):
            raise EmbeddingError(f"Expected {len(chunks)} embeddings, got {len(vectors)}")
        embedded = [chunk.with_embedding(vector) for chunk, vector in zip(chunks, vectors)]
        stored = await asyncio.to_thread(self.index.add, document_id, embedded, tenant_id=tenant_id)
        logger.info(
            "ingest_complete",
            extra={"document_id": document_id, "chunks": stored, "tenant_id": tenant_id},
        )
        return IngestResult(document_id=document_id, chunk_count=stored)

    async def check_owner(self, document_id: str, tenant_id: str | None) -> None:
        owner = await asyncio.to_thread(self.index.tenant_of, document_id)
        if owner is not None and not tenant_matches(owner, tenant_id):
            raise DocumentOwnershipError(f"Document {document_id} belongs to another tenant")

    async def remove_document(self, document_id: str, tenant_id: str | None = None) -> int:
        await self.check_owner(document_id, tenant_id)
        return await asyncio.to_thread(self.index.remove, document_id)

    async def has_documents(self, tenant_id: str | None = None) -> bool:
        return await asyncio.to_thread(self.index.count, tenant_id) > 0

    async def retrieve(
        self,
        query: str,
        top_k: int | None = None,
        score_threshold: float | None = None,
        document_ids: Iterable[str] | None = None,
        tenant_id: str | None = None,
    ) -> RetrievalResult:
        """Embed the query and search the index; a blank query is an empty result."""
        if not query.strip():
            return RetrievalResult.empty()
        query_vector = await self.embedder.embed_one(query)
        result = await asyncio.to_thread(
            self.index.search,
            query_vector,
            top_k=self.config.top_k if top_k is None else top_k,
            score_threshold=self.config.score_threshold if score_threshold is None else score_threshold,
            document_ids=document_ids,
            tenant_id=tenant_id,
        )
        logger.info(
            "retrieval_complete",
            extra={
                "results": len(result.chunks),
                "query_length": len(query),
                "top_score": result.chunks[0].score if result.chunks else None,
            },
        )
        return result

    async def answer(
        self,
        query: str,
        top_k: int | None = None,
        score_threshold: float | None = None,
        document_ids: Iterable[str] | None = None,
        tenant_id: str | None = None,
    ) -> RAGResponse:
        """Retrieve, prompt, complete and parse; never embeds when there is no corpus."""
        if self.completion is None:
            raise LLMConfigError("LLM_API_KEY is required to answer questions")
        has_documents = await self.has_documents(tenant_id)
        if has_documents:
            retrieval = await self.retrieve(
                query,
                top_k=top_k,
                score_threshold=score_threshold,
                document_ids=document_ids,
                tenant_id=tenant_id,
            )
        else:
            retrieval = RetrievalResult.empty()

        prompt = build_prompt_with_citations(query, retrieval, has_documents)
        raw = await self.completion.chat_with_system(prompt.system, prompt.user)
        parsed = parse_structured_response(raw, prompt.citations, prompt.valid_citation_ids)
        logger.info(
            "answer_complete",
            extra={
                "has_documents": has_documents,
                "retrieved": len(retrieval.chunks),
                "citations": len(parsed.citations),
                "outcome": parsed.outcome.value,
            },
        )
        return RAGResponse(
            answer=parsed.answer,
            citations=parsed.citations,
            outcome=parsed.outcome,
            error=parsed.error,
            retrieved=len(retrieval.chunks),
        )
