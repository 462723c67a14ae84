from __future__ import annotations

"""Embedding clients and configuration validation."""

import asyncio
import hashlib
import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx

logger = logging.getLogger(__name__)

_TOKEN_RE = re.compile(r"[a-z0-9]+")

DEFAULT_BATCH_SIZE = 100


class EmbeddingError(RuntimeError):
    """Raised when embeddings fail or are invalid."""
    pass


class EmbeddingConfigError(RuntimeError):
    """Raised when embedding configuration is invalid."""
    pass


class EmbeddingClient(Protocol):
    """Protocol for order-preserving batch embedding clients."""
    dimension: int

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Return one vector per input text, in input order."""
        raise NotImplementedError

    async def embed_one(self, text: str) -> list[float]:
        """Return the vector for a single text."""
        raise NotImplementedError


def validate_vector(vector: list[Any], dimension: int) -> list[float]:
    """Validate embedding vectors; a non-positive dimension skips the length check."""
    if dimension > 0 and len(vector) != dimension:
        raise EmbeddingError(
            f"Embedding dimension mismatch: expected {dimension}, got {len(vector)}"
        )
    cleaned: list[float] = []
    for value in vector:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise EmbeddingError("Embedding contains a non-numeric value")
        if not math.isfinite(value):
            raise EmbeddingError("Embedding contains a non-finite value")
        cleaned.append(float(value))
    return cleaned


@dataclass
class HashEmbeddingClient:
    """Deterministic hash-based embedder for testing or offline use."""
    dimension: int = 256

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        return [self._embed(text) for text in texts]

    async def embed_one(self, text: str) -> list[float]:
        vectors = await self.embed_batch([text])
        return vectors[0]

    def _embed(self, text: str) -> list[float]:
        """Embed text using token hashing and L2 normalization."""
        tokens = _TOKEN_RE.findall(text.lower())
        vector = [0.0] * self.dimension
        for token in tokens:
            digest = hashlib.sha256(token.encode("utf-8")).digest()
            vector[digest[0] % self.dimension] += 1.0
        return validate_vector(self._l2_normalize(vector), self.dimension)

    def _l2_normalize(self, vector: list[float]) -> list[float]:
        """Normalize vector magnitude to 1.0."""
        norm = math.sqrt(sum(value * value for value in vector))
        if norm == 0.0:
            return vector
        return [value / norm for value in vector]


def resolve_openai_dimension(model: str) -> int | None:
    """Return expected dimension for OpenAI embedding models (router prefixes allowed)."""
    mapping = {
        "text-embedding-3-small": 1536,
        "text-embedding-3-large": 3072,
        "text-embedding-ada-002": 1536,
    }
    return mapping.get(model.rsplit("/", 1)[-1])


@dataclass
class OpenAIEmbeddingClient:
    """Embedding client for OpenAI-compatible ``/embeddings`` endpoints.

    Texts are sent in fixed-size batches, one request per batch, with a short
    pause between batches. The service may return items out of submission
    order, so each batch is re-sorted by the returned ``index``.
    """
    api_key: str
    model: str
    base_url: str = "https://openrouter.ai/api/v1"
    dimension: int = 0
    batch_size: int = DEFAULT_BATCH_SIZE
    batch_delay: float = 0.1
    timeout: float = 60.0
    extra_headers: dict[str, str] = field(default_factory=dict)
    transport: httpx.AsyncBaseTransport | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        """Validate configuration before any request is made."""
        if not self.api_key:
            raise EmbeddingConfigError("LLM_API_KEY is required for OpenAIEmbeddingClient")
        if not self.model:
            raise EmbeddingConfigError("EMBEDDING_MODEL is required for OpenAIEmbeddingClient")
        if self.batch_size <= 0:
            raise EmbeddingConfigError("EMBEDDING_BATCH_SIZE must be greater than zero")
        expected = resolve_openai_dimension(self.model)
        if self.dimension <= 0 and expected is not None:
            self.dimension = expected
        elif expected is not None and self.dimension != expected:
            raise EmbeddingConfigError(
                f"EMBEDDING_DIMENSION should be {expected} for model {self.model}"
            )
        self.base_url = self.base_url.rstrip("/")

    async def embed_one(self, text: str) -> list[float]:
        vectors = await self.embed_batch([text])
        return vectors[0]

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        total_batches = math.ceil(len(texts) / self.batch_size)
        vectors: list[list[float]] = []
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            for batch_number, start in enumerate(range(0, len(texts), self.batch_size), start=1):
                batch = texts[start : start + self.batch_size]
                logger.debug(
                    "embedding_batch",
                    extra={
                        "batch": batch_number,
                        "total_batches": total_batches,
                        "batch_size": len(batch),
                    },
                )
                try:
                    vectors.extend(await self._request_batch(client, batch))
                except EmbeddingError as exc:
                    raise EmbeddingError(
                        f"Embedding batch {batch_number}/{total_batches} failed: {exc}"
                    ) from exc
                if start + self.batch_size < len(texts) and self.batch_delay > 0:
                    await asyncio.sleep(self.batch_delay)
        logger.info(
            "embeddings_complete",
            extra={"count": len(vectors), "batches": total_batches, "model": self.model},
        )
        return vectors

    async def _request_batch(self, client: httpx.AsyncClient, batch: list[str]) -> list[list[float]]:
        """Embed one batch and return vectors in submission order."""
        headers = {"Authorization": f"Bearer {self.api_key}", **self.extra_headers}
        try:
            response = await client.post(
                f"{self.base_url}/embeddings",
                json={"model": self.model, "input": batch},
                headers=headers,
            )
        except httpx.HTTPError as exc:
            raise EmbeddingError(str(exc)) from exc
        if response.status_code >= 400:
            raise EmbeddingError(
                f"Embeddings API error ({response.status_code}): {response.text[:500]}"
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise EmbeddingError(
                f"Failed to parse embedding response: {response.text[:200]}"
            ) from exc

        items = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(items, list):
            raise EmbeddingError("Unexpected embedding response structure")
        if len(items) != len(batch):
            raise EmbeddingError(
                f"Embedding response returned {len(items)} vectors for {len(batch)} inputs"
            )
        indexed: list[tuple[int, list[Any]]] = []
        for item in items:
            if not isinstance(item, dict):
                raise EmbeddingError("Embedding item is not an object")
            index = item.get("index")
            embedding = item.get("embedding")
            if not isinstance(index, int) or not isinstance(embedding, list):
                raise EmbeddingError("Embedding item missing index or embedding")
            indexed.append((index, embedding))
        indexed.sort(key=lambda pair: pair[0])
        if [index for index, _ in indexed] != list(range(len(batch))):
            raise EmbeddingError("Embedding response indices do not match the submitted batch")
        return [validate_vector(embedding, self.dimension) for _, embedding in indexed]


@dataclass(frozen=True)
class EmbeddingConfigReport:
    """Validation report for embedding settings."""
    provider: str
    model: str | None
    configured_dimension: int
    expected_dimension: int | None
    ok: bool
    status: str
    detail: str | None = None
    action: str | None = None


def build_embedding_config_report(
    provider: str, model: str | None, dimension: int, api_key: str | None = None
) -> EmbeddingConfigReport:
    """Build a validation report for embedding settings."""
    normalized = provider.lower().strip()

    if normalized in {"", "hash"}:
        ok = dimension > 0
        return EmbeddingConfigReport(
            provider="hash",
            model=None,
            configured_dimension=dimension,
            expected_dimension=dimension if ok else None,
            ok=ok,
            status="ok" if ok else "error",
            detail=None if ok else "EMBEDDING_DIMENSION must be greater than zero for hash embeddings.",
            action=None if ok else "Set EMBEDDING_DIMENSION to a positive integer.",
        )

    if normalized == "openai":
        expected = resolve_openai_dimension(model) if model else None
        if not api_key:
            detail, action = "LLM_API_KEY is required for OpenAI embeddings.", "Set LLM_API_KEY in .env."
        elif not model:
            detail, action = "EMBEDDING_MODEL is required for OpenAI embeddings.", "Set EMBEDDING_MODEL in .env."
        elif expected is not None and dimension > 0 and dimension != expected:
            detail = "EMBEDDING_DIMENSION does not match the model dimension."
            action = f"Set EMBEDDING_DIMENSION to {expected}."
        else:
            detail, action = None, None
        if detail is not None:
            return EmbeddingConfigReport(
                provider="openai",
                model=model,
                configured_dimension=dimension,
                expected_dimension=expected,
                ok=False,
                status="error",
                detail=detail,
                action=action,
            )
        if expected is None and dimension <= 0:
            return EmbeddingConfigReport(
                provider="openai",
                model=model,
                configured_dimension=dimension,
                expected_dimension=None,
                ok=True,
                status="warning",
                detail="Model dimension cannot be auto-validated. Confirm EMBEDDING_DIMENSION manually.",
            )
        return EmbeddingConfigReport(
            provider="openai",
            model=model,
            configured_dimension=dimension,
            expected_dimension=expected,
            ok=True,
            status="ok",
        )

    return EmbeddingConfigReport(
        provider=normalized,
        model=model,
        configured_dimension=dimension,
        expected_dimension=None,
        ok=False,
        status="error",
        detail="Unsupported embedding provider.",
        action="Set EMBEDDING_PROVIDER to hash or openai.",
    )
