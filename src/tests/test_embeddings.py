from __future__ import annotations

import json

import httpx
import pytest

from src.rag.embeddings import (
    EmbeddingConfigError,
    EmbeddingError,
    HashEmbeddingClient,
    OpenAIEmbeddingClient,
    build_embedding_config_report,
    resolve_openai_dimension,
    validate_vector,
)

pytestmark = pytest.mark.anyio


def _vector_for(text: str) -> list[float]:
    # encodes the input so order can be checked on the way out
    value = float(text.split("-")[1])
    return [value, value + 0.5, 1.0]


def _shuffled_handler(requests: list[dict]):
    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        requests.append(body)
        data = [
            {"object": "embedding", "index": index, "embedding": _vector_for(text)}
            for index, text in enumerate(body["input"])
        ]
        data.reverse()
        return httpx.Response(200, json={"data": data})

    return handler


def _client(handler, **kwargs) -> OpenAIEmbeddingClient:
    options = {"api_key": "key", "model": "test-model", "dimension": 3, "batch_delay": 0}
    options.update(kwargs)
    return OpenAIEmbeddingClient(transport=httpx.MockTransport(handler), **options)


async def test_embed_batch_restores_order_across_batches() -> None:
    requests: list[dict] = []
    client = _client(_shuffled_handler(requests), batch_size=2)
    texts = [f"text-{index}" for index in range(5)]

    vectors = await client.embed_batch(texts)

    assert [len(body["input"]) for body in requests] == [2, 2, 1]
    assert all(body["model"] == "test-model" for body in requests)
    assert vectors == [_vector_for(text) for text in texts]


async def test_embed_one_returns_single_vector() -> None:
    client = _client(_shuffled_handler([]))
    assert await client.embed_one("text-7") == [7.0, 7.5, 1.0]


async def test_empty_input_makes_no_request() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    assert await _client(handler).embed_batch([]) == []


async def test_batch_failure_names_the_batch() -> None:
    calls = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["count"] += 1
        if calls["count"] == 2:
            return httpx.Response(429, text="rate limited")
        return _shuffled_handler([])(request)

    client = _client(handler, batch_size=1)
    with pytest.raises(EmbeddingError) as excinfo:
        await client.embed_batch(["text-0", "text-1", "text-2"])
    message = str(excinfo.value)
    assert "batch 2/3" in message
    assert "429" in message


async def test_count_mismatch_is_rejected() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"data": [{"index": 0, "embedding": [1.0, 0.0, 0.0]}]})

    with pytest.raises(EmbeddingError):
        await _client(handler).embed_batch(["text-0", "text-1"])


async def test_duplicate_indices_are_rejected() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        item = {"index": 0, "embedding": [1.0, 0.0, 0.0]}
        return httpx.Response(200, json={"data": [item, dict(item)]})

    with pytest.raises(EmbeddingError, match="indices"):
        await _client(handler).embed_batch(["text-0", "text-1"])


async def test_wrong_dimension_is_rejected() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"data": [{"index": 0, "embedding": [1.0, 0.0]}]})

    with pytest.raises(EmbeddingError, match="dimension mismatch"):
        await _client(handler).embed_batch(["text-0"])


def test_missing_api_key_fails_before_any_request() -> None:
    with pytest.raises(EmbeddingConfigError):
        OpenAIEmbeddingClient(api_key="", model="test-model")


def test_known_model_dimension_is_inferred() -> None:
    client = OpenAIEmbeddingClient(api_key="key", model="openai/text-embedding-3-large")
    assert client.dimension == 3072
    with pytest.raises(EmbeddingConfigError):
        OpenAIEmbeddingClient(api_key="key", model="text-embedding-3-small", dimension=10)


def test_resolve_openai_dimension_strips_vendor_prefix() -> None:
    assert resolve_openai_dimension("openai/text-embedding-3-small") == 1536
    assert resolve_openai_dimension("unknown-model") is None


def test_validate_vector_rejects_bad_values() -> None:
    assert validate_vector([1, 2.5], 2) == [1.0, 2.5]
    with pytest.raises(EmbeddingError):
        validate_vector([1.0, float("nan")], 2)
    with pytest.raises(EmbeddingError):
        validate_vector([True, 1.0], 2)
    with pytest.raises(EmbeddingError):
        validate_vector(["a", 1.0], 2)


async def test_hash_embedder_is_deterministic_and_normalized() -> None:
    embedder = HashEmbeddingClient(dimension=64)
    first, second = await embedder.embed_batch(["Quarterly revenue grew", "Quarterly revenue grew"])
    assert first == second
    assert len(first) == 64
    assert sum(value * value for value in first) == pytest.approx(1.0)


def test_embedding_config_report() -> None:
    assert build_embedding_config_report("hash", None, 256).ok
    missing_key = build_embedding_config_report("openai", "openai/text-embedding-3-large", 0)
    assert not missing_key.ok
    assert "LLM_API_KEY" in (missing_key.detail or "")
    mismatch = build_embedding_config_report(
        "openai", "openai/text-embedding-3-large", 10, api_key="key"
    )
    assert mismatch.status == "error"
    assert build_embedding_config_report("mystery", None, 8).status == "error"
