from __future__ import annotations

import json

import httpx
import pytest

from src.rag.llm import LLMConfigError, LLMError, OpenAICompletionClient, build_completion_client

pytestmark = pytest.mark.anyio


def _client(handler, **kwargs) -> OpenAICompletionClient:
    return OpenAICompletionClient(
        api_key="key",
        model="test/model",
        base_url="https://llm.test/v1/",
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


async def test_chat_with_system_posts_both_messages() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"choices": [{"message": {"content": "hello"}}]})

    content = await _client(handler).chat_with_system("be brief", "hi")

    assert content == "hello"
    request = seen[0]
    assert str(request.url) == "https://llm.test/v1/chat/completions"
    assert request.headers["authorization"] == "Bearer key"
    body = json.loads(request.content)
    assert body["model"] == "test/model"
    assert body["temperature"] == 0.3
    assert body["max_tokens"] == 1024
    assert body["messages"] == [
        {"role": "system", "content": "be brief"},
        {"role": "user", "content": "hi"},
    ]


async def test_per_call_overrides() -> None:
    bodies: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={"choices": [{"message": {"content": "ok"}}]})

    await _client(handler).chat([{"role": "user", "content": "x"}], temperature=0.0, max_tokens=5)
    assert bodies[0]["temperature"] == 0.0
    assert bodies[0]["max_tokens"] == 5


async def test_empty_choices_raise() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"choices": []})

    with pytest.raises(LLMError, match="No choices"):
        await _client(handler).chat_with_system("s", "u")


async def test_non_object_choice_raises() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"choices": ["oops"]})

    with pytest.raises(LLMError, match="Invalid completion response choice"):
        await _client(handler).chat_with_system("s", "u")


async def test_http_error_status_raises() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="upstream exploded")

    with pytest.raises(LLMError, match="500"):
        await _client(handler).chat_with_system("s", "u")


def test_missing_key_is_config_error() -> None:
    with pytest.raises(LLMConfigError):
        OpenAICompletionClient(api_key="", model="test/model")


def test_factory_adds_attribution_headers() -> None:
    client = build_completion_client(
        api_key="key",
        model="test/model",
        base_url="https://llm.test/v1",
        temperature=0.1,
        max_tokens=10,
        timeout=5,
        app_name="Docs",
        app_url="https://docs.test",
    )
    assert client.extra_headers == {"HTTP-Referer": "https://docs.test", "X-Title": "Docs"}
