from __future__ import annotations

"""Chat completion client for OpenAI-compatible APIs."""

from dataclasses import dataclass, field
import logging
from typing import Literal, Protocol, TypedDict

import httpx


class LLMError(RuntimeError):
    """Raised when LLM requests fail or responses are invalid."""
    pass


class LLMConfigError(LLMError):
    """Raised when the completion client is misconfigured."""
    pass


logger = logging.getLogger(__name__)


class ChatMessage(TypedDict):
    role: Literal["system", "user", "assistant"]
    content: str


class CompletionClient(Protocol):
    """Protocol for chat completion backends."""

    async def chat(
        self,
        messages: list[ChatMessage],
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str:
        raise NotImplementedError

    async def chat_with_system(self, system_prompt: str, user_prompt: str) -> str:
        raise NotImplementedError


@dataclass
class OpenAICompletionClient:
    """Completion client backed by ``/chat/completions`` (OpenRouter, OpenAI, vLLM)."""
    api_key: str
    model: str
    base_url: str = "https://openrouter.ai/api/v1"
    temperature: float = 0.3
    max_tokens: int = 1024
    timeout: float = 60.0
    extra_headers: dict[str, str] = field(default_factory=dict)
    transport: httpx.AsyncBaseTransport | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        if not self.api_key:
            raise LLMConfigError("LLM_API_KEY is required for OpenAICompletionClient")
        if not self.model:
            raise LLMConfigError("LLM_MODEL is required for OpenAICompletionClient")
        self.base_url = self.base_url.rstrip("/")

    async def chat(
        self,
        messages: list[ChatMessage],
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str:
        """Send a chat completion request and return the first choice's content."""
        payload = {
            "model": self.model,
            "messages": messages,
            "temperature": self.temperature if temperature is None else temperature,
            "max_tokens": self.max_tokens if max_tokens is None else max_tokens,
        }
        headers = {"Authorization": f"Bearer {self.api_key}", **self.extra_headers}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(
                    f"{self.base_url}/chat/completions",
                    json=payload,
                    headers=headers,
                )
        except httpx.HTTPError as exc:
            raise LLMError(str(exc)) from exc
        if response.status_code >= 400:
            raise LLMError(f"Completion API error ({response.status_code}): {response.text[:500]}")
        try:
            data = response.json()
        except ValueError as exc:
            raise LLMError("Completion API returned a non-JSON body") from exc

        choices = data.get("choices") if isinstance(data, dict) else None
        if not choices:
            raise LLMError("No choices in completion response")
        first = choices[0] if isinstance(choices, list) else None
        if not isinstance(first, dict):
            raise LLMError("Invalid completion response choice")
        message = first.get("message") or {}
        content = message.get("content")
        if not isinstance(content, str):
            raise LLMError("Invalid completion response content")
        logger.info(
            "completion_received",
            extra={"model": self.model, "response_chars": len(content)},
        )
        return content

    async def chat_with_system(self, system_prompt: str, user_prompt: str) -> str:
        """Single-turn chat with a system prompt."""
        return await self.chat(
            [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ]
        )


def build_completion_client(
    *,
    api_key: str | None,
    model: str,
    base_url: str,
    temperature: float,
    max_tokens: int,
    timeout: float,
    app_name: str | None = None,
    app_url: str | None = None,
) -> OpenAICompletionClient:
    """Factory for the completion client, adding router attribution headers when set."""
    headers: dict[str, str] = {}
    if app_url:
        headers["HTTP-Referer"] = app_url
    if app_name:
        headers["X-Title"] = app_name
    return OpenAICompletionClient(
        api_key=api_key or "",
        model=model,
        base_url=base_url,
        temperature=temperature,
        max_tokens=max_tokens,
        timeout=timeout,
        extra_headers=headers,
    )
