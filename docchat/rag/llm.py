from __future__ import annotations

"""Generative model clients for chat completions."""

from dataclasses import dataclass, field
from typing import Any, Protocol, Sequence

import httpx

from docchat.rag.errors import ConfigurationError, GenerationError
from docchat.rag.types import ChatMessage


@dataclass(frozen=True)
class SamplingParams:
    """Sampling parameters passed with every completion request."""
    temperature: float = 0.7
    top_p: float = 0.9
    max_tokens: int = 200
    frequency_penalty: float = 0.5
    presence_penalty: float = 0.3


class GenerativeModel(Protocol):
    """Opaque text-completion service over a bounded message list."""

    async def complete(self, messages: Sequence[ChatMessage], params: SamplingParams) -> str:
        raise NotImplementedError


async def _post_json(
    url: str,
    payload: dict[str, Any],
    timeout: float,
    headers: dict[str, str] | None = None,
    client: httpx.AsyncClient | None = None,
) -> dict[str, Any]:
    """POST a JSON payload and decode the JSON response."""
    owns_client = client is None
    if owns_client:
        client = httpx.AsyncClient(timeout=timeout)
    try:
        response = await client.post(url, json=payload, headers=headers)
        response.raise_for_status()
        data = response.json()
    except httpx.HTTPError as exc:
        raise GenerationError(f"{type(exc).__name__}: {exc}") from exc
    except ValueError as exc:
        raise GenerationError("Generative model returned invalid JSON") from exc
    finally:
        if owns_client:
            await client.aclose()
    if not isinstance(data, dict):
        raise GenerationError("Generative model returned an unexpected payload")
    return data


def _reply_text(data: dict[str, Any], *path: str | int) -> str:
    """Follow `path` through a decoded response down to the reply text."""
    node: Any = data
    try:
        for key in path:
            node = node[key]
    except (KeyError, IndexError, TypeError) as exc:
        raise GenerationError(f"Response is missing {path!r}") from exc
    if not isinstance(node, str):
        raise GenerationError("Response text is not a string")
    return node.strip()


@dataclass(frozen=True)
class OpenAIChatModel:
    """Chat completions against an OpenAI-compatible API."""
    api_key: str
    base_url: str
    model: str
    timeout: float
    client: httpx.AsyncClient | None = field(default=None, repr=False, compare=False)

    async def complete(self, messages: Sequence[ChatMessage], params: SamplingParams) -> str:
        """Return the first choice of a chat completion."""
        payload = {
            "model": self.model,
            "messages": [message.as_dict() for message in messages],
            "temperature": params.temperature,
            "top_p": params.top_p,
            "max_tokens": params.max_tokens,
            "frequency_penalty": params.frequency_penalty,
            "presence_penalty": params.presence_penalty,
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}
        data = await _post_json(
            f"{self.base_url}/chat/completions",
            payload,
            self.timeout,
            headers=headers,
            client=self.client,
        )
        return _reply_text(data, "choices", 0, "message", "content")


@dataclass(frozen=True)
class OllamaChatModel:
    """Chat completions against an Ollama server."""
    base_url: str
    model: str
    timeout: float
    client: httpx.AsyncClient | None = field(default=None, repr=False, compare=False)

    async def complete(self, messages: Sequence[ChatMessage], params: SamplingParams) -> str:
        """Return the assistant message of a non-streaming Ollama chat call."""
        payload = {
            "model": self.model,
            "messages": [message.as_dict() for message in messages],
            "stream": False,
            "options": {
                "temperature": params.temperature,
                "top_p": params.top_p,
                "num_predict": params.max_tokens,
                "frequency_penalty": params.frequency_penalty,
                "presence_penalty": params.presence_penalty,
            },
        }
        data = await _post_json(
            f"{self.base_url}/api/chat", payload, self.timeout, client=self.client
        )
        return _reply_text(data, "message", "content")


def build_generative_model(
    provider: str,
    *,
    openai_api_key: str | None,
    openai_base_url: str,
    openai_model: str | None,
    ollama_base_url: str,
    ollama_model: str,
    timeout: float,
) -> OpenAIChatModel | OllamaChatModel:
    """Factory for chat models based on provider."""
    normalized = provider.strip().lower()
    if normalized == "openai":
        if not openai_api_key:
            raise ConfigurationError("OPENAI_API_KEY is required for OpenAI provider")
        if not openai_model:
            raise ConfigurationError("OPENAI_CHAT_MODEL is required for OpenAI provider")
        return OpenAIChatModel(
            api_key=openai_api_key,
            base_url=openai_base_url.rstrip("/"),
            model=openai_model,
            timeout=timeout,
        )
    if normalized == "ollama":
        return OllamaChatModel(
            base_url=ollama_base_url.rstrip("/"),
            model=ollama_model,
            timeout=timeout,
        )
    raise ConfigurationError(f"Unsupported LLM provider: {provider}")
