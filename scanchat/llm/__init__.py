"""OpenAI-compatible provider - direct HTTP calls to a chat completions API."""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, AsyncIterator

import httpx

from scanchat.exceptions import LLMError, ProviderError
from scanchat.logging import get_logger

if TYPE_CHECKING:
    from scanchat.config import Config

log = get_logger(__name__)


OPENAI_BASE_URL = "https://api.openai.com/v1"


@dataclass
class Message:
    """A message in the conversation."""

    role: str  # "system", "user", "assistant"
    content: str

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass
class LLMResponse:
    """Response from the LLM."""

    content: str
    model: str = ""
    usage: dict[str, int] = field(default_factory=dict)


class LLMProvider(ABC):
    """Abstract base class for LLM providers."""

    @abstractmethod
    async def complete(
        self,
        messages: list[Message],
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        pass

    @abstractmethod
    async def complete_streaming(
        self,
        messages: list[Message],
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> AsyncIterator[str]:
        pass

    async def embed(self, text: str, model: str) -> list[float]:
        raise LLMError(f"{type(self).__name__} does not support embeddings")

    async def close(self) -> None:
        return None


class OpenAIProvider(LLMProvider):
    """Chat completions over plain HTTP with SSE streaming."""

    def __init__(
        self,
        model: str = "gpt-4",
        base_url: str = OPENAI_BASE_URL,
        api_key: str | None = None,
        temperature: float = 0.4,
        max_tokens: int = 1000,
        timeout: float = 120.0,
        extra_headers: dict[str, str] | None = None,
    ):
        """Initialize the provider.

        Args:
            model: Default model name sent upstream
            base_url: API base URL (``.../v1``)
            api_key: Bearer token
            temperature: Default sampling temperature
            max_tokens: Default completion budget
            timeout: Request timeout in seconds
            extra_headers: Additional headers sent with every call
        """
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.extra_headers = dict(extra_headers or {})

        self.client = httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
        )

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json", **self.extra_headers}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _request_body(
        self,
        messages: list[Message],
        model: str | None,
        temperature: float | None,
        max_tokens: int | None,
        stream: bool,
    ) -> dict[str, Any]:
        return {
            "model": model or self.model,
            "messages": [msg.to_dict() for msg in messages],
            "max_tokens": max_tokens or self.max_tokens,
            "n": 1,
            "stream": stream,
            "temperature": self.temperature if temperature is None else temperature,
        }

    @staticmethod
    def _raise_for_error_payload(status_code: int, raw: str) -> None:
        """Convert a non-200 provider reply into ProviderError or LLMError."""
        try:
            payload = json.loads(raw) if raw else {}
        except json.JSONDecodeError:
            payload = {}
        error = payload.get("error") if isinstance(payload, dict) else None
        if isinstance(error, dict):
            raise ProviderError(
                str(error.get("message", "") or f"Provider error {status_code}"),
                type=error.get("type"),
                param=error.get("param"),
                code=error.get("code"),
                status_code=status_code,
            )
        raise LLMError(f"OpenAI API returned an error: {status_code}")

    async def complete(
        self,
        messages: list[Message],
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        """Generate a completion."""
        url = f"{self.base_url}/chat/completions"
        body = self._request_body(messages, model, temperature, max_tokens, stream=False)

        try:
            log.debug("Calling provider", model=body["model"], url=url, msg_count=len(messages))
            response = await self.client.post(url, json=body, headers=self._headers())
        except httpx.HTTPError as e:
            raise LLMError(f"Provider HTTP error: {e}") from e

        if response.status_code != 200:
            self._raise_for_error_payload(response.status_code, response.text)

        try:
            data = response.json()
        except json.JSONDecodeError as e:
            raise LLMError(f"Provider response decode error: {e}") from e

        choices = data.get("choices") or []
        content = "\n".join(
            str((choice.get("message") or {}).get("content") or "") for choice in choices
        )
        return LLMResponse(
            content=content,
            model=str(data.get("model", body["model"])),
            usage=dict(data.get("usage") or {}),
        )

    async def complete_streaming(
        self,
        messages: list[Message],
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> AsyncIterator[str]:
        """Stream a completion as decoded text deltas.

        Provider errors surface on the first iteration, before any delta is
        yielded, so callers can still choose an HTTP status.
        """
        url = f"{self.base_url}/chat/completions"
        body = self._request_body(messages, model, temperature, max_tokens, stream=True)

        try:
            async with self.client.stream("POST", url, json=body, headers=self._headers()) as response:
                if response.status_code != 200:
                    raw = (await response.aread()).decode("utf-8", errors="replace")
                    self._raise_for_error_payload(response.status_code, raw)

                async for line in response.aiter_lines():
                    line = line.strip()
                    if not line.startswith("data:"):
                        continue
                    data = line[len("data:"):].strip()
                    if data == "[DONE]":
                        break
                    try:
                        chunk = json.loads(data)
                    except json.JSONDecodeError as e:
                        raise LLMError(f"Malformed stream frame: {e}") from e
                    choice = (chunk.get("choices") or [{}])[0]
                    if choice.get("finish_reason") is not None:
                        break
                    text = (choice.get("delta") or {}).get("content")
                    if text:
                        yield text
        except httpx.HTTPError as e:
            raise LLMError(f"Provider streaming error: {e}") from e

    async def embed(self, text: str, model: str) -> list[float]:
        """Embed one text with the ``/embeddings`` endpoint."""
        url = f"{self.base_url}/embeddings"
        try:
            response = await self.client.post(
                url,
                json={"model": model, "input": text},
                headers=self._headers(),
            )
        except httpx.HTTPError as e:
            raise LLMError(f"Embedding HTTP error: {e}") from e
        if response.status_code != 200:
            self._raise_for_error_payload(response.status_code, response.text)
        data = response.json().get("data") or []
        if not data or not isinstance(data[0].get("embedding"), list):
            raise LLMError("Embedding response missing vector")
        return [float(v) for v in data[0]["embedding"]]

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()


def create_provider(
    provider: str = "openai",
    model: str = "gpt-4",
    api_key: str | None = None,
    base_url: str | None = None,
    temperature: float = 0.4,
    max_tokens: int = 1000,
    timeout: float = 120.0,
    extra_headers: dict[str, str] | None = None,
) -> LLMProvider:
    """Create an LLM provider.

    Args:
        provider: Provider name (openai, openrouter)
        model: Default model name
        api_key: Optional API key
        base_url: Optional base URL
        temperature: Default temperature
        max_tokens: Default max tokens
        timeout: Request timeout in seconds
        extra_headers: Additional request headers

    Returns:
        Configured LLMProvider instance
    """
    name = str(provider or "").strip().lower()
    if name not in {"openai", "openrouter"}:
        raise ValueError(f"Provider '{provider}' not supported. Use 'openai' or 'openrouter'.")
    default_base = "https://openrouter.ai/api/v1" if name == "openrouter" else OPENAI_BASE_URL
    return OpenAIProvider(
        model=model,
        base_url=base_url or default_base,
        api_key=api_key,
        temperature=temperature,
        max_tokens=max_tokens,
        timeout=timeout,
        extra_headers=extra_headers,
    )


def provider_from_config(cfg: "Config") -> LLMProvider:
    """Build the chat model provider described by ``cfg.model``."""
    return create_provider(
        provider="openai",
        base_url=cfg.model.base_url,
        api_key=cfg.model.api_key or None,
        temperature=cfg.model.default_temperature,
        max_tokens=cfg.model.default_max_tokens,
        timeout=float(cfg.model.request_timeout),
    )
