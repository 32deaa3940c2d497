import json

import httpx
import pytest

from scanchat.exceptions import LLMError, ProviderError
from scanchat.llm import Message, OpenAIProvider


def _provider_with(handler) -> OpenAIProvider:
    provider = OpenAIProvider(model="gpt-4", base_url="https://llm.test/v1", api_key="sk-test")
    provider.client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return provider


def _sse(*frames: str) -> bytes:
    return "".join(f"data: {frame}\n\n" for frame in frames).encode("utf-8")


@pytest.mark.asyncio
async def test_complete_joins_choices_and_sends_body():
    seen: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        return httpx.Response(
            200,
            json={
                "model": "gpt-4",
                "choices": [{"message": {"content": "Hello there"}}],
                "usage": {"total_tokens": 12},
            },
        )

    provider = _provider_with(handler)
    try:
        response = await provider.complete(
            [Message(role="user", content="hi")],
            temperature=0.2,
            max_tokens=50,
        )
    finally:
        await provider.close()

    assert response.content == "Hello there"
    assert response.usage == {"total_tokens": 12}
    body = seen[0]
    assert body["model"] == "gpt-4"
    assert body["stream"] is False
    assert body["temperature"] == 0.2
    assert body["max_tokens"] == 50
    assert body["messages"] == [{"role": "user", "content": "hi"}]


@pytest.mark.asyncio
async def test_complete_streaming_yields_deltas_until_finish_reason():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            content=_sse(
                json.dumps({"choices": [{"delta": {"role": "assistant"}, "finish_reason": None}]}),
                json.dumps({"choices": [{"delta": {"content": "Hel"}, "finish_reason": None}]}),
                json.dumps({"choices": [{"delta": {"content": "lo"}, "finish_reason": None}]}),
                json.dumps({"choices": [{"delta": {}, "finish_reason": "stop"}]}),
                json.dumps({"choices": [{"delta": {"content": "ignored"}, "finish_reason": None}]}),
            ),
            headers={"Content-Type": "text/event-stream"},
        )

    provider = _provider_with(handler)
    try:
        parts = [text async for text in provider.complete_streaming([Message("user", "hi")])]
    finally:
        await provider.close()

    assert parts == ["Hel", "lo"]


@pytest.mark.asyncio
async def test_complete_streaming_stops_at_done_marker():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            content=_sse(
                json.dumps({"choices": [{"delta": {"content": "ok"}, "finish_reason": None}]}),
                "[DONE]",
            ),
        )

    provider = _provider_with(handler)
    try:
        parts = [text async for text in provider.complete_streaming([Message("user", "hi")])]
    finally:
        await provider.close()

    assert parts == ["ok"]


@pytest.mark.asyncio
async def test_streaming_error_payload_raises_provider_error_before_any_delta():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            429,
            json={
                "error": {
                    "message": "Rate limit reached",
                    "type": "requests",
                    "param": None,
                    "code": "rate_limit_exceeded",
                }
            },
        )

    provider = _provider_with(handler)
    try:
        with pytest.raises(ProviderError) as exc_info:
            async for _ in provider.complete_streaming([Message("user", "hi")]):
                pass
    finally:
        await provider.close()

    assert exc_info.value.message == "Rate limit reached"
    assert exc_info.value.code == "rate_limit_exceeded"
    assert exc_info.value.status_code == 429


@pytest.mark.asyncio
async def test_non_json_error_raises_generic_llm_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(502, text="bad gateway")

    provider = _provider_with(handler)
    try:
        with pytest.raises(LLMError) as exc_info:
            await provider.complete([Message("user", "hi")])
    finally:
        await provider.close()

    assert not isinstance(exc_info.value, ProviderError)
    assert "502" in str(exc_info.value)


@pytest.mark.asyncio
async def test_embed_returns_vector():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/v1/embeddings"
        return httpx.Response(200, json={"data": [{"embedding": [0.1, 0.2, 0.3]}]})

    provider = _provider_with(handler)
    try:
        vector = await provider.embed("what is xss", "text-embedding-ada-002")
    finally:
        await provider.close()

    assert vector == [0.1, 0.2, 0.3]
