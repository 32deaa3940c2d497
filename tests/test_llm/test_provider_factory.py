import pytest

from scanchat.config import Config
from scanchat.llm import OpenAIProvider, create_provider, provider_from_config


def test_create_provider_defaults_to_openai_base_url():
    provider = create_provider(provider="openai", model="gpt-4")
    assert isinstance(provider, OpenAIProvider)
    assert provider.model == "gpt-4"
    assert provider.base_url == "https://api.openai.com/v1"


def test_create_provider_supports_openrouter():
    provider = create_provider(
        provider="OpenRouter",
        model="mistralai/mixtral-8x7b-instruct",
        extra_headers={"X-Title": "ScanChat"},
    )
    assert isinstance(provider, OpenAIProvider)
    assert provider.base_url == "https://openrouter.ai/api/v1"
    assert provider.extra_headers == {"X-Title": "ScanChat"}


def test_create_provider_strips_trailing_slash():
    provider = create_provider(provider="openai", base_url="http://localhost:9000/v1/")
    assert provider.base_url == "http://localhost:9000/v1"


def test_create_provider_rejects_unsupported_provider():
    with pytest.raises(ValueError):
        create_provider(provider="cohere", model="command-r")


def test_provider_from_config_uses_model_section():
    cfg = Config()
    cfg.model.base_url = "http://upstream.local/v1"
    cfg.model.api_key = "sk-test"
    cfg.model.default_temperature = 0.7

    provider = provider_from_config(cfg)

    assert isinstance(provider, OpenAIProvider)
    assert provider.base_url == "http://upstream.local/v1"
    assert provider.api_key == "sk-test"
    assert provider.temperature == 0.7
    assert provider._headers()["Authorization"] == "Bearer sk-test"
