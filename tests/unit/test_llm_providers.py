"""Unit tests for the Anthropic and Ollama LLM adapters with mocked SDK clients."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import anthropic
import httpx
import openai
import pytest

from linkforge.providers.llm.anthropic_provider import AnthropicLLMProvider
from linkforge.providers.llm.ollama_provider import OllamaLLMProvider
from linkforge.utils.errors import LLMError

_REQUEST = httpx.Request("POST", "https://api.example.test/v1")


# ─── Anthropic ────────────────────────────────────────────────────────


def _anthropic_client(content: list, error: Exception | None = None) -> MagicMock:
    client = MagicMock()
    response = SimpleNamespace(
        content=content,
        usage=SimpleNamespace(input_tokens=120, output_tokens=40),
    )
    client.messages.create = AsyncMock(return_value=response, side_effect=error)
    return client


class TestAnthropicProvider:
    @pytest.mark.asyncio
    async def test_complete_joins_text_blocks(self) -> None:
        client = _anthropic_client(
            [
                SimpleNamespace(type="text", text='{"category":'),
                SimpleNamespace(type="tool_use", text="ignored"),
                SimpleNamespace(type="text", text='"X"}'),
            ]
        )
        provider = AnthropicLLMProvider(api_key="sk-test", model="claude-test", client=client)

        result = await provider.complete("system", "user", temperature=0.1, max_tokens=50)

        assert result == '{"category":\n"X"}'
        kwargs = client.messages.create.await_args.kwargs
        assert kwargs["model"] == "claude-test"
        assert kwargs["system"] == "system"
        assert kwargs["messages"] == [{"role": "user", "content": "user"}]
        assert kwargs["max_tokens"] == 50

    @pytest.mark.asyncio
    async def test_no_text_blocks(self) -> None:
        provider = AnthropicLLMProvider(api_key="sk-test", client=_anthropic_client([]))
        with pytest.raises(LLMError, match="no text"):
            await provider.complete("s", "u")

    @pytest.mark.asyncio
    async def test_api_error_is_wrapped(self) -> None:
        error = anthropic.APIConnectionError(request=_REQUEST)
        provider = AnthropicLLMProvider(api_key="sk-test", client=_anthropic_client([], error))

        with pytest.raises(LLMError) as exc_info:
            await provider.complete("s", "u")
        assert exc_info.value.provider_name == "anthropic"

    def test_availability(self) -> None:
        assert AnthropicLLMProvider(api_key="sk-test", client=MagicMock()).is_available()
        assert not AnthropicLLMProvider(api_key="", client=MagicMock()).is_available()


# ─── Ollama ───────────────────────────────────────────────────────────


def _openai_client(content: str | None, error: Exception | None = None) -> MagicMock:
    client = MagicMock()
    choices = [SimpleNamespace(message=SimpleNamespace(content=content))] if content is not None else []
    client.chat.completions.create = AsyncMock(
        return_value=SimpleNamespace(choices=choices), side_effect=error
    )
    return client


class TestOllamaProvider:
    @pytest.mark.asyncio
    async def test_complete(self) -> None:
        client = _openai_client('{"category": "X"}')
        provider = OllamaLLMProvider(model="llama3.1", client=client)

        assert await provider.complete("system", "user") == '{"category": "X"}'
        messages = client.chat.completions.create.await_args.kwargs["messages"]
        assert messages[0] == {"role": "system", "content": "system"}
        assert messages[1] == {"role": "user", "content": "user"}

    @pytest.mark.asyncio
    async def test_empty_response(self) -> None:
        provider = OllamaLLMProvider(client=_openai_client(None))
        with pytest.raises(LLMError, match="empty"):
            await provider.complete("s", "u")

    @pytest.mark.asyncio
    async def test_api_error_is_wrapped(self) -> None:
        error = openai.APIConnectionError(request=_REQUEST)
        provider = OllamaLLMProvider(client=_openai_client("x", error))

        with pytest.raises(LLMError, match="Ollama API error"):
            await provider.complete("s", "u")

    def test_default_client_targets_v1_endpoint(self) -> None:
        provider = OllamaLLMProvider(base_url="http://ollama:11434/")
        assert str(provider._client.base_url).rstrip("/") == "http://ollama:11434/v1"
        assert provider.get_provider_name() == "ollama"
