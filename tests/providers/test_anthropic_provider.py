# tests/providers/test_anthropic_provider.py
"""Tests for the Anthropic provider with a mocked SDK client."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import anthropic
import httpx
import pytest

from llmrelay.exceptions import EmbeddingUnsupportedError, RateLimitedError, TransientNetworkError
from llmrelay.models import Message
from llmrelay.providers.anthropic_provider import AnthropicProvider

REQUEST = httpx.Request("POST", "https://api.anthropic.com/v1/messages")


@pytest.fixture
def provider():
    instance = AnthropicProvider({"api_key": "sk-ant-test", "model_aliases": {"claude-haiku": "claude-3-haiku-20240307"}})
    instance._client = MagicMock()
    instance._client.messages.create = AsyncMock(return_value=SimpleNamespace(
        content=[SimpleNamespace(type="text", text="Hel"), SimpleNamespace(type="text", text="lo")],
        usage=SimpleNamespace(input_tokens=10, output_tokens=3),
        stop_reason="end_turn",
    ))
    return instance


class TestAnthropicProvider:
    """Tests for request shaping and error translation."""

    def test_declares_no_embeddings(self) -> None:
        provider = AnthropicProvider({"api_key": "sk-ant-test"})
        assert provider.supports_embeddings is False
        assert provider.get_embedding_models() == []
        assert "claude-sonnet-4" in provider.get_chat_models()

    @pytest.mark.asyncio
    async def test_system_prompt_and_alias(self, provider) -> None:
        """System messages move to the system argument; catalog names map to API ids."""
        result = await provider.chat_completion(
            [Message.system("Be brief."), Message.user("hi")], model="claude-haiku", max_tokens=100000
        )

        assert result["content"] == "Hello"
        assert result["model"] == "claude-haiku"
        assert result["usage"] == {"prompt_tokens": 10, "completion_tokens": 3, "total_tokens": 13}
        assert result["finish_reason"] == "end_turn"
        kwargs = provider._client.messages.create.await_args.kwargs
        assert kwargs["model"] == "claude-3-haiku-20240307"
        assert kwargs["system"] == "Be brief."
        assert kwargs["messages"] == [{"role": "user", "content": "hi"}]
        assert kwargs["max_tokens"] == 4096

    @pytest.mark.asyncio
    async def test_default_max_tokens(self, provider) -> None:
        await provider.chat_completion([Message.user("hi")], model="claude-sonnet-4")
        kwargs = provider._client.messages.create.await_args.kwargs
        assert kwargs["max_tokens"] == 1024
        assert kwargs["model"] == "claude-sonnet-4-0"
        assert "system" not in kwargs

    @pytest.mark.asyncio
    async def test_rate_limit_translation(self, provider) -> None:
        response = httpx.Response(429, headers={"retry-after": "3"}, request=REQUEST)
        provider._client.messages.create.side_effect = anthropic.RateLimitError(
            "rate limited", response=response, body={"error": {"type": "rate_limit_error"}}
        )
        with pytest.raises(RateLimitedError) as exc_info:
            await provider.chat_completion([Message.user("hi")], model="claude-haiku")
        assert exc_info.value.retry_after == 3
        assert exc_info.value.code == "rate_limit_error"

    @pytest.mark.asyncio
    async def test_connection_translation(self, provider) -> None:
        provider._client.messages.create.side_effect = anthropic.APIConnectionError(request=REQUEST)
        with pytest.raises(TransientNetworkError):
            await provider.chat_completion([Message.user("hi")], model="claude-haiku")

    @pytest.mark.asyncio
    async def test_embeddings_unsupported(self, provider) -> None:
        with pytest.raises(EmbeddingUnsupportedError):
            await provider.generate_embeddings(["hi"])
