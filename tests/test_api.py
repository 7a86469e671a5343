# tests/test_api.py
"""
Tests for the LLMRelay facade.

The facade is created from plain dict configurations with scripted
providers, so no configuration layering or network access is involved.
"""

import pytest
import pytest_asyncio

from llmrelay import LLMRelay
from llmrelay.config.models import RelayConfig
from llmrelay.exceptions import ChainExhaustedError, ConfigError, UpstreamServerError
from llmrelay.models import Role

FAST_CONFIG = {
    "retry": {"max_retries": 0},
    "embedding": {"batch_size": 2, "batch_delay": 0.0},
}


@pytest_asyncio.fixture
async def relay(openai_like, anthropic_like, google_like):
    instance = await LLMRelay.create(FAST_CONFIG, providers=[openai_like, anthropic_like, google_like])
    yield instance
    await instance.close()


class TestCreate:
    """Tests for LLMRelay.create."""

    @pytest.mark.asyncio
    async def test_from_dict(self, relay) -> None:
        assert relay.config.retry.max_retries == 0
        assert relay.get_available_providers() == ["openai", "anthropic", "google"]
        assert relay.embeddings.cache is not None

    @pytest.mark.asyncio
    async def test_from_relay_config(self, openai_like) -> None:
        config = RelayConfig.from_store({"embedding": {"cache_enabled": False}})
        relay = await LLMRelay.create(config, providers=[openai_like])
        assert relay.config is config
        assert relay.embeddings.cache is None

    @pytest.mark.asyncio
    async def test_invalid_config(self) -> None:
        with pytest.raises(ConfigError):
            await LLMRelay.create({"routing": {"simple_threshold": 500}}, providers=[])

    @pytest.mark.asyncio
    async def test_providers_from_configuration(self, monkeypatch) -> None:
        """Without pre-built providers the registry reads the providers section."""
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        relay = await LLMRelay.create({"providers": {"openai": {}}})
        assert relay.get_available_providers() == ["openai"]
        assert relay.get_providers_status()["openai"]["configured"] is False
        await relay.close()


class TestChat:
    """Tests for chat through the facade."""

    @pytest.mark.asyncio
    async def test_prompt_with_system_message(self, relay, openai_like) -> None:
        response = await relay.chat("Translate hello", system_message="Be brief.")

        assert response.provider == "openai"
        context = openai_like.chat_calls[0]["context"]
        assert [m.role for m in context] == [Role.SYSTEM, Role.USER]

    @pytest.mark.asyncio
    async def test_fallback_through_facade(self, relay, openai_like) -> None:
        openai_like.chat_script = [UpstreamServerError("openai", 502)]
        response = await relay.chat("Translate hello")
        assert response.provider == "anthropic"
        assert response.fallback_used is True

    @pytest.mark.asyncio
    async def test_forced_route(self, relay, google_like) -> None:
        response = await relay.chat(
            [{"role": "user", "content": "hi"}], force_provider="google", force_model="gemini-1.5-pro"
        )
        assert response.provider == "google"
        assert response.model == "gemini-1.5-pro"

    @pytest.mark.asyncio
    async def test_all_fail(self, relay, openai_like, anthropic_like, google_like) -> None:
        for provider in (openai_like, anthropic_like, google_like):
            provider.chat_script = [UpstreamServerError(provider.get_name(), 500)]
        with pytest.raises(ChainExhaustedError):
            await relay.chat("Translate hello")

    @pytest.mark.asyncio
    async def test_route_and_recommendation(self, relay) -> None:
        assert relay.route("Translate hello").model == "gpt-3.5-turbo"
        assert relay.get_recommendation("Translate hello")["provider"] == "openai"


class TestEmbeddings:
    """Tests for embeddings through the facade."""

    @pytest.mark.asyncio
    async def test_cached_embed(self, relay, openai_like) -> None:
        first = await relay.embed("hello", cached=True)
        second = await relay.embed("hello", cached=True)
        assert first == second
        assert len(openai_like.embedding_calls) == 1

    @pytest.mark.asyncio
    async def test_embed_list_and_batched(self, relay, google_like) -> None:
        vectors = await relay.embed(["a", "b"], provider="google")
        assert len(vectors) == 2
        batched = await relay.embed_batched(["a", "b", "c"], provider="google")
        assert len(batched) == 3
        assert len(google_like.embedding_calls) == 3

    @pytest.mark.asyncio
    async def test_find_most_similar(self, relay) -> None:
        query = await relay.embed("abc")
        candidates = await relay.embed(["a", "abc"])
        assert relay.find_most_similar(query, candidates, top_k=1)[0].index == 1


class TestIntrospection:
    """Tests for status, statistics and shutdown."""

    @pytest.mark.asyncio
    async def test_statistics(self, relay) -> None:
        await relay.chat("Translate hello")
        stats = relay.get_statistics()
        assert stats["retry"]["executions"] == 1
        assert stats["fallback"]["successful_primary"] == 1
        assert stats["embedding"]["cache"]["size"] == 0

    @pytest.mark.asyncio
    async def test_chain_status(self, relay) -> None:
        assert relay.get_fallback_chain_status()["chain_length"] == 3

    @pytest.mark.asyncio
    async def test_context_manager_closes_providers(self, openai_like) -> None:
        async with await LLMRelay.create(FAST_CONFIG, providers=[openai_like]) as relay:
            await relay.embed("hello", cached=True)
        assert openai_like.closed is True
        assert len(relay.embeddings.cache) == 0
