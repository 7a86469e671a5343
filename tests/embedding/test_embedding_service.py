# tests/embedding/test_embedding_service.py
"""
Tests for the embedding service.

Covers provider/model resolution, input validation, single and list
generation, batching, the request timeout, caching and retry integration.
"""

import asyncio
import time

import pytest

from llmrelay.config.models import EmbeddingConfig, RetryPolicy
from llmrelay.embedding.cache import EmbeddingCache
from llmrelay.embedding.service import EmbeddingService
from llmrelay.exceptions import (
    EmbeddingError,
    EmbeddingUnsupportedError,
    InputValidationError,
    InvalidModelError,
    RequestTimeoutError,
    RetriesExhaustedError,
    UnknownProviderError,
    UpstreamServerError,
)
from llmrelay.models import HTTPResponse
from llmrelay.providers.registry import ProviderRegistry
from llmrelay.resilience.retry import RetryExecutor


@pytest.fixture
def service(registry, recording_sleep) -> EmbeddingService:
    executor = RetryExecutor(RetryPolicy(max_retries=1, jitter=False), sleep=recording_sleep)
    return EmbeddingService(
        registry,
        EmbeddingConfig(batch_size=2, batch_delay=0.1),
        executor,
        sleep=recording_sleep,
    )


class TestResolution:
    """Tests for capability checks and model resolution."""

    def test_supports_embeddings(self, service) -> None:
        assert service.provider_supports_embeddings() is True
        assert service.provider_supports_embeddings("google") is True
        assert service.provider_supports_embeddings("anthropic") is False
        assert service.provider_supports_embeddings("mistral") is False

    def test_available_models(self, service) -> None:
        assert service.get_available_models("openai") == ["text-embedding-3-small", "text-embedding-ada-002"]
        assert service.get_available_models("anthropic") == []
        assert service.get_available_models("mistral") == []

    def test_name_marker_identifies_models_without_metadata(self, make_provider) -> None:
        """A model named like an embedding model counts even without a dimension."""
        provider = make_provider("azure", chat_models=("gpt-4o", "my-embedding-large"))
        service = EmbeddingService(ProviderRegistry.from_providers([provider]), EmbeddingConfig(provider="azure"))
        assert service.get_available_models() == ["my-embedding-large"]

    def test_default_model(self, service) -> None:
        assert service.get_default_model() == "text-embedding-3-small"
        assert service.get_default_model("google") == "text-embedding-004"
        assert service.get_default_model("anthropic") is None

    def test_default_model_falls_back_to_first_available(self, make_provider) -> None:
        provider = make_provider("azure", chat_models=(), embedding_models={"embed-a": 3, "embed-b": 3})
        service = EmbeddingService(ProviderRegistry.from_providers([provider]), EmbeddingConfig(provider="azure"))
        assert service.get_default_model() == "embed-a"


class TestGenerate:
    """Tests for generate()."""

    @pytest.mark.asyncio
    async def test_single_text_returns_one_vector(self, service, openai_like) -> None:
        vector = await service.generate("hello")
        assert vector == [5.0, 1.0, 0.5, 0.5]
        assert openai_like.embedding_calls == [{"texts": ["hello"], "model": "text-embedding-3-small"}]

    @pytest.mark.asyncio
    async def test_list_returns_one_vector_per_text(self, service) -> None:
        vectors = await service.generate(["a", "bb", "ccc"], provider="google")
        assert [v[0] for v in vectors] == [1.0, 2.0, 3.0]
        assert all(len(v) == 4 for v in vectors)

    @pytest.mark.asyncio
    async def test_bare_vector_is_normalized(self, service, openai_like) -> None:
        openai_like.embedding_script = [[0.1, 0.2, 0.3, 0.4]]
        assert await service.generate(["hello"]) == [[0.1, 0.2, 0.3, 0.4]]

    @pytest.mark.asyncio
    async def test_structured_response_is_unwrapped(self, service, openai_like) -> None:
        openai_like.embedding_script = [HTTPResponse(status_code=200, data=[[0.1, 0.2, 0.3, 0.4]])]
        assert await service.generate(["hello"]) == [[0.1, 0.2, 0.3, 0.4]]

    @pytest.mark.asyncio
    async def test_count_mismatch(self, service, openai_like) -> None:
        openai_like.embedding_script = [[[0.1, 0.2, 0.3, 0.4]]]
        with pytest.raises(EmbeddingError) as exc_info:
            await service.generate(["a", "b"])
        assert exc_info.value.code == "count_mismatch"

    @pytest.mark.asyncio
    async def test_unsupported_provider(self, service, anthropic_like) -> None:
        with pytest.raises(EmbeddingUnsupportedError):
            await service.generate("hello", provider="anthropic")

    @pytest.mark.asyncio
    async def test_unknown_provider(self, service) -> None:
        with pytest.raises(UnknownProviderError):
            await service.generate("hello", provider="mistral")

    @pytest.mark.asyncio
    async def test_unknown_model(self, service, openai_like) -> None:
        with pytest.raises(InvalidModelError):
            await service.generate("hello", model="text-embedding-9")
        assert openai_like.embedding_calls == []

    @pytest.mark.asyncio
    async def test_transient_failure_is_retried(self, service, openai_like, recording_sleep) -> None:
        openai_like.embedding_script = [UpstreamServerError("openai", 503)]
        vector = await service.generate("hello")
        assert vector[0] == 5.0
        assert len(openai_like.embedding_calls) == 2
        assert recording_sleep.delays == [1.0]

    @pytest.mark.asyncio
    async def test_persistent_failure_propagates(self, service, openai_like) -> None:
        openai_like.embedding_script = [UpstreamServerError("openai", 503)] * 2
        with pytest.raises(RetriesExhaustedError):
            await service.generate("hello")


class TestValidation:
    """Tests for input validation."""

    @pytest.mark.asyncio
    async def test_empty_list(self, service) -> None:
        with pytest.raises(InputValidationError) as exc_info:
            await service.generate([])
        assert exc_info.value.code == "invalid_input"

    @pytest.mark.asyncio
    async def test_empty_text_names_index(self, service, openai_like) -> None:
        """Validation fails before any provider call and names the bad index."""
        with pytest.raises(InputValidationError) as exc_info:
            await service.generate(["ok", ""])
        assert exc_info.value.code == "invalid_text"
        assert exc_info.value.index == 1
        assert openai_like.embedding_calls == []

    @pytest.mark.asyncio
    async def test_text_too_long(self, registry) -> None:
        service = EmbeddingService(registry, EmbeddingConfig(max_text_length=5))
        with pytest.raises(InputValidationError) as exc_info:
            await service.generate(["short", "too long"])
        assert exc_info.value.code == "text_too_long"
        assert exc_info.value.index == 1

    def test_non_string_entry(self, service) -> None:
        with pytest.raises(InputValidationError) as exc_info:
            service.validate_texts(["a", 3])
        assert exc_info.value.index == 1


class TestGenerateBatched:
    """Tests for generate_batched()."""

    @pytest.mark.asyncio
    async def test_splits_into_sequential_batches(self, service, openai_like, recording_sleep) -> None:
        """Five texts with batch_size 2 make three calls and two pauses."""
        texts = ["a", "bb", "ccc", "dddd", "eeeee"]
        vectors = await service.generate_batched(texts)

        assert [v[0] for v in vectors] == [1.0, 2.0, 3.0, 4.0, 5.0]
        assert [call["texts"] for call in openai_like.embedding_calls] == [["a", "bb"], ["ccc", "dddd"], ["eeeee"]]
        assert recording_sleep.delays == [0.1, 0.1]

    @pytest.mark.asyncio
    async def test_explicit_batch_size(self, service, openai_like) -> None:
        await service.generate_batched(["a", "b", "c"], batch_size=3)
        assert len(openai_like.embedding_calls) == 1

    @pytest.mark.asyncio
    async def test_failing_batch_aborts(self, service, openai_like) -> None:
        """A failing chunk fails the whole operation; later chunks are not sent."""
        openai_like.embedding_script = [[[1.0] * 4, [2.0] * 4], InvalidModelError("openai", "x")]
        with pytest.raises(InvalidModelError):
            await service.generate_batched(["a", "b", "c", "d", "e"])
        assert len(openai_like.embedding_calls) == 2

    @pytest.mark.asyncio
    async def test_rejects_empty_and_string_input(self, service) -> None:
        with pytest.raises(InputValidationError):
            await service.generate_batched([])
        with pytest.raises(InputValidationError):
            await service.generate_batched("not a list")

    @pytest.mark.asyncio
    async def test_pause_past_timeout_raises(self, service, openai_like, recording_sleep) -> None:
        """An inter-batch delay that would outlast the timeout stops before the next batch."""
        with pytest.raises(RequestTimeoutError):
            await service.generate_batched(["a", "b", "c", "d"], timeout=0.05)

        assert len(openai_like.embedding_calls) == 1
        assert recording_sleep.delays == []

    @pytest.mark.asyncio
    async def test_hanging_batch_cancelled_at_timeout(self, service, openai_like) -> None:
        async def hanging_embeddings(texts, model=None):
            await asyncio.sleep(10)

        openai_like.generate_embeddings = hanging_embeddings
        start = time.perf_counter()

        with pytest.raises(RequestTimeoutError):
            await service.generate_batched(["a", "b", "c"], timeout=0.2)

        assert time.perf_counter() - start < 2.0

    @pytest.mark.asyncio
    async def test_pause_within_timeout_sleeps(self, service, recording_sleep) -> None:
        vectors = await service.generate_batched(["a", "b", "c"], timeout=30.0)
        assert len(vectors) == 3
        assert recording_sleep.delays == [0.1]


class TestGenerateCached:
    """Tests for generate_cached()."""

    @pytest.mark.asyncio
    async def test_second_call_hits_cache(self, registry, openai_like) -> None:
        """Two identical requests produce one upstream call."""
        cache = EmbeddingCache(max_size=10)
        service = EmbeddingService(registry, EmbeddingConfig(), cache=cache)

        first = await service.generate_cached("hello")
        second = await service.generate_cached("hello")

        assert first == second
        assert len(openai_like.embedding_calls) == 1
        assert cache.stats["hits"] == 1
        assert cache.stats["misses"] == 1

    @pytest.mark.asyncio
    async def test_cache_keyed_by_provider(self, registry, openai_like, google_like) -> None:
        service = EmbeddingService(registry, EmbeddingConfig(), cache=EmbeddingCache())
        await service.generate_cached("hello")
        await service.generate_cached("hello", provider="google")
        assert len(openai_like.embedding_calls) == 1
        assert len(google_like.embedding_calls) == 1

    @pytest.mark.asyncio
    async def test_cache_disabled(self, registry, openai_like) -> None:
        service = EmbeddingService(registry, EmbeddingConfig(cache_enabled=False))
        assert service.cache is None
        await service.generate_cached("hello")
        await service.generate_cached("hello")
        assert len(openai_like.embedding_calls) == 2

    @pytest.mark.asyncio
    async def test_empty_text(self, service) -> None:
        with pytest.raises(InputValidationError) as exc_info:
            await service.generate_cached("")
        assert exc_info.value.code == "empty_text"


class TestSimilarityAndStatistics:
    """Tests for similarity helpers and statistics."""

    def test_find_most_similar(self, service) -> None:
        results = service.find_most_similar([1.0, 0.0], [[0.0, 1.0], [1.0, 0.0]], top_k=1)
        assert results[0].index == 1

    def test_statistics(self, service) -> None:
        stats = service.get_statistics()
        assert stats["provider"] == "openai"
        assert stats["default_model"] == "text-embedding-3-small"
        assert stats["cache"]["size"] == 0
