# src/llmrelay/embedding/service.py
"""
Embedding Service for llmrelay.

Unified interface for generating embeddings across providers:

- resolves the provider (the configured embedding provider by default) and
  checks its static embedding capability flag;
- resolves the model (configured default per provider, else the first
  model whose metadata or name marks it as an embedding model);
- validates every input text before any network call;
- calls the provider through the :class:`RetryExecutor` and normalises the
  result to one vector per input text.

Batches larger than ``batch_size`` are split and generated sequentially
with a short non-blocking pause between chunks. Single-text lookups can go
through an in-memory TTL cache.

Usage:
    service = EmbeddingService(registry, relay_config.embedding)
    vector = await service.generate("What plans do you offer?")
    vectors = await service.generate_batched(documents, batch_size=50)
    best = service.find_most_similar(vector, vectors, top_k=3)
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

from ..config.models import EmbeddingConfig
from ..exceptions import (
    EmbeddingError,
    EmbeddingUnsupportedError,
    InputValidationError,
    InvalidModelError,
    RequestTimeoutError,
    UnknownProviderError,
)
from ..models import HTTPResponse, SimilarityResult
from ..providers.base import BaseProvider
from ..providers.registry import ProviderRegistry
from ..resilience.retry import RetryExecutor
from . import similarity
from .cache import EmbeddingCache

logger = logging.getLogger(__name__)

Vector = list[float]

# Name fragments identifying embedding models that carry no metadata.
EMBEDDING_NAME_MARKERS: tuple[str, ...] = ("embedding", "ada-002")


class EmbeddingService:
    """
    Generates, caches and compares embedding vectors.

    Provider instances are shared and only read; the cache is the sole piece
    of mutable state and is never locked across a provider call.
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        config: EmbeddingConfig | None = None,
        executor: RetryExecutor | None = None,
        cache: EmbeddingCache | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """
        Args:
            registry: Registry providing the provider instances.
            config: Embedding settings; defaults are used when omitted.
            executor: Retry executor wrapping every provider call.
            cache: Cache for :meth:`generate_cached`; built from ``config``
                when omitted and caching is enabled.
            sleep: Async suspension primitive used between batches.
        """
        self.registry = registry
        self.config = config or EmbeddingConfig()
        self.executor = executor or RetryExecutor()
        if cache is None and self.config.cache_enabled:
            cache = EmbeddingCache(max_size=self.config.cache_size, ttl_seconds=self.config.cache_ttl)
        self.cache = cache
        self._sleep = sleep

    @property
    def default_provider(self) -> str:
        return self.config.provider.lower()

    # --- Capabilities -------------------------------------------------------

    def provider_supports_embeddings(self, provider: str | None = None) -> bool:
        """True if ``provider`` is registered and declares embedding support."""
        try:
            instance = self.registry.get_provider(provider or self.default_provider)
        except UnknownProviderError:
            return False
        return bool(instance.supports_embeddings)

    def get_available_models(self, provider: str | None = None) -> list[str]:
        """
        Lists the embedding models of ``provider``.

        A model qualifies when its metadata carries an embedding dimension,
        or, lacking that, when its identifier contains ``embedding`` or
        ``ada-002``.
        """
        try:
            instance = self.registry.get_provider(provider or self.default_provider)
        except UnknownProviderError:
            return []
        if not instance.supports_embeddings:
            return []

        models = []
        for model in instance.get_available_models():
            info = instance.MODEL_CATALOG.get(model)
            if info is not None and info.is_embedding_model:
                models.append(model)
            elif any(marker in model for marker in EMBEDDING_NAME_MARKERS):
                models.append(model)
        return models

    def get_default_model(self, provider: str | None = None) -> str | None:
        """Returns the configured default model for ``provider``, else its first embedding model."""
        name = (provider or self.default_provider).lower()
        configured = self.config.default_models.get(name)
        if configured:
            return configured
        available = self.get_available_models(name)
        return available[0] if available else None

    def _resolve(self, provider: str | None, model: str | None) -> tuple[str, BaseProvider, str]:
        name = (provider or self.default_provider).lower()
        instance = self.registry.get_provider(name)
        if not instance.supports_embeddings:
            raise EmbeddingUnsupportedError(name)
        model_name = model or self.get_default_model(name)
        if not model_name:
            raise EmbeddingError(None, f"No embedding model available for provider '{name}'.", code="no_embedding_model")
        if not instance.is_model_available(model_name):
            raise InvalidModelError(name, model_name)
        return name, instance, model_name

    # --- Validation ---------------------------------------------------------

    def validate_texts(self, texts: Sequence[Any]) -> None:
        """
        Checks every text is a non-empty string within ``max_text_length``.

        Raises:
            InputValidationError: On the first invalid entry, naming its index.
        """
        if not texts:
            raise InputValidationError("Texts must be a non-empty list.", code="invalid_input")
        for index, text in enumerate(texts):
            if not isinstance(text, str) or not text:
                raise InputValidationError(f"Text at index {index} is invalid or empty.", index=index, code="invalid_text")
            if len(text) > self.config.max_text_length:
                raise InputValidationError(
                    f"Text at index {index} exceeds maximum length of {self.config.max_text_length} characters.",
                    index=index,
                    code="text_too_long",
                )

    @staticmethod
    def normalize_embeddings(embeddings: Any) -> list[Vector]:
        """Returns one vector per text, wrapping a bare vector into a list."""
        if isinstance(embeddings, HTTPResponse):
            embeddings = embeddings.data
        if not embeddings:
            return []
        first = embeddings[0]
        if isinstance(first, (int, float)):
            return [[float(x) for x in embeddings]]
        return [list(vector) for vector in embeddings]

    # --- Generation ---------------------------------------------------------

    async def generate(
        self,
        text: str | Sequence[str],
        provider: str | None = None,
        model: str | None = None,
        *,
        timeout: float | None = None,
    ) -> Vector | list[Vector]:
        """
        Generates embeddings for one text or a list of texts.

        Args:
            text: A single text, or a sequence of texts.
            provider: Provider name; defaults to the configured embedding provider.
            model: Model name; defaults to :meth:`get_default_model`.
            timeout: Overall budget in seconds, including retries.

        Returns:
            A single vector for a string input, otherwise one vector per text.

        Raises:
            UnknownProviderError: The provider is not registered.
            EmbeddingUnsupportedError: The provider has no embedding capability.
            InvalidModelError: The model does not belong to the provider.
            InputValidationError: A text is empty or too long.
        """
        single = isinstance(text, str)
        texts = [text] if single else list(text)
        deadline = asyncio.get_running_loop().time() + timeout if timeout is not None else None
        vectors = await self._generate(texts, provider, model, deadline)
        return vectors[0] if single else vectors

    async def _generate(
        self,
        texts: list[str],
        provider: str | None,
        model: str | None,
        deadline: float | None,
    ) -> list[Vector]:
        name, instance, model_name = self._resolve(provider, model)
        self.validate_texts(texts)

        try:
            raw = await self.executor.execute(
                lambda attempt: instance.generate_embeddings(texts, model_name),
                deadline=deadline,
                provider_name=name,
            )
        except Exception as e:
            logger.error(
                f"Failed to generate embeddings (provider={name}, model={model_name}, "
                f"text_count={len(texts)}): {e}"
            )
            raise

        vectors = self.normalize_embeddings(raw)
        if len(vectors) != len(texts):
            raise EmbeddingError(
                model_name,
                f"Provider returned {len(vectors)} vector(s) for {len(texts)} text(s).",
                code="count_mismatch",
            )
        return vectors

    async def generate_batched(
        self,
        texts: Sequence[str],
        provider: str | None = None,
        model: str | None = None,
        batch_size: int | None = None,
        *,
        timeout: float | None = None,
    ) -> list[Vector]:
        """
        Generates embeddings for a large list of texts in sequential chunks.

        The whole operation fails on the first failing chunk; no partial
        result is returned.
        """
        if isinstance(texts, str) or not texts:
            raise InputValidationError("Texts must be a non-empty list.", code="invalid_input")
        size = batch_size or self.config.batch_size
        if size <= 0:
            raise InputValidationError(f"Batch size must be positive, got {size}.", code="invalid_input")

        deadline = asyncio.get_running_loop().time() + timeout if timeout is not None else None
        batches = [list(texts[i:i + size]) for i in range(0, len(texts), size)]
        all_embeddings: list[Vector] = []
        for batch_index, batch in enumerate(batches):
            logger.info(f"Processing embedding batch {batch_index + 1}/{len(batches)} ({len(batch)} texts)")
            try:
                all_embeddings.extend(await self._generate(batch, provider, model, deadline))
            except Exception as e:
                logger.error(f"Batch embedding generation failed at batch {batch_index + 1}: {e}")
                raise

            if batch_index < len(batches) - 1:
                await self._pause(deadline)
        return all_embeddings

    async def _pause(self, deadline: float | None) -> None:
        delay = self.config.batch_delay
        if deadline is not None and delay >= deadline - asyncio.get_running_loop().time():
            raise RequestTimeoutError("Request deadline exceeded between embedding batches.")
        await self._sleep(delay)

    async def generate_cached(
        self,
        text: str,
        provider: str | None = None,
        model: str | None = None,
        *,
        timeout: float | None = None,
    ) -> Vector:
        """Returns the cached vector for ``text`` or generates and caches it."""
        if not text:
            raise InputValidationError("Text cannot be empty.", code="empty_text")
        name, _, model_name = self._resolve(provider, model)
        if self.cache is None:
            return await self.generate(text, name, model_name, timeout=timeout)

        cached = self.cache.get(text, model_name, name)
        if cached is not None:
            return cached
        vector = await self.generate(text, name, model_name, timeout=timeout)
        self.cache.set(text, model_name, name, vector)
        return vector

    # --- Similarity ---------------------------------------------------------

    @staticmethod
    def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
        return similarity.cosine_similarity(a, b)

    @staticmethod
    def find_most_similar(
        query: Sequence[float],
        candidates: Sequence[Sequence[float]],
        top_k: int = 10,
    ) -> list[SimilarityResult]:
        return similarity.find_most_similar(query, candidates, top_k)

    def get_statistics(self) -> dict[str, Any]:
        """Returns cache statistics and the resolved defaults."""
        return {
            "provider": self.default_provider,
            "default_model": self.get_default_model(),
            "cache": self.cache.stats if self.cache is not None else None,
        }


__all__ = ["EMBEDDING_NAME_MARKERS", "EmbeddingService", "Vector"]
