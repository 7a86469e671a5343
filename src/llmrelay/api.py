# src/llmrelay/api.py
"""
Core API Facade for the llmrelay library.

Wires the provider registry, the router, the retry executor, the fallback
orchestrator and the embedding service from one validated configuration.

Usage:
    async with await LLMRelay.create(config_file_path="~/.config/llmrelay/config.toml") as relay:
        response = await relay.chat("Compare the pro and team plans", timeout=30.0)
        print(response.provider, response.model, response.content)

        vector = await relay.embed("refund policy", cached=True)
"""

import logging
from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .config.loader import DEFAULT_ENV_PREFIX, config_from_store, load_config
from .config.models import RelayConfig
from .embedding.cache import EmbeddingCache
from .embedding.service import EmbeddingService, Vector
from .logging_config import log_display
from .models import ChatResponse, Message, Route, SimilarityResult
from .providers.base import BaseProvider
from .providers.registry import ProviderRegistry
from .resilience.retry import RetryExecutor
from .routing.fallback import FallbackOrchestrator
from .routing.model_router import ModelRouter

logger = logging.getLogger(__name__)


class LLMRelay:
    """
    Main entry point for resilient, routed LLM calls.

    Initialised through the :meth:`LLMRelay.create` classmethod. Every
    component is also reachable as an attribute for callers needing
    finer control (``relay.router``, ``relay.orchestrator``...).
    """
    config: RelayConfig
    registry: ProviderRegistry
    executor: RetryExecutor
    router: ModelRouter
    orchestrator: FallbackOrchestrator
    embeddings: EmbeddingService

    def __init__(self, config: RelayConfig, registry: ProviderRegistry):
        """
        Builds the components around an existing registry. Prefer
        :meth:`LLMRelay.create`, which also loads and validates configuration.
        """
        self.config = config
        self.registry = registry
        self.executor = RetryExecutor(config.retry)
        self.router = ModelRouter(registry, config.routing)
        self.orchestrator = FallbackOrchestrator(registry, self.router, self.executor, config.fallback)
        cache = None
        if config.embedding.cache_enabled:
            cache = EmbeddingCache(max_size=config.embedding.cache_size, ttl_seconds=config.embedding.cache_ttl)
        self.embeddings = EmbeddingService(registry, config.embedding, self.executor, cache)

    @classmethod
    async def create(
        cls,
        config: Optional[Union[RelayConfig, Dict[str, Any]]] = None,
        *,
        config_file_path: Optional[Union[str, Path]] = None,
        config_overrides: Optional[Dict[str, Any]] = None,
        env_prefix: Optional[str] = DEFAULT_ENV_PREFIX,
        providers: Optional[Iterable[BaseProvider]] = None,
    ) -> "LLMRelay":
        """
        Creates and initializes an LLMRelay instance.

        Args:
            config: A validated ``RelayConfig`` or a plain nested dict of
                sections. When omitted, configuration is layered through
                confy from the packaged defaults, ``config_file_path``,
                ``env_prefix`` environment variables and ``config_overrides``.
            config_file_path: Optional user TOML file.
            config_overrides: Highest-precedence overrides.
            env_prefix: Environment variable prefix, ``None`` to disable.
            providers: Pre-built provider instances; when given they replace
                the ``[providers]`` section entirely.

        Raises:
            ConfigError: If configuration cannot be loaded or validated.
        """
        if isinstance(config, RelayConfig):
            relay_config = config
        elif config is not None:
            relay_config = config_from_store(config)
        else:
            relay_config = load_config(config_file_path, env_prefix, config_overrides)

        if providers is not None:
            registry = ProviderRegistry.from_providers(providers, default_provider=relay_config.default_provider)
        else:
            registry = ProviderRegistry(
                relay_config.providers,
                default_provider=relay_config.default_provider,
                log_raw_payloads=relay_config.log_raw_payloads,
            )

        instance = cls(relay_config, registry)
        log_display(
            logger,
            logging.INFO,
            f"llmrelay ready: {len(registry.get_configured_providers())} configured provider(s), "
            f"default '{registry.default_provider_name}'.",
        )
        return instance

    # --- Chat ---------------------------------------------------------------

    async def chat(
        self,
        messages: Union[str, Sequence[Union[Message, Dict[str, Any], str]]],
        *,
        system_message: Optional[str] = None,
        **kwargs: Any,
    ) -> ChatResponse:
        """
        Sends a chat completion through routing and the fallback chain.

        Args:
            messages: A user prompt, or a full list of messages.
            system_message: Prepended as a system message when given.
            **kwargs: Forwarded to :meth:`FallbackOrchestrator.complete_with_fallback`
                (``timeout``, ``force_provider``, ``force_model``,
                ``cost_priority``, ``complexity``, ``temperature``...).

        Raises:
            ChainExhaustedError: If every route failed or a terminal failure aborted the chain.
        """
        context: List[Union[Message, Dict[str, Any], str]] = [messages] if isinstance(messages, str) else list(messages)
        if system_message:
            context.insert(0, Message.system(system_message))
        return await self.orchestrator.complete_with_fallback(context, **kwargs)

    def route(self, text: str, **kwargs: Any) -> Route:
        """Returns the route the router would pick for ``text`` without calling any provider."""
        return self.router.route(text, **kwargs)

    def get_recommendation(self, text: str) -> Dict[str, Any]:
        return self.router.get_recommendation(text)

    # --- Embeddings ---------------------------------------------------------

    async def embed(
        self,
        text: Union[str, Sequence[str]],
        provider: Optional[str] = None,
        model: Optional[str] = None,
        *,
        cached: bool = False,
        timeout: Optional[float] = None,
    ) -> Union[Vector, List[Vector]]:
        """
        Generates embeddings for one text or a list of texts.

        ``cached=True`` serves a single text through the embedding cache.
        """
        if cached and isinstance(text, str):
            return await self.embeddings.generate_cached(text, provider, model, timeout=timeout)
        return await self.embeddings.generate(text, provider, model, timeout=timeout)

    async def embed_batched(
        self,
        texts: Sequence[str],
        provider: Optional[str] = None,
        model: Optional[str] = None,
        batch_size: Optional[int] = None,
        *,
        timeout: Optional[float] = None,
    ) -> List[Vector]:
        return await self.embeddings.generate_batched(texts, provider, model, batch_size, timeout=timeout)

    def find_most_similar(
        self,
        query: Sequence[float],
        candidates: Sequence[Sequence[float]],
        top_k: int = 10,
    ) -> List[SimilarityResult]:
        return self.embeddings.find_most_similar(query, candidates, top_k)

    # --- Introspection ------------------------------------------------------

    def get_available_providers(self) -> List[str]:
        """Lists the names of all successfully loaded provider instances."""
        return self.registry.get_available_providers()

    def get_providers_status(self) -> Dict[str, Dict[str, Any]]:
        return self.registry.get_providers_status()

    def get_fallback_chain_status(self) -> Dict[str, Any]:
        return self.orchestrator.get_chain_status()

    def get_statistics(self) -> Dict[str, Any]:
        """Aggregated counters of the retry executor, the fallback chain and the embedding cache."""
        return {
            "retry": self.executor.get_statistics(),
            "fallback": self.orchestrator.get_statistics(),
            "embedding": self.embeddings.get_statistics(),
        }

    async def close(self) -> None:
        """Closes all provider connections gracefully."""
        logger.info("Closing llmrelay resources...")
        await self.registry.close()
        if self.embeddings.cache is not None:
            self.embeddings.cache.clear()
        logger.info("llmrelay resources cleanup complete.")

    async def __aenter__(self) -> "LLMRelay":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


__all__ = ["LLMRelay"]
