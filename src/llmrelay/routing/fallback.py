# src/llmrelay/routing/fallback.py
"""
Fallback Orchestrator for resilient chat completions.

Executes a chat completion across an ordered chain of routes until one
succeeds. Every route runs through the :class:`RetryExecutor`, so each one
gets bounded local retry before the chain moves on.

Chain construction:
    - fallback disabled: the router's primary route only.
    - explicit ``fallback.chain``: configured entries, in order, keeping
      only those whose provider is available and whose model exists.
    - otherwise (derived): the router's primary route followed by every
      other configured provider with its preferred model for the tier.

Chain state per request:
    Attempting(route_i) -> Success
                         | Advance(route_i+1)   chain-retryable failure
                         | Aborted              chain-terminal failure
                         | Exhausted            no route left

Usage:
    orchestrator = FallbackOrchestrator(registry, router, RetryExecutor())
    response = await orchestrator.complete_with_fallback(
        [Message.user("Compare the pro and team plans")],
        timeout=30.0,
    )
    response.provider, response.fallback_used
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Sequence
from typing import Any

from ..config.models import FallbackConfig, RetryPolicy
from ..exceptions import (
    ChainExhaustedError,
    ConfigError,
    NoProvidersAvailableError,
    RequestTimeoutError,
    RetriesExhaustedError,
)
from ..models import AttemptRecord, ChatResponse, ComplexityTier, CostPriority, HTTPResponse, Message, Role, Route
from ..providers.base import BaseProvider
from ..providers.registry import ProviderRegistry
from ..resilience.retry import RetryExecutor
from .model_router import ModelRouter, coerce_tier

logger = logging.getLogger(__name__)

# Failure codes that stop the chain at the current route.
TERMINAL_ERROR_CODES: frozenset[str] = frozenset({
    "not_configured",
    "invalid_model",
    "unknown_provider",
    "provider_class_not_found",
    "invalid_provider",
    "configuration_error",
    "no_providers_available",
    "deadline_exceeded",
})


def _to_messages(messages: Sequence[Message | dict[str, Any] | str]) -> list[Message]:
    converted: list[Message] = []
    for item in messages:
        if isinstance(item, Message):
            converted.append(item)
        elif isinstance(item, str):
            converted.append(Message.user(item))
        else:
            converted.append(Message.model_validate(item))
    return converted


def _last_user_text(messages: Sequence[Message]) -> str:
    for message in reversed(messages):
        if message.role == Role.USER:
            return message.content
    return ""


class FallbackOrchestrator:
    """
    Runs chat completions over a fallback chain of routes.

    The orchestrator keeps only aggregate statistics between requests; the
    chain and its attempt records live in the scope of a single call.
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        router: ModelRouter,
        executor: RetryExecutor | None = None,
        config: FallbackConfig | None = None,
    ):
        self.registry = registry
        self.router = router
        self.executor = executor or RetryExecutor()
        self.config = config or FallbackConfig()
        self._stats = {
            "total_requests": 0,
            "successful_primary": 0,
            "successful_fallback": 0,
            "aborted": 0,
            "exhausted": 0,
        }

    # --- Chain construction -------------------------------------------------

    def build_chain(
        self,
        query: str = "",
        *,
        complexity: ComplexityTier | str | None = None,
        cost_priority: CostPriority | str | None = None,
        force_provider: str | None = None,
        force_model: str | None = None,
    ) -> list[Route]:
        """
        Builds the ordered list of routes for one request.

        A forced provider/model pair always becomes the first route; the
        remaining routes follow the configured chain mode. Duplicate
        provider/model pairs are dropped.

        Raises:
            ConfigError: The forced pair or the primary route cannot be resolved.
        """
        forced = bool(force_provider and force_model)
        if complexity is not None:
            tier = coerce_tier(complexity)
        elif query:
            tier = self.router.analyze_complexity(query)
        else:
            tier = ComplexityTier.MEDIUM

        def primary_route() -> Route:
            return self.router.route(
                query,
                force_provider=force_provider,
                force_model=force_model,
                cost_priority=cost_priority,
                complexity=tier,
            )

        if not self.config.enabled:
            return [primary_route()]

        chain: list[Route] = []
        if self.config.chain:
            if forced:
                chain.append(primary_route())
            for target in self.config.chain:
                route = self._route_from_target(target.provider, target.model, tier)
                if route is not None:
                    chain.append(route)
            return self._dedupe(chain)

        primary = primary_route()
        chain.append(primary)
        for provider_name in self.registry.get_configured_providers():
            if provider_name == primary.provider_name:
                continue
            provider = self.registry.get_provider(provider_name)
            model = self.get_fallback_model_for_provider(provider, tier)
            if model is None:
                logger.debug(f"Provider '{provider_name}' has no chat model to fall back to. Skipping.")
                continue
            chain.append(Route(
                provider_name=provider_name,
                model=model,
                provider=provider,
                complexity=tier,
                source="derived",
            ))
        return self._dedupe(chain)

    def _route_from_target(self, provider_name: str, model: str, tier: ComplexityTier) -> Route | None:
        if not self.registry.is_provider_available(provider_name):
            logger.warning(f"Fallback chain entry '{provider_name}/{model}' skipped: provider is not available.")
            return None
        provider = self.registry.get_provider(provider_name)
        if not provider.is_model_available(model):
            logger.warning(f"Fallback chain entry '{provider_name}/{model}' skipped: model is not available.")
            return None
        return Route(provider_name=provider_name, model=model, provider=provider, complexity=tier, source="configured")

    @staticmethod
    def _dedupe(chain: list[Route]) -> list[Route]:
        seen: set[tuple[str, str]] = set()
        unique = []
        for route in chain:
            key = (route.provider_name, route.model)
            if key not in seen:
                seen.add(key)
                unique.append(route)
        return unique

    def get_fallback_model_for_provider(self, provider: BaseProvider, tier: ComplexityTier) -> str | None:
        """Returns the preferred model of ``provider`` for ``tier``, else its first chat model."""
        preferred = self.config.model_preferences.get(provider.get_name(), {}).get(tier)
        if preferred and provider.is_model_available(preferred):
            return preferred
        chat_models = provider.get_chat_models()
        return chat_models[0] if chat_models else None

    # --- Classification -----------------------------------------------------

    @staticmethod
    def is_chain_retryable(error: BaseException) -> bool:
        """
        Decides whether a failed route should advance the chain.

        Configuration-class failures and deadline expiry abort. Exhausted
        local retries advance. Otherwise the embedded HTTP status decides
        (429 and 5xx advance, other 4xx abort); anything else advances.
        """
        code = getattr(error, "code", None)
        if code in TERMINAL_ERROR_CODES or isinstance(error, (ConfigError, RequestTimeoutError)):
            return False
        if isinstance(error, RetriesExhaustedError):
            return True
        status = getattr(error, "status_code", None)
        if isinstance(status, int):
            if status == 429 or 500 <= status < 600:
                return True
            if 400 <= status < 500:
                return False
        return True

    # --- Execution ----------------------------------------------------------

    async def complete_with_fallback(
        self,
        messages: Sequence[Message | dict[str, Any] | str],
        *,
        query: str | None = None,
        timeout: float | None = None,
        retry_policy: RetryPolicy | None = None,
        force_provider: str | None = None,
        force_model: str | None = None,
        cost_priority: CostPriority | str | None = None,
        complexity: ComplexityTier | str | None = None,
        **completion_kwargs: Any,
    ) -> ChatResponse:
        """
        Executes a chat completion across the fallback chain.

        Args:
            messages: Conversation to send; strings are treated as user messages.
            query: Text used for routing; defaults to the last user message.
            timeout: Overall budget in seconds for every attempt and backoff wait.
            retry_policy: Per-request retry policy for each route.
            force_provider: Provider for the first route (requires ``force_model``).
            force_model: Model for the first route (requires ``force_provider``).
            cost_priority: Routing priority for the primary route.
            complexity: Pre-computed complexity tier.
            **completion_kwargs: Passed to ``chat_completion`` (e.g. ``temperature``).

        Returns:
            The winning route's response, annotated with the attempt history.

        Raises:
            NoProvidersAvailableError: The chain came out empty.
            ChainExhaustedError: Every attempted route failed, or a terminal
                failure stopped the chain (``state == "aborted"``).
        """
        self._stats["total_requests"] += 1
        context = _to_messages(messages)
        if query is None:
            query = _last_user_text(context)
        deadline = asyncio.get_running_loop().time() + timeout if timeout is not None else None

        try:
            chain = self.build_chain(
                query,
                complexity=complexity,
                cost_priority=cost_priority,
                force_provider=force_provider,
                force_model=force_model,
            )
        except ConfigError:
            self._stats["aborted"] += 1
            raise
        if not chain:
            self._stats["aborted"] += 1
            raise NoProvidersAvailableError("No providers available in fallback chain.")

        attempts: list[AttemptRecord] = []
        last_error: BaseException | None = None
        for index, route in enumerate(chain):
            logger.info(f"Attempting {route.provider_name}/{route.model} (route {index + 1} of {len(chain)}).")
            start = time.perf_counter()
            try:
                result = await self.executor.execute(
                    lambda attempt, route=route: route.provider.chat_completion(
                        context, model=route.model, **completion_kwargs
                    ),
                    retry_policy,
                    deadline=deadline,
                    provider_name=route.provider_name,
                )
            except Exception as e:
                latency_ms = (time.perf_counter() - start) * 1000
                attempts.append(AttemptRecord(
                    provider=route.provider_name,
                    model=route.model,
                    success=False,
                    latency_ms=latency_ms,
                    error=str(e),
                    error_code=getattr(e, "code", None) or type(e).__name__,
                    status_code=getattr(e, "status_code", None),
                ))
                last_error = e
                if not self.is_chain_retryable(e):
                    logger.error(
                        f"Terminal failure on {route.provider_name}/{route.model}; "
                        f"skipping {len(chain) - index - 1} remaining route(s): {e}"
                    )
                    self._stats["aborted"] += 1
                    raise ChainExhaustedError(attempts, e, state="aborted") from e
                logger.warning(
                    f"Route {route.provider_name}/{route.model} failed after {latency_ms:.0f}ms: {e}"
                )
                continue

            latency_ms = (time.perf_counter() - start) * 1000
            attempts.append(AttemptRecord(
                provider=route.provider_name,
                model=route.model,
                success=True,
                latency_ms=latency_ms,
            ))
            if index == 0:
                self._stats["successful_primary"] += 1
            else:
                self._stats["successful_fallback"] += 1
                logger.info(f"Fallback route {route.provider_name}/{route.model} succeeded on route {index + 1}.")
            return self._build_response(result, route, index, attempts)

        logger.error(f"All {len(attempts)} route(s) in the fallback chain failed. Last error: {last_error}")
        self._stats["exhausted"] += 1
        raise ChainExhaustedError(attempts, last_error, state="exhausted")

    @staticmethod
    def _build_response(result: Any, route: Route, index: int, attempts: list[AttemptRecord]) -> ChatResponse:
        if isinstance(result, HTTPResponse):
            result = result.data if result.data is not None else result.body
        data = dict(result) if isinstance(result, dict) else {"content": str(result)}
        return ChatResponse(
            content=data.get("content"),
            model=data.get("model") or route.model,
            provider=route.provider_name,
            usage=data.get("usage") or {},
            finish_reason=data.get("finish_reason"),
            fallback_used=index > 0,
            fallback_attempts=index + 1,
            fallback_chain=list(attempts),
        )

    # --- Introspection ------------------------------------------------------

    def get_chain_status(self) -> dict[str, Any]:
        """Returns the chain a query-less request would use right now."""
        configured = self.registry.get_configured_providers()
        chain: list[Route] = []
        if self.config.enabled:
            try:
                chain = self.build_chain("")
            except ConfigError as e:
                logger.warning(f"Could not build fallback chain for status report: {e}")
        return {
            "enabled": self.config.enabled,
            "configured_providers": configured,
            "chain_length": len(chain),
            "chain": [{"provider": route.provider_name, "model": route.model} for route in chain],
        }

    def get_statistics(self) -> dict[str, Any]:
        """Get fallback chain statistics."""
        total = self._stats["total_requests"]
        failed = self._stats["aborted"] + self._stats["exhausted"]
        return {
            **self._stats,
            "primary_success_rate": (self._stats["successful_primary"] / total if total > 0 else 0.0),
            "fallback_rate": (self._stats["successful_fallback"] / total if total > 0 else 0.0),
            "failure_rate": (failed / total if total > 0 else 0.0),
        }


__all__ = [
    "FallbackOrchestrator",
    "TERMINAL_ERROR_CODES",
]
