# src/llmrelay/routing/model_router.py
"""
Model Router for complexity- and cost-aware model selection.

Resolves a request into a :class:`~llmrelay.models.Route` by looking up a
routing table keyed by complexity tier and cost priority:

    routing_table[complexity][cost_priority] -> (provider, model)

Resolution order:
    1. A forced provider/model pair, validated and returned as-is.
    2. The table entry for the (given or analysed) tier and priority,
       falling back to the ``balanced`` column when the priority is absent.
    3. The default route when the table entry is unusable: the configured
       default provider with ``default_model`` (or its first chat model),
       else the first configured provider and its first chat model.

Usage:
    router = ModelRouter(registry, relay_config.routing)
    route = router.route("Explain the difference between the plans")
    route.provider_name, route.model  # ("openai", "gpt-4-turbo-preview")
"""

from __future__ import annotations

import logging
from typing import Any

from ..config.models import RoutingConfig
from ..exceptions import (
    InputValidationError,
    InvalidModelError,
    NoProvidersAvailableError,
    UnknownProviderError,
)
from ..models import ComplexityTier, CostPriority, Route
from ..providers.base import BaseProvider
from ..providers.registry import ProviderRegistry
from .complexity import ComplexityAnalyzer, count_words

logger = logging.getLogger(__name__)


def coerce_tier(value: ComplexityTier | str) -> ComplexityTier:
    """Parses a complexity tier, raising ``InputValidationError`` for unknown values."""
    try:
        return ComplexityTier(value)
    except ValueError:
        raise InputValidationError(f"Invalid complexity level: {value!r}", code="invalid_complexity") from None


class ModelRouter:
    """
    Picks a provider/model route per request.

    The router reads the registry and its own validated configuration only;
    it never mutates either, so a single instance is safe to share across
    concurrent requests.
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        config: RoutingConfig | None = None,
        analyzer: ComplexityAnalyzer | None = None,
    ):
        self.registry = registry
        self.config = config or RoutingConfig()
        self.analyzer = analyzer or ComplexityAnalyzer(
            simple_threshold=self.config.simple_threshold,
            medium_threshold=self.config.medium_threshold,
            indicators=self.config.complex_indicators,
        )

    # --- Analysis -----------------------------------------------------------

    def analyze_complexity(self, text: str) -> ComplexityTier:
        return self.analyzer.analyze(text)

    def resolve_cost_priority(self, cost_priority: CostPriority | str | None) -> CostPriority:
        """
        Normalises a caller-supplied priority. ``None`` follows the
        ``cost_optimization_enabled`` flag (``cost`` when on, ``quality`` when
        off); an unrecognised value falls back to ``balanced``.
        """
        if cost_priority is None:
            return CostPriority.COST if self.config.cost_optimization_enabled else CostPriority.QUALITY
        try:
            return CostPriority(cost_priority)
        except ValueError:
            logger.warning(f"Unknown cost priority '{cost_priority}', using 'balanced'.")
            return CostPriority.BALANCED

    # --- Routing ------------------------------------------------------------

    def route(
        self,
        text: str = "",
        *,
        force_provider: str | None = None,
        force_model: str | None = None,
        cost_priority: CostPriority | str | None = None,
        complexity: ComplexityTier | str | None = None,
    ) -> Route:
        """
        Resolves the route for a request.

        Args:
            text: The request text used for complexity analysis.
            force_provider: Provider to use regardless of analysis (requires ``force_model``).
            force_model: Model to use regardless of analysis (requires ``force_provider``).
            cost_priority: ``cost``, ``balanced`` or ``quality``; see :meth:`resolve_cost_priority`.
            complexity: Pre-computed tier; analysed from ``text`` when omitted.

        Returns:
            The resolved route.

        Raises:
            UnknownProviderError: A forced provider is not available.
            InvalidModelError: A forced model does not belong to the forced provider.
            InputValidationError: ``complexity`` is not a known tier.
            NoProvidersAvailableError: No configured provider is left for the default route.
        """
        if force_provider and force_model:
            return self.get_forced_route(force_provider, force_model)

        tier = self.analyze_complexity(text) if complexity is None else coerce_tier(complexity)
        priority = self.resolve_cost_priority(cost_priority)
        return self.select_route(tier, priority)

    def select_route(self, tier: ComplexityTier, priority: CostPriority) -> Route:
        """Looks up the routing table and falls back to the default route when the entry is unusable."""
        tier_rules = self.config.model_routing_rules[tier]
        target = tier_rules.get(priority) or tier_rules[CostPriority.BALANCED]

        if not self.registry.is_provider_available(target.provider):
            logger.warning(
                f"Routed provider '{target.provider}' is not available for tier '{tier.value}', "
                f"priority '{priority.value}'. Falling back to default route."
            )
            return self.get_default_route(tier, priority)

        provider = self.registry.get_provider(target.provider)
        if not provider.is_model_available(target.model):
            logger.warning(
                f"Selected model not available, falling back to default "
                f"(provider='{target.provider}', model='{target.model}')."
            )
            return self.get_default_route(tier, priority)

        logger.debug(f"Routed tier '{tier.value}' / priority '{priority.value}' to {target.provider}/{target.model}.")
        return Route(
            provider_name=target.provider,
            model=target.model,
            provider=provider,
            complexity=tier,
            cost_priority=priority,
            source="routed",
        )

    def get_forced_route(self, provider_name: str, model: str) -> Route:
        """Validates and returns a caller-forced provider/model pair."""
        provider_name = provider_name.lower()
        if not self.registry.is_provider_available(provider_name):
            raise UnknownProviderError(provider_name, "Provider is not available.")
        provider = self.registry.get_provider(provider_name)
        if not provider.is_model_available(model):
            raise InvalidModelError(provider_name, model)
        return Route(provider_name=provider_name, model=model, provider=provider, source="forced")

    def get_default_route(
        self,
        tier: ComplexityTier | None = None,
        priority: CostPriority | None = None,
    ) -> Route:
        """
        Returns the configured default provider with ``default_model`` (or its
        first chat model), else the first configured provider.

        Raises:
            NoProvidersAvailableError: If no provider is configured or none has a chat model.
        """
        provider_name = self.registry.default_provider_name
        if not self.registry.is_provider_available(provider_name):
            configured = self.registry.get_configured_providers()
            if not configured:
                raise NoProvidersAvailableError()
            provider_name = configured[0]
        provider = self.registry.get_provider(provider_name)

        model = self._pick_default_model(provider)
        if model is None:
            raise NoProvidersAvailableError(f"No models are available for provider '{provider_name}'.")
        logger.info(f"Using default route {provider_name}/{model}.")
        return Route(
            provider_name=provider_name,
            model=model,
            provider=provider,
            complexity=tier,
            cost_priority=priority,
            source="default",
        )

    def _pick_default_model(self, provider: BaseProvider) -> str | None:
        if provider.is_model_available(self.config.default_model):
            return self.config.default_model
        chat_models = provider.get_chat_models()
        return chat_models[0] if chat_models else None

    # --- Estimates ----------------------------------------------------------

    def estimate_route_cost(self, provider_name: str, model: str, tokens: int) -> float:
        """Estimated USD cost of ``tokens`` tokens on a route; 0.0 for unknown providers."""
        try:
            provider = self.registry.get_provider(provider_name)
        except UnknownProviderError:
            return 0.0
        return provider.estimate_cost(model, tokens)

    def get_recommendation(self, text: str) -> dict[str, Any]:
        """
        Returns the route the router would pick for ``text`` plus a rough
        cost estimate (tokens ~= words / 0.75, doubled for the reply).
        """
        tier = self.analyze_complexity(text)
        priority = self.resolve_cost_priority(None)
        route = self.select_route(tier, priority)
        estimated_tokens = int(count_words(text) / 0.75 * 2)
        return {
            "provider": route.provider_name,
            "model": route.model,
            "complexity": tier.value,
            "cost_priority": priority.value,
            "estimated_tokens": estimated_tokens,
            "estimated_cost": self.estimate_route_cost(route.provider_name, route.model, estimated_tokens),
        }


__all__ = ["ModelRouter", "coerce_tier"]
