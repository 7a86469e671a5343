# src/llmrelay/config/models.py
"""
Pydantic models for llmrelay configuration validation.

Each orchestration component is driven by one of the models below. They are
built from the layered confy configuration (or any mapping exposing
``get(key, default)``) by :meth:`RelayConfig.from_store`, which validates the
values once at load time so that no request ever observes a half-valid
routing table or retry policy.

Usage:
    from llmrelay.config.models import RelayConfig

    relay_config = RelayConfig.from_store({"retry": {"max_retries": 5}})
    relay_config.retry.max_retries  # 5
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..models import ComplexityTier, CostPriority

logger = logging.getLogger(__name__)

# ==============================================================================
# DEFAULTS
# ==============================================================================

DEFAULT_ROUTING_RULES: dict[str, dict[str, dict[str, str]]] = {
    "simple": {
        "cost": {"provider": "openai", "model": "gpt-3.5-turbo"},
        "balanced": {"provider": "openai", "model": "gpt-4o-mini"},
        "quality": {"provider": "openai", "model": "gpt-4-turbo-preview"},
    },
    "medium": {
        "cost": {"provider": "openai", "model": "gpt-4o-mini"},
        "balanced": {"provider": "openai", "model": "gpt-4-turbo-preview"},
        "quality": {"provider": "anthropic", "model": "claude-sonnet-4"},
    },
    "complex": {
        "cost": {"provider": "openai", "model": "gpt-4-turbo-preview"},
        "balanced": {"provider": "anthropic", "model": "claude-sonnet-4"},
        "quality": {"provider": "anthropic", "model": "claude-opus"},
    },
}

DEFAULT_MODEL_PREFERENCES: dict[str, dict[str, str]] = {
    "openai": {
        "simple": "gpt-3.5-turbo",
        "medium": "gpt-4o-mini",
        "complex": "gpt-4-turbo-preview",
    },
    "anthropic": {
        "simple": "claude-haiku",
        "medium": "claude-sonnet-4",
        "complex": "claude-opus",
    },
    "google": {
        "simple": "gemini-1.5-flash",
        "medium": "gemini-1.5-flash",
        "complex": "gemini-1.5-pro",
    },
}

DEFAULT_EMBEDDING_MODELS: dict[str, str | None] = {
    "openai": "text-embedding-3-small",
    "google": "text-embedding-004",
    "anthropic": None,
}

DEFAULT_COMPLEX_INDICATORS: tuple[str, ...] = (
    "explain",
    "analyze",
    "compare",
    "difference",
    "how does",
    "why",
    "describe",
    "detail",
    "what is the relationship",
)


class ConfigStore(Protocol):
    """Anything exposing ``get(key, default)``: a confy ``Config`` or a plain dict."""

    def get(self, key: str, default: Any = None) -> Any: ...


# ==============================================================================
# RETRY
# ==============================================================================


class RetryPolicy(BaseModel):
    """
    Immutable retry policy consumed by the retry executor.

    Per-call tweaks go through :meth:`with_overrides`, which returns a new,
    re-validated policy and leaves the shared instance untouched.
    """

    model_config = ConfigDict(frozen=True)

    max_retries: int = Field(3, ge=0, description="Retries after the first attempt (total attempts = max_retries + 1)")
    initial_delay: float = Field(1.0, ge=0.0, description="Delay in seconds before the first retry")
    max_delay: float = Field(60.0, ge=0.0, description="Upper bound for any single delay, in seconds")
    exponential_base: float = Field(2.0, ge=1.0, description="Growth factor of the backoff")
    jitter: bool = Field(True, description="Add random jitter on top of the exponential delay")
    jitter_max: float = Field(0.3, ge=0.0, le=1.0, description="Jitter fraction of the computed delay")
    retryable_status_codes: frozenset[int] = Field(
        default=frozenset({429, 500, 502, 503, 504}),
        description="HTTP statuses treated as transient",
    )
    retryable_error_codes: frozenset[str] = Field(
        default=frozenset({"http_request_failed", "timeout", "connection_failed"}),
        description="Error categories treated as transient",
    )

    def with_overrides(self, **overrides: Any) -> "RetryPolicy":
        """Returns a validated copy of this policy with ``overrides`` applied."""
        if not overrides:
            return self
        return RetryPolicy.model_validate({**self.model_dump(), **overrides})


# ==============================================================================
# ROUTING
# ==============================================================================


class RouteTarget(BaseModel):
    """A provider/model pair as written in configuration."""

    provider: str = Field(min_length=1)
    model: str = Field(min_length=1)

    @field_validator("provider")
    @classmethod
    def lower_provider(cls, v: str) -> str:
        return v.strip().lower()


class RoutingConfig(BaseModel):
    """
    Router configuration: complexity thresholds and the tier x priority table.

    The table is checked for structural completeness when loaded: every tier
    must be present and each tier must carry a ``balanced`` entry, which is
    the fallback for a missing priority.
    """

    cost_optimization_enabled: bool = True
    default_model: str = "gpt-3.5-turbo"
    simple_threshold: int = Field(50, ge=0)
    medium_threshold: int = Field(200, ge=0)
    complex_indicators: tuple[str, ...] = DEFAULT_COMPLEX_INDICATORS
    model_routing_rules: dict[ComplexityTier, dict[CostPriority, RouteTarget]] = Field(
        default_factory=lambda: RoutingConfig.parse_rules(DEFAULT_ROUTING_RULES)
    )

    @staticmethod
    def parse_rules(rules: dict[str, Any]) -> dict[ComplexityTier, dict[CostPriority, RouteTarget]]:
        return {
            ComplexityTier(tier): {
                CostPriority(priority): RouteTarget.model_validate(target)
                for priority, target in priorities.items()
            }
            for tier, priorities in rules.items()
        }

    @field_validator("complex_indicators", mode="before")
    @classmethod
    def normalise_indicators(cls, v: Any) -> tuple[str, ...]:
        if isinstance(v, str):
            v = [v]
        return tuple(str(item).lower() for item in v if str(item).strip())

    @model_validator(mode="after")
    def check_table_and_thresholds(self) -> "RoutingConfig":
        if self.simple_threshold >= self.medium_threshold:
            raise ValueError(
                f"simple_threshold ({self.simple_threshold}) must be lower than "
                f"medium_threshold ({self.medium_threshold})."
            )
        missing = [tier.value for tier in ComplexityTier if tier not in self.model_routing_rules]
        if missing:
            raise ValueError(f"model_routing_rules is missing tiers: {missing}")
        for tier, priorities in self.model_routing_rules.items():
            if CostPriority.BALANCED not in priorities:
                raise ValueError(f"model_routing_rules['{tier.value}'] must define a 'balanced' entry.")
        return self


class FallbackConfig(BaseModel):
    """
    Fallback chain configuration.

    ``chain`` is an explicit ordered list of routes; when empty the chain is
    derived from the router plus every other configured provider, using
    ``model_preferences`` (provider -> tier -> model) to pick alternates.
    """

    enabled: bool = True
    chain: list[RouteTarget] = Field(default_factory=list)
    model_preferences: dict[str, dict[ComplexityTier, str]] = Field(
        default_factory=lambda: {
            provider: {ComplexityTier(tier): model for tier, model in tiers.items()}
            for provider, tiers in DEFAULT_MODEL_PREFERENCES.items()
        }
    )

    @field_validator("chain", mode="before")
    @classmethod
    def drop_incomplete_entries(cls, v: Any) -> Any:
        """Entries without both a provider and a model are skipped, not fatal."""
        if not v:
            return []
        kept = []
        for position, entry in enumerate(v):
            if isinstance(entry, RouteTarget) or (
                isinstance(entry, dict) and entry.get("provider") and entry.get("model")
            ):
                kept.append(entry)
            else:
                logger.warning(f"Ignoring fallback chain entry #{position}: expected provider and model, got {entry!r}")
        return kept

    @field_validator("model_preferences", mode="before")
    @classmethod
    def merge_preferences(cls, v: Any) -> Any:
        """Config entries override the built-in table provider by provider."""
        if v is None:
            v = {}
        merged: dict[str, dict[str, str]] = {p: dict(t) for p, t in DEFAULT_MODEL_PREFERENCES.items()}
        for provider, tiers in dict(v).items():
            merged.setdefault(str(provider).lower(), {}).update(
                {str(getattr(tier, "value", tier)): model for tier, model in dict(tiers).items()}
            )
        return merged


# ==============================================================================
# EMBEDDINGS
# ==============================================================================


class EmbeddingConfig(BaseModel):
    """Embedding service configuration."""

    provider: str = "openai"
    default_models: dict[str, str | None] = Field(default_factory=lambda: dict(DEFAULT_EMBEDDING_MODELS))
    max_text_length: int = Field(8000, gt=0, description="Maximum characters per input text")
    batch_size: int = Field(100, gt=0)
    batch_delay: float = Field(0.1, ge=0.0, description="Pause between batches, in seconds")
    cache_enabled: bool = True
    cache_ttl: float = Field(86400.0, gt=0.0, description="Cache entry lifetime, in seconds")
    cache_size: int = Field(10000, gt=0, description="Maximum number of cached vectors")

    @field_validator("default_models", mode="before")
    @classmethod
    def merge_default_models(cls, v: Any) -> Any:
        if v is None:
            v = {}
        return {**DEFAULT_EMBEDDING_MODELS, **{str(k).lower(): m for k, m in dict(v).items()}}


# ==============================================================================
# ROOT
# ==============================================================================


class RelayConfig(BaseModel):
    """Validated configuration for every llmrelay component."""

    default_provider: str = "openai"
    log_raw_payloads: bool = False
    retry: RetryPolicy = Field(default_factory=RetryPolicy)
    routing: RoutingConfig = Field(default_factory=RoutingConfig)
    fallback: FallbackConfig = Field(default_factory=FallbackConfig)
    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    providers: dict[str, dict[str, Any]] = Field(default_factory=dict)

    @classmethod
    def from_store(cls, store: ConfigStore) -> "RelayConfig":
        """
        Builds a ``RelayConfig`` from a key-value store.

        Args:
            store: A confy ``Config`` or a plain nested dict. Only top-level
                section keys are read (``llmrelay``, ``retry``, ``routing``,
                ``fallback``, ``embedding``, ``providers``).

        Returns:
            The validated configuration.

        Raises:
            pydantic.ValidationError: If any section violates its schema.
        """
        general = _section(store, "llmrelay")
        routing = _section(store, "routing")
        if "model_routing_rules" in routing:
            routing["model_routing_rules"] = {**DEFAULT_ROUTING_RULES, **routing["model_routing_rules"]}
        return cls(
            default_provider=str(general.get("default_provider", "openai")).lower(),
            log_raw_payloads=bool(general.get("log_raw_payloads", False)),
            retry=RetryPolicy.model_validate(_section(store, "retry")),
            routing=RoutingConfig.model_validate(routing),
            fallback=FallbackConfig.model_validate(_section(store, "fallback")),
            embedding=EmbeddingConfig.model_validate(_section(store, "embedding")),
            providers={str(k).lower(): dict(v) for k, v in _section(store, "providers").items() if isinstance(v, dict)},
        )


def _section(store: ConfigStore, key: str) -> dict[str, Any]:
    value = store.get(key, {})
    return dict(value) if isinstance(value, dict) else {}


__all__ = [
    "ConfigStore",
    "DEFAULT_COMPLEX_INDICATORS",
    "DEFAULT_EMBEDDING_MODELS",
    "DEFAULT_MODEL_PREFERENCES",
    "DEFAULT_ROUTING_RULES",
    "EmbeddingConfig",
    "FallbackConfig",
    "RelayConfig",
    "RetryPolicy",
    "RouteTarget",
    "RoutingConfig",
]
