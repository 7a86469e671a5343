# src/llmrelay/__init__.py
"""
llmrelay - A resilience and orchestration layer for multi-provider LLM calls.

This library puts complexity/cost-aware routing, bounded retry with
non-blocking backoff, cross-provider fallback chains and cached embedding
generation in front of OpenAI, Anthropic and Google Gemini.
"""

from importlib.metadata import PackageNotFoundError, version

from .api import LLMRelay
from .config import RelayConfig, RetryPolicy, load_config
from .embedding import EmbeddingCache, EmbeddingService, cosine_similarity, find_most_similar
from .exceptions import (
    ChainExhaustedError,
    ConfigError,
    DimensionMismatchError,
    EmbeddingError,
    EmbeddingUnsupportedError,
    InputValidationError,
    InvalidModelError,
    LLMRelayError,
    NoProvidersAvailableError,
    ProviderError,
    ProviderNotConfiguredError,
    RateLimitedError,
    RequestTimeoutError,
    RetriesExhaustedError,
    TransientNetworkError,
    UnknownProviderError,
    UpstreamClientError,
    UpstreamHTTPError,
    UpstreamServerError,
)
from .models import (
    AttemptRecord,
    ChatResponse,
    ComplexityTier,
    CostPriority,
    HTTPResponse,
    Message,
    ModelInfo,
    Role,
    Route,
    SimilarityResult,
)
from .providers import BaseProvider, ProviderRegistry
from .resilience import RetryExecutor
from .routing import ComplexityAnalyzer, FallbackOrchestrator, ModelRouter

try:
    __version__ = version("llmrelay")
except PackageNotFoundError:
    __version__ = "0.0.0"


__all__ = [
    # ==========================================================================
    # Core API
    # ==========================================================================
    "LLMRelay",

    # ==========================================================================
    # Components
    # ==========================================================================
    "BaseProvider",
    "ProviderRegistry",
    "RetryExecutor",
    "ComplexityAnalyzer",
    "ModelRouter",
    "FallbackOrchestrator",
    "EmbeddingService",
    "EmbeddingCache",
    "cosine_similarity",
    "find_most_similar",

    # ==========================================================================
    # Configuration
    # ==========================================================================
    "RelayConfig",
    "RetryPolicy",
    "load_config",

    # ==========================================================================
    # Data Models
    # ==========================================================================
    "AttemptRecord",
    "ChatResponse",
    "ComplexityTier",
    "CostPriority",
    "HTTPResponse",
    "Message",
    "ModelInfo",
    "Role",
    "Route",
    "SimilarityResult",

    # ==========================================================================
    # Exceptions
    # ==========================================================================
    "LLMRelayError",
    "ConfigError",
    "UnknownProviderError",
    "ProviderNotConfiguredError",
    "InvalidModelError",
    "NoProvidersAvailableError",
    "ProviderError",
    "TransientNetworkError",
    "UpstreamHTTPError",
    "RateLimitedError",
    "UpstreamServerError",
    "UpstreamClientError",
    "RetriesExhaustedError",
    "RequestTimeoutError",
    "ChainExhaustedError",
    "EmbeddingError",
    "EmbeddingUnsupportedError",
    "DimensionMismatchError",
    "InputValidationError",

    "__version__",
]
