# src/llmrelay/routing/__init__.py
"""
Request routing and fallback module.

Provides complexity analysis, complexity/cost-aware route selection and
fallback chains that advance across providers on retryable failures.

Usage:
    from llmrelay.routing import ModelRouter, FallbackOrchestrator

    router = ModelRouter(registry)
    route = router.route("What is the relationship between pricing and support tiers?")
    print(f"Selected: {route.provider_name}/{route.model} ({route.complexity})")
"""

from .complexity import ComplexityAnalyzer, ComplexityReport, count_words
from .fallback import TERMINAL_ERROR_CODES, FallbackOrchestrator
from .model_router import ModelRouter, coerce_tier

__all__ = [
    # Analysis
    "ComplexityAnalyzer",
    "ComplexityReport",
    "count_words",
    # Routing
    "ModelRouter",
    "coerce_tier",
    # Fallback
    "FallbackOrchestrator",
    "TERMINAL_ERROR_CODES",
]
