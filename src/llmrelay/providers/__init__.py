# src/llmrelay/providers/__init__.py
"""
Provider package for llmrelay.

Exposes the capability contract, the bundled SDK-backed providers and the
registry that maps provider ids to instances.
"""

from .anthropic_provider import AnthropicProvider
from .base import BaseProvider, ContextPayload
from .gemini_provider import GeminiProvider
from .openai_provider import OpenAIProvider
from .registry import PROVIDER_FACTORIES, ProviderRegistry

__all__ = [
    "AnthropicProvider",
    "BaseProvider",
    "ContextPayload",
    "GeminiProvider",
    "OpenAIProvider",
    "PROVIDER_FACTORIES",
    "ProviderRegistry",
]
