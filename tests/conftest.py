# tests/conftest.py
"""
Shared fixtures for the llmrelay test suite.

Provides a scripted in-memory provider implementing the capability contract
and a recording async sleep, so retry, routing, fallback and embedding
behaviour can be tested without network access or real waiting.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

import pytest

from llmrelay.exceptions import EmbeddingUnsupportedError
from llmrelay.models import ModelInfo
from llmrelay.providers.base import BaseProvider, ContextPayload
from llmrelay.providers.registry import ProviderRegistry


class FakeProvider(BaseProvider):
    """
    Provider whose chat and embedding outcomes are scripted per test.

    Each entry of ``chat_script`` / ``embedding_script`` is consumed by one
    call: an exception instance is raised, anything else is returned. Once a
    script runs out, a default success is returned.
    """

    def __init__(
        self,
        name: str,
        chat_models: Iterable[str] = ("chat-small", "chat-large"),
        embedding_models: Optional[Mapping[str, int]] = None,
        *,
        configured: bool = True,
        supports_embeddings: bool = True,
        chat_script: Optional[List[Any]] = None,
        embedding_script: Optional[List[Any]] = None,
        costs: Optional[Mapping[str, tuple]] = None,
    ):
        super().__init__({}, False)
        self._name = name
        self._configured = configured
        self.supports_embeddings = supports_embeddings
        costs = costs or {}
        catalog: Dict[str, ModelInfo] = {}
        for model in chat_models:
            input_cost, output_cost = costs.get(model, (0.001, 0.002))
            catalog[model] = ModelInfo(
                id=model, provider=name, input_cost_per_1k=input_cost, output_cost_per_1k=output_cost,
            )
        for model, dimension in (embedding_models or {}).items():
            catalog[model] = ModelInfo(id=model, provider=name, embedding_dimension=dimension, input_cost_per_1k=0.0001)
        self.MODEL_CATALOG = catalog
        self.chat_script = list(chat_script or [])
        self.embedding_script = list(embedding_script or [])
        self.chat_calls: List[Dict[str, Any]] = []
        self.embedding_calls: List[Dict[str, Any]] = []
        self.closed = False

    def get_name(self) -> str:
        return self._name

    def is_configured(self) -> bool:
        return self._configured

    async def chat_completion(self, context: ContextPayload, model: Optional[str] = None, **kwargs: Any) -> Dict[str, Any]:
        self.chat_calls.append({"context": list(context), "model": model, "kwargs": kwargs})
        if self.chat_script:
            outcome = self.chat_script.pop(0)
            if isinstance(outcome, BaseException):
                raise outcome
            return outcome
        return {
            "content": f"{self._name}:{model} reply",
            "model": model,
            "usage": {"prompt_tokens": 3, "completion_tokens": 2, "total_tokens": 5},
            "finish_reason": "stop",
        }

    async def generate_embeddings(self, texts: List[str], model: Optional[str] = None) -> List[List[float]]:
        if not self.supports_embeddings:
            raise EmbeddingUnsupportedError(self._name)
        self.embedding_calls.append({"texts": list(texts), "model": model})
        if self.embedding_script:
            outcome = self.embedding_script.pop(0)
            if isinstance(outcome, BaseException):
                raise outcome
            return outcome
        dimension = self.MODEL_CATALOG[model].embedding_dimension or 3
        return [[float(len(text)), float(index + 1)] + [0.5] * (dimension - 2) for index, text in enumerate(texts)]

    async def test_connection(self) -> bool:
        return self._configured

    async def close(self) -> None:
        self.closed = True


class RecordingSleep:
    """Async sleep replacement that records requested delays and returns immediately."""

    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def make_provider() -> Callable[..., FakeProvider]:
    """Factory fixture building scripted providers."""
    return FakeProvider


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def openai_like() -> FakeProvider:
    """A provider exposing the model ids of the default routing table."""
    return FakeProvider(
        "openai",
        chat_models=("gpt-3.5-turbo", "gpt-4o-mini", "gpt-4-turbo-preview"),
        embedding_models={"text-embedding-3-small": 4, "text-embedding-ada-002": 4},
        costs={"gpt-3.5-turbo": (0.0005, 0.0015), "gpt-4-turbo-preview": (0.01, 0.03)},
    )


@pytest.fixture
def anthropic_like() -> FakeProvider:
    return FakeProvider(
        "anthropic",
        chat_models=("claude-haiku", "claude-sonnet-4", "claude-opus"),
        supports_embeddings=False,
    )


@pytest.fixture
def google_like() -> FakeProvider:
    return FakeProvider(
        "google",
        chat_models=("gemini-1.5-flash", "gemini-1.5-pro"),
        embedding_models={"text-embedding-004": 4},
    )


@pytest.fixture
def registry(openai_like: FakeProvider, anthropic_like: FakeProvider, google_like: FakeProvider) -> ProviderRegistry:
    return ProviderRegistry.from_providers([openai_like, anthropic_like, google_like], default_provider="openai")

