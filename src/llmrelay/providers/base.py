# src/llmrelay/providers/base.py
"""
Abstract Base Class for AI Providers.

This module defines the capability contract every backend (e.g. OpenAI,
Anthropic, Google) must satisfy to take part in routing, fallback and
embedding generation. Model metadata is served from a static per-provider
catalog (``MODEL_CATALOG``) so that routing decisions never require a
network round-trip; only ``chat_completion``, ``generate_embeddings`` and
``test_connection`` touch the wire.

Providers are shared, read-mostly objects: many in-flight requests may use
one instance concurrently, so implementations must not keep per-request
state on ``self``.
"""

import abc
from typing import Any, ClassVar, Dict, List, Optional

from ..exceptions import InvalidModelError
from ..models import Message, ModelInfo

# Define a type alias for the context payload that can be passed to providers.
ContextPayload = List[Message]


class BaseProvider(abc.ABC):
    """
    Abstract Base Class for AI provider integrations.

    Ensures all providers offer a consistent set of core functionalities:
    - Initialization with configuration.
    - Static model metadata (token limits, costs, embedding dimensions).
    - Chat completions and, when supported, embedding generation.
    - Configuration and connectivity status reporting.
    """
    MODEL_CATALOG: ClassVar[Dict[str, ModelInfo]] = {}
    supports_embeddings: ClassVar[bool] = True
    log_raw_payloads_enabled: bool

    @abc.abstractmethod
    def __init__(self, config: Dict[str, Any], log_raw_payloads: bool = False):
        """
        Initialize the provider with its specific configuration.

        Args:
            config: A dictionary containing provider-specific settings loaded
                    from the ``[providers.<name>]`` section (e.g., api_key,
                    base_url, timeout).
            log_raw_payloads: Whether raw request/response payloads should be
                              logged by this provider instance.
        """
        self.log_raw_payloads_enabled = log_raw_payloads

    @abc.abstractmethod
    def get_name(self) -> str:
        """
        Return the unique identifier name for this provider.

        Examples: "openai", "anthropic", "google".
        """
        pass

    # --- Model metadata ---------------------------------------------------

    def get_available_models(self) -> List[str]:
        """Return every model identifier known to this provider, chat models first."""
        return list(self.MODEL_CATALOG.keys())

    def get_chat_models(self) -> List[str]:
        """Return the identifiers of models usable for chat completion."""
        return [name for name, info in self.MODEL_CATALOG.items() if not info.is_embedding_model]

    def get_embedding_models(self) -> List[str]:
        """Return the identifiers of models whose metadata marks them as embedding models."""
        return [name for name, info in self.MODEL_CATALOG.items() if info.is_embedding_model]

    def is_model_available(self, model: str) -> bool:
        """Return True if ``model`` belongs to this provider's known model set."""
        return model in self.MODEL_CATALOG

    def get_model_info(self, model: str) -> ModelInfo:
        """
        Return the static metadata of a model.

        Raises:
            InvalidModelError: If the model is unknown to this provider.
        """
        info = self.MODEL_CATALOG.get(model)
        if info is None:
            raise InvalidModelError(self.get_name(), model)
        return info

    def estimate_cost(self, model: str, tokens: int) -> float:
        """
        Estimate the cost of ``tokens`` tokens on ``model``.

        Embedding models are billed at the input rate. Chat models assume a
        70/30 split between prompt and completion tokens. Unknown models cost 0.0.
        """
        info = self.MODEL_CATALOG.get(model)
        if info is None:
            return 0.0
        if info.is_embedding_model:
            return (tokens / 1000) * info.input_cost_per_1k
        input_tokens = int(tokens * 0.7)
        output_tokens = int(tokens * 0.3)
        return (input_tokens / 1000) * info.input_cost_per_1k + (output_tokens / 1000) * info.output_cost_per_1k

    def get_max_tokens(self, model: str) -> int:
        """Return the token limit of ``model``, or 4096 when unknown."""
        info = self.MODEL_CATALOG.get(model)
        return info.max_tokens if info else 4096

    def _require_model(self, model: str, *, embedding: bool = False) -> ModelInfo:
        """Validate that ``model`` exists and is of the requested kind."""
        info = self.get_model_info(model)
        if info.is_embedding_model != embedding:
            kind = "an embedding" if embedding else "a chat"
            raise InvalidModelError(self.get_name(), model, f"Model is not {kind} model.")
        return info

    # --- Wire capabilities ------------------------------------------------

    @abc.abstractmethod
    async def chat_completion(
        self,
        context: ContextPayload,
        model: Optional[str] = None,
        **kwargs: Any
    ) -> Dict[str, Any]:
        """
        Perform a chat completion request to the provider's API.

        Args:
            context: The messages to send, as a list of `llmrelay.models.Message` objects.
            model: The model identifier to use. If None, the provider's default is used.
            **kwargs: Additional parameters (e.g., temperature, max_tokens).

        Returns:
            A dictionary with ``content``, ``model``, ``usage`` and ``finish_reason``.

        Raises:
            ProviderNotConfiguredError: If credentials are missing.
            InvalidModelError: If ``model`` is not a known chat model.
            UpstreamHTTPError: For non-success HTTP statuses (with ``Retry-After`` when sent).
            TransientNetworkError: For timeouts and connection failures.
        """
        pass

    @abc.abstractmethod
    async def generate_embeddings(self, texts: List[str], model: Optional[str] = None) -> List[List[float]]:
        """
        Generate one embedding vector per input text.

        Raises:
            EmbeddingUnsupportedError: If the provider has no embedding capability.
            InvalidModelError: If ``model`` is not a known embedding model.
            ProviderError: For any upstream failure (same subclasses as chat_completion).
        """
        pass

    @abc.abstractmethod
    def is_configured(self) -> bool:
        """Return True if the provider has everything it needs to make API calls."""
        pass

    @abc.abstractmethod
    async def test_connection(self) -> bool:
        """
        Perform a cheap authenticated call against the provider.

        Returns:
            True when the provider answered successfully.

        Raises:
            ProviderError: Describing why the connection test failed.
        """
        pass

    def get_config_status(self) -> Dict[str, Any]:
        """Return a serialisable summary of the provider's configuration state."""
        return {
            "name": self.get_name(),
            "configured": self.is_configured(),
            "supports_embeddings": self.supports_embeddings,
            "models": self.get_available_models(),
        }

    async def close(self) -> None:
         """
         Clean up any resources used by the provider, such as network sessions.
         Providers that do not need explicit cleanup can rely on this no-op.
         """
         pass
