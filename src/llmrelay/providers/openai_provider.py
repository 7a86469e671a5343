# src/llmrelay/providers/openai_provider.py
"""
OpenAI API provider implementation for the llmrelay library.

Handles chat completions (GPT models) and embeddings through the official
``openai`` SDK. The SDK's own retry loop is disabled (``max_retries=0``) so
that the retry executor is the single place where backoff happens; SDK
exceptions are translated into the llmrelay failure taxonomy.
"""

import json
import logging
import os
from typing import Any, Dict, List, Optional

import openai
from openai import AsyncOpenAI

from ..exceptions import (
    ConfigError,
    ProviderNotConfiguredError,
    TransientNetworkError,
    http_error_for_status,
)
from ..models import Message, ModelInfo
from .base import BaseProvider, ContextPayload

logger = logging.getLogger(__name__)

PROVIDER_NAME = "openai"

OPENAI_MODEL_CATALOG: Dict[str, ModelInfo] = {
    "gpt-4-turbo-preview": ModelInfo(
        id="gpt-4-turbo-preview", provider=PROVIDER_NAME, name="GPT-4 Turbo",
        max_tokens=128000, input_cost_per_1k=0.01, output_cost_per_1k=0.03,
    ),
    "gpt-4": ModelInfo(
        id="gpt-4", provider=PROVIDER_NAME, name="GPT-4",
        max_tokens=8192, input_cost_per_1k=0.03, output_cost_per_1k=0.06,
    ),
    "gpt-4o-mini": ModelInfo(
        id="gpt-4o-mini", provider=PROVIDER_NAME, name="GPT-4o Mini",
        max_tokens=128000, input_cost_per_1k=0.00015, output_cost_per_1k=0.0006,
    ),
    "gpt-3.5-turbo": ModelInfo(
        id="gpt-3.5-turbo", provider=PROVIDER_NAME, name="GPT-3.5 Turbo",
        max_tokens=16385, input_cost_per_1k=0.0005, output_cost_per_1k=0.0015,
    ),
    "text-embedding-3-large": ModelInfo(
        id="text-embedding-3-large", provider=PROVIDER_NAME, name="Text Embedding 3 Large",
        max_tokens=8191, input_cost_per_1k=0.00013, embedding_dimension=3072,
    ),
    "text-embedding-3-small": ModelInfo(
        id="text-embedding-3-small", provider=PROVIDER_NAME, name="Text Embedding 3 Small",
        max_tokens=8191, input_cost_per_1k=0.00002, embedding_dimension=1536,
    ),
    "text-embedding-ada-002": ModelInfo(
        id="text-embedding-ada-002", provider=PROVIDER_NAME, name="Ada v2",
        max_tokens=8191, input_cost_per_1k=0.0001, embedding_dimension=1536,
    ),
}
DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_EMBEDDING_MODEL = "text-embedding-3-small"


class OpenAIProvider(BaseProvider):
    """
    llmrelay provider for interacting with the OpenAI API.
    """
    MODEL_CATALOG = OPENAI_MODEL_CATALOG
    supports_embeddings = True
    _client: Optional[AsyncOpenAI] = None

    def __init__(self, config: Dict[str, Any], log_raw_payloads: bool = False):
        """
        Initializes the OpenAIProvider.

        Args:
            config: Configuration dictionary from `[providers.openai]` containing:
                    'api_key' (optional): OpenAI API key. Defaults to env var OPENAI_API_KEY.
                    'base_url' (optional): Custom OpenAI API endpoint URL.
                    'default_model' (optional): Default chat model.
                    'timeout' (optional): Request timeout in seconds (default: 60).
            log_raw_payloads: Whether to log raw request/response payloads.

        Raises:
            ConfigError: If the SDK client cannot be constructed.
        """
        super().__init__(config, log_raw_payloads)
        self.api_key = config.get('api_key') or os.environ.get('OPENAI_API_KEY')
        self.base_url = config.get('base_url') or None
        self.default_model = config.get('default_model', DEFAULT_MODEL)
        self.timeout = float(config.get('timeout', 60.0))

        if not self.api_key:
            logger.warning("OpenAI API key not found in config or environment variable OPENAI_API_KEY. "
                           "The provider will report itself as not configured.")
            return

        try:
            self._client = AsyncOpenAI(
                api_key=self.api_key,
                base_url=self.base_url,
                timeout=self.timeout,
                max_retries=0,
            )
            logger.debug("AsyncOpenAI client initialized.")
        except Exception as e:
            logger.error(f"Failed to initialize AsyncOpenAI client: {e}", exc_info=True)
            raise ConfigError(f"OpenAI client initialization failed: {e}")

    def get_name(self) -> str:
        """Returns the provider name: 'openai'."""
        return PROVIDER_NAME

    def is_configured(self) -> bool:
        return self._client is not None

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            raise ProviderNotConfiguredError(self.get_name(), "OpenAI API key is not configured.")
        return self._client

    async def chat_completion(
        self,
        context: ContextPayload,
        model: Optional[str] = None,
        **kwargs: Any
    ) -> Dict[str, Any]:
        """
        Sends a chat completion request to the OpenAI API.

        Args:
            context: The messages to send.
            model: The chat model to use. Defaults to the provider's default model.
            **kwargs: Additional parameters passed through to the API (e.g., temperature, max_tokens).

        Returns:
            A dictionary with ``content``, ``model``, ``usage`` and ``finish_reason``.
        """
        client = self._get_client()
        model_name = model or self.default_model
        self._require_model(model_name)

        messages_payload = [self._to_openai_message(msg) for msg in context]
        if self.log_raw_payloads_enabled and logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"RAW LLM REQUEST ({self.get_name()} @ {model_name}): "
                         f"{json.dumps({'model': model_name, 'messages': messages_payload, **kwargs}, default=str)}")

        logger.debug(f"Sending request to OpenAI API: model='{model_name}', num_messages={len(messages_payload)}")
        try:
            response = await client.chat.completions.create(
                model=model_name,
                messages=messages_payload,  # type: ignore[arg-type]
                **kwargs
            )
        except openai.OpenAIError as e:
            raise self._translate_error(e) from e

        if self.log_raw_payloads_enabled and logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"RAW LLM RESPONSE ({self.get_name()} @ {model_name}): {response.model_dump_json()}")

        choice = response.choices[0] if response.choices else None
        return {
            "content": (choice.message.content if choice else None) or "",
            "model": response.model or model_name,
            "usage": response.usage.model_dump() if response.usage else {},
            "finish_reason": choice.finish_reason if choice else None,
        }

    async def generate_embeddings(self, texts: List[str], model: Optional[str] = None) -> List[List[float]]:
        """Generates embeddings for ``texts`` with an OpenAI embedding model."""
        client = self._get_client()
        model_name = model or DEFAULT_EMBEDDING_MODEL
        self._require_model(model_name, embedding=True)

        logger.debug(f"Requesting {len(texts)} embedding(s) from OpenAI model '{model_name}'")
        try:
            response = await client.embeddings.create(model=model_name, input=texts)
        except openai.OpenAIError as e:
            raise self._translate_error(e) from e

        ordered = sorted(response.data, key=lambda item: item.index)
        return [list(item.embedding) for item in ordered]

    async def test_connection(self) -> bool:
        """Lists models to verify the API key and endpoint."""
        client = self._get_client()
        try:
            await client.models.list()
        except openai.OpenAIError as e:
            raise self._translate_error(e) from e
        return True

    def get_config_status(self) -> Dict[str, Any]:
        status = super().get_config_status()
        status["base_url"] = self.base_url
        status["default_model"] = self.default_model
        return status

    @staticmethod
    def _to_openai_message(msg: Message) -> Dict[str, str]:
        return {"role": msg.role.value, "content": msg.content}

    def _translate_error(self, e: openai.OpenAIError) -> Exception:
        """Maps an SDK exception onto the llmrelay failure taxonomy."""
        if isinstance(e, openai.APITimeoutError):
            logger.warning(f"Request to OpenAI API timed out after {self.timeout} seconds.")
            return TransientNetworkError(self.get_name(), f"Request timed out after {self.timeout}s.", code="timeout")
        if isinstance(e, openai.APIConnectionError):
            logger.warning(f"Connection to OpenAI API failed: {e}")
            return TransientNetworkError(self.get_name(), f"Connection failed: {e}")
        if isinstance(e, openai.APIStatusError):
            logger.warning(f"OpenAI API error: Status {e.status_code} - {e.message}")
            return http_error_for_status(
                self.get_name(),
                e.status_code,
                message=e.message,
                code=e.code if isinstance(e.code, str) else None,
                headers=dict(e.response.headers),
                response=e.body,
            )
        logger.error(f"Unexpected OpenAI SDK error: {e}", exc_info=True)
        return TransientNetworkError(self.get_name(), str(e), code="http_request_failed")

    async def close(self) -> None:
        """Closes the underlying OpenAI client session if applicable."""
        if self._client:
            try:
                await self._client.close()
                logger.info("OpenAIProvider client closed successfully.")
            except Exception as e:
                logger.error(f"Error closing OpenAIProvider client: {e}", exc_info=True)
            finally:
                self._client = None
