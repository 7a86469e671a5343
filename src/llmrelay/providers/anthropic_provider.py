# src/llmrelay/providers/anthropic_provider.py
"""
Anthropic API provider implementation for the llmrelay library.

Handles chat completions with Claude models through the official
``anthropic`` SDK. Anthropic offers no embedding endpoint, so the provider
declares ``supports_embeddings = False`` and the embedding service never
routes to it.

Catalog identifiers are stable short names (``claude-sonnet-4``); they are
translated to the API model ids on the wire through ``MODEL_API_IDS``, which
the ``model_aliases`` config table can extend or override.
"""

import json
import logging
import os
from typing import Any, Dict, List, Optional, Tuple

import anthropic
from anthropic import AsyncAnthropic

from ..exceptions import (
    ConfigError,
    EmbeddingUnsupportedError,
    ProviderNotConfiguredError,
    TransientNetworkError,
    http_error_for_status,
)
from ..models import Message, ModelInfo, Role
from .base import BaseProvider, ContextPayload

logger = logging.getLogger(__name__)

PROVIDER_NAME = "anthropic"

ANTHROPIC_MODEL_CATALOG: Dict[str, ModelInfo] = {
    "claude-opus": ModelInfo(
        id="claude-opus", provider=PROVIDER_NAME, name="Claude Opus",
        max_tokens=4096, input_cost_per_1k=0.015, output_cost_per_1k=0.075,
    ),
    "claude-sonnet-4": ModelInfo(
        id="claude-sonnet-4", provider=PROVIDER_NAME, name="Claude Sonnet 4",
        max_tokens=8192, input_cost_per_1k=0.003, output_cost_per_1k=0.015,
    ),
    "claude-sonnet-3-5": ModelInfo(
        id="claude-sonnet-3-5", provider=PROVIDER_NAME, name="Claude Sonnet 3.5",
        max_tokens=8192, input_cost_per_1k=0.003, output_cost_per_1k=0.015,
    ),
    "claude-haiku": ModelInfo(
        id="claude-haiku", provider=PROVIDER_NAME, name="Claude Haiku",
        max_tokens=4096, input_cost_per_1k=0.00025, output_cost_per_1k=0.00125,
    ),
}

MODEL_API_IDS: Dict[str, str] = {
    "claude-opus": "claude-opus-4-0",
    "claude-sonnet-4": "claude-sonnet-4-0",
    "claude-sonnet-3-5": "claude-3-5-sonnet-latest",
    "claude-haiku": "claude-3-5-haiku-latest",
}
DEFAULT_MODEL = "claude-sonnet-4"
DEFAULT_MAX_TOKENS = 1024


class AnthropicProvider(BaseProvider):
    """
    llmrelay provider for interacting with the Anthropic Messages API.
    """
    MODEL_CATALOG = ANTHROPIC_MODEL_CATALOG
    supports_embeddings = False
    _client: Optional[AsyncAnthropic] = None

    def __init__(self, config: Dict[str, Any], log_raw_payloads: bool = False):
        """
        Initializes the AnthropicProvider.

        Args:
            config: Configuration dictionary from `[providers.anthropic]` containing:
                    'api_key' (optional): Anthropic API key. Defaults to env var ANTHROPIC_API_KEY.
                    'default_model' (optional): Default catalog model.
                    'timeout' (optional): Request timeout in seconds (default: 60).
                    'model_aliases' (optional): Catalog name -> API model id overrides.
            log_raw_payloads: Whether to log raw request/response payloads.
        """
        super().__init__(config, log_raw_payloads)
        self.api_key = config.get('api_key') or os.environ.get('ANTHROPIC_API_KEY')
        self.default_model = config.get('default_model', DEFAULT_MODEL)
        self.timeout = float(config.get('timeout', 60.0))
        self.model_api_ids = {**MODEL_API_IDS, **dict(config.get('model_aliases') or {})}

        if not self.api_key:
            logger.warning("Anthropic API key not found in config or environment variable ANTHROPIC_API_KEY. "
                           "The provider will report itself as not configured.")
            return

        try:
            self._client = AsyncAnthropic(api_key=self.api_key, timeout=self.timeout, max_retries=0)
            logger.debug("AsyncAnthropic client initialized.")
        except Exception as e:
            logger.error(f"Failed to initialize AsyncAnthropic client: {e}", exc_info=True)
            raise ConfigError(f"Anthropic client initialization failed: {e}")

    def get_name(self) -> str:
        """Returns the provider name: 'anthropic'."""
        return PROVIDER_NAME

    def is_configured(self) -> bool:
        return self._client is not None

    def _get_client(self) -> AsyncAnthropic:
        if self._client is None:
            raise ProviderNotConfiguredError(self.get_name(), "Anthropic API key is not configured.")
        return self._client

    @staticmethod
    def _split_system(context: ContextPayload) -> Tuple[Optional[str], List[Dict[str, str]]]:
        """Anthropic takes the system prompt as a separate argument."""
        system_parts: List[str] = []
        messages: List[Dict[str, str]] = []
        for msg in context:
            if msg.role == Role.SYSTEM:
                system_parts.append(msg.content)
            else:
                messages.append({"role": msg.role.value, "content": msg.content})
        return ("\n\n".join(system_parts) or None), messages

    async def chat_completion(
        self,
        context: ContextPayload,
        model: Optional[str] = None,
        **kwargs: Any
    ) -> Dict[str, Any]:
        """
        Sends a chat completion request to the Anthropic Messages API.

        ``max_tokens`` defaults to 1024 and is capped at the model limit.
        """
        client = self._get_client()
        model_name = model or self.default_model
        info = self._require_model(model_name)
        api_model = self.model_api_ids.get(model_name, model_name)

        system_prompt, messages_payload = self._split_system(context)
        max_tokens = min(int(kwargs.pop("max_tokens", DEFAULT_MAX_TOKENS)), info.max_tokens)
        request: Dict[str, Any] = {"model": api_model, "messages": messages_payload, "max_tokens": max_tokens, **kwargs}
        if system_prompt:
            request["system"] = system_prompt

        if self.log_raw_payloads_enabled and logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"RAW LLM REQUEST ({self.get_name()} @ {api_model}): {json.dumps(request, default=str)}")

        logger.debug(
            f"Sending request to Anthropic API: model='{api_model}', "
            f"num_messages={len(messages_payload)}, system_prompt_present={bool(system_prompt)}"
        )
        try:
            response = await client.messages.create(**request)
        except anthropic.AnthropicError as e:
            raise self._translate_error(e) from e

        if self.log_raw_payloads_enabled and logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"RAW LLM RESPONSE ({self.get_name()} @ {api_model}): {response.model_dump_json()}")

        content = "".join(block.text for block in response.content if block.type == "text")
        usage: Dict[str, Any] = {}
        if response.usage:
            usage = {
                "prompt_tokens": response.usage.input_tokens,
                "completion_tokens": response.usage.output_tokens,
                "total_tokens": response.usage.input_tokens + response.usage.output_tokens,
            }
        return {
            "content": content,
            "model": model_name,
            "usage": usage,
            "finish_reason": response.stop_reason,
        }

    async def generate_embeddings(self, texts: List[str], model: Optional[str] = None) -> List[List[float]]:
        raise EmbeddingUnsupportedError(self.get_name(), "Anthropic does not provide an embeddings API.")

    async def test_connection(self) -> bool:
        """Sends a five-token request to the cheapest model."""
        await self.chat_completion([Message.user("ping")], model="claude-haiku", max_tokens=5)
        return True

    def _translate_error(self, e: anthropic.AnthropicError) -> Exception:
        """Maps an SDK exception onto the llmrelay failure taxonomy."""
        if isinstance(e, anthropic.APITimeoutError):
            logger.warning(f"Request to Anthropic API timed out after {self.timeout} seconds.")
            return TransientNetworkError(self.get_name(), f"Request timed out after {self.timeout}s.", code="timeout")
        if isinstance(e, anthropic.APIConnectionError):
            logger.warning(f"Connection to Anthropic API failed: {e}")
            return TransientNetworkError(self.get_name(), f"Connection failed: {e}")
        if isinstance(e, anthropic.APIStatusError):
            error_type = None
            body = e.body
            if isinstance(body, dict) and isinstance(body.get("error"), dict):
                error_type = body["error"].get("type")
            logger.warning(f"Anthropic API error: Status {e.status_code} - {e.message}")
            return http_error_for_status(
                self.get_name(),
                e.status_code,
                message=e.message,
                code=error_type,
                headers=dict(e.response.headers),
                response=body,
            )
        logger.error(f"Unexpected Anthropic SDK error: {e}", exc_info=True)
        return TransientNetworkError(self.get_name(), str(e), code="http_request_failed")

    async def close(self) -> None:
        """Closes the underlying Anthropic client session if applicable."""
        if self._client:
            try:
                await self._client.close()
                logger.info("AnthropicProvider client closed successfully.")
            except Exception as e:
                logger.error(f"Error closing AnthropicProvider client: {e}", exc_info=True)
            finally:
                self._client = None
