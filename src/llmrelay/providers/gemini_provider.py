# src/llmrelay/providers/gemini_provider.py
"""
Google Gemini API provider implementation for the llmrelay library.

Handles chat completions and embeddings through the ``google-genai`` SDK,
using its async surface (``client.aio``). Transport failures surface from
``httpx`` (the SDK's HTTP client) and are mapped to
``TransientNetworkError``; ``google.genai.errors.APIError`` carries the HTTP
status and is mapped through ``http_error_for_status``.
"""

import logging
import os
from typing import Any, Dict, List, Optional, Tuple

import httpx
from google import genai
from google.genai import errors, types

from ..exceptions import (
    ConfigError,
    ProviderNotConfiguredError,
    TransientNetworkError,
    http_error_for_status,
)
from ..models import ModelInfo, Role
from .base import BaseProvider, ContextPayload

logger = logging.getLogger(__name__)

PROVIDER_NAME = "google"

GEMINI_MODEL_CATALOG: Dict[str, ModelInfo] = {
    "gemini-2.0-flash-exp": ModelInfo(
        id="gemini-2.0-flash-exp", provider=PROVIDER_NAME, name="Gemini 2.0 Flash Experimental",
        max_tokens=8192,
    ),
    "gemini-1.5-pro": ModelInfo(
        id="gemini-1.5-pro", provider=PROVIDER_NAME, name="Gemini 1.5 Pro",
        max_tokens=8192, input_cost_per_1k=0.00125, output_cost_per_1k=0.005,
    ),
    "gemini-1.5-flash": ModelInfo(
        id="gemini-1.5-flash", provider=PROVIDER_NAME, name="Gemini 1.5 Flash",
        max_tokens=8192, input_cost_per_1k=0.000075, output_cost_per_1k=0.0003,
    ),
    "gemini-pro": ModelInfo(
        id="gemini-pro", provider=PROVIDER_NAME, name="Gemini Pro",
        max_tokens=2048, input_cost_per_1k=0.0005, output_cost_per_1k=0.0015,
    ),
    "text-embedding-004": ModelInfo(
        id="text-embedding-004", provider=PROVIDER_NAME, name="Text Embedding 004",
        max_tokens=2048, input_cost_per_1k=0.0001, embedding_dimension=768,
    ),
    "embedding-001": ModelInfo(
        id="embedding-001", provider=PROVIDER_NAME, name="Embedding 001",
        max_tokens=2048, input_cost_per_1k=0.0001, embedding_dimension=768,
    ),
}
DEFAULT_MODEL = "gemini-1.5-flash"
DEFAULT_EMBEDDING_MODEL = "text-embedding-004"


class GeminiProvider(BaseProvider):
    """
    llmrelay provider for the Google Gemini API using google-genai.
    """
    MODEL_CATALOG = GEMINI_MODEL_CATALOG
    supports_embeddings = True
    _client: Optional[genai.Client] = None

    def __init__(self, config: Dict[str, Any], log_raw_payloads: bool = False):
        """
        Initializes the GeminiProvider.

        Args:
            config: Configuration dictionary from `[providers.google]` containing:
                    'api_key' (optional): Google AI API key.
                    'api_key_env_var' (optional): Environment variable to read the key from
                                                  (default: GOOGLE_API_KEY).
                    'default_model' (optional): Default chat model.
                    'timeout' (optional): Request timeout in seconds (default: 60).
            log_raw_payloads: Whether to log raw request/response payloads.
        """
        super().__init__(config, log_raw_payloads)
        api_key_env_var = config.get('api_key_env_var', 'GOOGLE_API_KEY')
        self.api_key = config.get('api_key') or os.environ.get(api_key_env_var)
        self.default_model = config.get('default_model', DEFAULT_MODEL)
        self.timeout = float(config.get('timeout', 60.0))

        if not self.api_key:
            logger.warning(f"Google API key not found in config or environment variable {api_key_env_var}. "
                           "The provider will report itself as not configured.")
            return

        try:
            self._client = genai.Client(
                api_key=self.api_key,
                http_options=types.HttpOptions(timeout=int(self.timeout * 1000)),
            )
            logger.debug("google-genai client initialized.")
        except Exception as e:
            logger.error(f"Failed to initialize google-genai client: {e}", exc_info=True)
            raise ConfigError(f"Google client initialization failed: {e}")

    def get_name(self) -> str:
        """Returns the provider name: 'google'."""
        return PROVIDER_NAME

    def is_configured(self) -> bool:
        return self._client is not None

    def _get_client(self) -> genai.Client:
        if self._client is None:
            raise ProviderNotConfiguredError(self.get_name(), "Google API key is not configured.")
        return self._client

    @staticmethod
    def _to_contents(context: ContextPayload) -> Tuple[Optional[str], List[types.Content]]:
        system_parts: List[str] = []
        contents: List[types.Content] = []
        for msg in context:
            if msg.role == Role.SYSTEM:
                system_parts.append(msg.content)
                continue
            role = "model" if msg.role == Role.ASSISTANT else "user"
            contents.append(types.Content(role=role, parts=[types.Part(text=msg.content)]))
        return ("\n\n".join(system_parts) or None), contents

    async def chat_completion(
        self,
        context: ContextPayload,
        model: Optional[str] = None,
        **kwargs: Any
    ) -> Dict[str, Any]:
        """
        Sends a generate_content request to the Gemini API.

        ``max_tokens`` is translated to ``max_output_tokens``; other keyword
        arguments are passed to ``GenerateContentConfig``.
        """
        client = self._get_client()
        model_name = model or self.default_model
        self._require_model(model_name)

        system_instruction, contents = self._to_contents(context)
        if "max_tokens" in kwargs:
            kwargs["max_output_tokens"] = kwargs.pop("max_tokens")
        generation_config = types.GenerateContentConfig(system_instruction=system_instruction, **kwargs)

        logger.debug(f"Sending request to Gemini API: model='{model_name}', num_contents={len(contents)}")
        try:
            response = await client.aio.models.generate_content(
                model=model_name,
                contents=contents,
                config=generation_config,
            )
        except (errors.APIError, httpx.HTTPError) as e:
            raise self._translate_error(e) from e

        if self.log_raw_payloads_enabled and logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"RAW LLM RESPONSE ({self.get_name()} @ {model_name}): {response.model_dump_json()}")

        usage: Dict[str, Any] = {}
        metadata = response.usage_metadata
        if metadata:
            usage = {
                "prompt_tokens": metadata.prompt_token_count,
                "completion_tokens": metadata.candidates_token_count,
                "total_tokens": metadata.total_token_count,
            }
        finish_reason = None
        if response.candidates and response.candidates[0].finish_reason:
            finish_reason = str(response.candidates[0].finish_reason.value).lower()
        return {
            "content": response.text or "",
            "model": model_name,
            "usage": usage,
            "finish_reason": finish_reason,
        }

    async def generate_embeddings(self, texts: List[str], model: Optional[str] = None) -> List[List[float]]:
        """Generates embeddings for ``texts`` with a Gemini embedding model."""
        client = self._get_client()
        model_name = model or DEFAULT_EMBEDDING_MODEL
        self._require_model(model_name, embedding=True)

        logger.debug(f"Requesting {len(texts)} embedding(s) from Gemini model '{model_name}'")
        try:
            response = await client.aio.models.embed_content(model=model_name, contents=texts)
        except (errors.APIError, httpx.HTTPError) as e:
            raise self._translate_error(e) from e
        return [list(embedding.values or []) for embedding in (response.embeddings or [])]

    async def test_connection(self) -> bool:
        """Fetches the default model's metadata to verify the API key."""
        client = self._get_client()
        try:
            await client.aio.models.get(model=self.default_model)
        except (errors.APIError, httpx.HTTPError) as e:
            raise self._translate_error(e) from e
        return True

    def _translate_error(self, e: Exception) -> Exception:
        """Maps SDK and transport exceptions onto the llmrelay failure taxonomy."""
        if isinstance(e, httpx.TimeoutException):
            logger.warning(f"Request to Gemini API timed out after {self.timeout} seconds.")
            return TransientNetworkError(self.get_name(), f"Request timed out after {self.timeout}s.", code="timeout")
        if isinstance(e, httpx.HTTPError):
            logger.warning(f"Connection to Gemini API failed: {e}")
            return TransientNetworkError(self.get_name(), f"Connection failed: {e}")
        if isinstance(e, errors.APIError) and isinstance(e.code, int):
            headers = getattr(getattr(e, "response", None), "headers", None) or {}
            logger.warning(f"Gemini API error: Status {e.code} - {e.message}")
            return http_error_for_status(
                self.get_name(),
                e.code,
                message=e.message,
                code=e.status,
                headers=dict(headers),
                response=getattr(e, "details", None),
            )
        logger.error(f"Unexpected Gemini SDK error: {e}", exc_info=True)
        return TransientNetworkError(self.get_name(), str(e), code="http_request_failed")

    async def close(self) -> None:
        """Drops the client reference; google-genai manages its own transport."""
        self._client = None
