# src/llmrelay/exceptions.py
"""
Custom exceptions for the llmrelay library.

This module defines the failure taxonomy used by every component of the
orchestration layer. Each exception carries a stable ``code`` plus a
structured payload (provider name, HTTP status, retry hints, attempt
history) so callers can branch on the failure category instead of parsing
messages.

Propagation rules, summarised:

- ``ConfigError`` and its subclasses are never retried and never advance a
  fallback chain.
- ``TransientNetworkError``, ``RateLimitedError`` and
  ``UpstreamServerError`` are retried locally by the retry executor and,
  once exhausted, advance the fallback chain.
- ``UpstreamClientError`` is terminal at both levels.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .models import AttemptRecord


class LLMRelayError(Exception):
    """Base class for all llmrelay specific errors."""

    code: str = "llmrelay_error"

    def __init__(self, message: str = "An unspecified error occurred in llmrelay.", code: str | None = None):
        if code is not None:
            self.code = code
        self.message = message
        super().__init__(message)


# ==============================================================================
# CONFIGURATION ERRORS
# ==============================================================================


class ConfigError(LLMRelayError):
    """Raised for errors related to configuration loading or validation."""

    code = "configuration_error"

    def __init__(self, message: str = "Configuration error.", code: str | None = None):
        super().__init__(message, code)


class UnknownProviderError(ConfigError):
    """Raised when a provider id cannot be resolved through the registry."""

    code = "unknown_provider"

    def __init__(self, provider_name: str, message: str = "Provider is not registered or not available."):
        self.provider_name = provider_name
        super().__init__(f"{message} Provider: '{provider_name}'")


class ProviderNotConfiguredError(ConfigError):
    """Raised when a provider is registered but lacks required settings (e.g. an API key)."""

    code = "not_configured"

    def __init__(self, provider_name: str, message: str = "Provider is not configured."):
        self.provider_name = provider_name
        super().__init__(f"{message} Provider: '{provider_name}'")


class InvalidModelError(ConfigError):
    """Raised when a model identifier does not belong to the provider's known model set."""

    code = "invalid_model"

    def __init__(self, provider_name: str, model_name: str, message: str = "Model is not available."):
        self.provider_name = provider_name
        self.model_name = model_name
        super().__init__(f"{message} Provider: '{provider_name}', Model: '{model_name}'")


class NoProvidersAvailableError(ConfigError):
    """Raised when no configured provider is left to serve a request."""

    code = "no_providers_available"

    def __init__(self, message: str = "No AI providers are configured."):
        super().__init__(message)


# ==============================================================================
# PROVIDER ERRORS
# ==============================================================================


class ProviderError(LLMRelayError):
    """Raised for errors originating from an LLM provider (e.g., API errors, connection issues)."""

    code = "api_error"

    def __init__(
        self,
        provider_name: str = "Unknown",
        message: str = "Provider error.",
        code: str | None = None,
        status_code: int | None = None,
    ):
        self.provider_name = provider_name
        self.status_code = status_code
        self.detail = message
        super().__init__(f"Error with provider '{provider_name}': {message}", code)


class TransientNetworkError(ProviderError):
    """Raised for timeouts, DNS failures and dropped connections."""

    code = "connection_failed"

    def __init__(self, provider_name: str = "Unknown", message: str = "Network error.", code: str | None = None):
        super().__init__(provider_name, message, code)


class UpstreamHTTPError(ProviderError):
    """
    Raised when a provider answers with a non-success HTTP status.

    Attributes:
        status_code: The HTTP status returned by the upstream API.
        headers: Response headers (lower-cased keys).
        retry_after: Seconds advertised by a ``Retry-After`` header, if any.
        response: The decoded response body, kept for diagnostics.
    """

    def __init__(
        self,
        provider_name: str,
        status_code: int,
        message: str | None = None,
        code: str | None = None,
        headers: Mapping[str, str] | None = None,
        response: Any = None,
    ):
        self.headers = {str(k).lower(): str(v) for k, v in (headers or {}).items()}
        self.response = response
        self.retry_after = parse_retry_after(self.headers.get("retry-after"))
        super().__init__(
            provider_name,
            message or f"API request failed with status {status_code}",
            code,
            status_code,
        )


class RateLimitedError(UpstreamHTTPError):
    """Raised for HTTP 429 responses."""

    code = "rate_limited"


class UpstreamServerError(UpstreamHTTPError):
    """Raised for HTTP 5xx responses."""

    code = "server_error"


class UpstreamClientError(UpstreamHTTPError):
    """Raised for HTTP 4xx responses other than 429. Terminal at every level."""

    code = "client_error"


def parse_retry_after(value: str | None) -> int | None:
    """Parses a ``Retry-After`` header given in whole seconds."""
    if value is None:
        return None
    try:
        seconds = int(str(value).strip())
    except ValueError:
        return None
    return seconds if seconds >= 0 else None


def http_error_for_status(
    provider_name: str,
    status_code: int,
    message: str | None = None,
    code: str | None = None,
    headers: Mapping[str, str] | None = None,
    response: Any = None,
) -> UpstreamHTTPError:
    """
    Builds the ``UpstreamHTTPError`` subclass matching an HTTP status.

    Args:
        provider_name: Name of the provider that returned the status.
        status_code: The HTTP status code.
        message: Provider-supplied error message, if any.
        code: Provider-supplied error code, if any.
        headers: Response headers.
        response: Decoded response body.

    Returns:
        A ``RateLimitedError``, ``UpstreamServerError`` or ``UpstreamClientError``.
    """
    if status_code == 429:
        error_cls: type[UpstreamHTTPError] = RateLimitedError
    elif status_code >= 500:
        error_cls = UpstreamServerError
    else:
        error_cls = UpstreamClientError
    return error_cls(provider_name, status_code, message, code, headers, response)


# ==============================================================================
# ORCHESTRATION ERRORS
# ==============================================================================


class RetriesExhaustedError(LLMRelayError):
    """
    Raised by the retry executor when a retryable failure persisted through
    every permitted attempt. The last observed error is attached.
    """

    code = "max_retries"

    def __init__(self, attempts: int, last_error: BaseException | None = None, message: str | None = None):
        self.attempts = attempts
        self.last_error = last_error
        self.provider_name = getattr(last_error, "provider_name", None)
        self.status_code = getattr(last_error, "status_code", None)
        detail = message or f"Request failed after {attempts} attempt(s)"
        if last_error is not None:
            detail = f"{detail}: {last_error}"
        super().__init__(detail)


class RequestTimeoutError(LLMRelayError):
    """Raised when the request-scoped deadline expires before the work completes."""

    code = "deadline_exceeded"

    def __init__(self, message: str = "Request deadline exceeded.", last_error: BaseException | None = None):
        self.last_error = last_error
        super().__init__(message)


class ChainExhaustedError(LLMRelayError):
    """
    Aggregate failure of a fallback chain.

    Attributes:
        attempts: One ``AttemptRecord`` per route that was tried, in order.
        last_error: The error raised by the final route attempted.
        state: ``"aborted"`` when a terminal failure stopped the chain early,
            ``"exhausted"`` when every route failed.
    """

    code = "all_providers_failed"

    def __init__(
        self,
        attempts: list[AttemptRecord],
        last_error: BaseException | None = None,
        state: str = "exhausted",
        message: str | None = None,
    ):
        self.attempts = list(attempts)
        self.last_error = last_error
        self.state = state
        if message is None:
            if state == "aborted":
                message = f"Fallback chain aborted after {len(self.attempts)} attempt(s)"
            else:
                message = f"All AI providers failed after {len(self.attempts)} attempt(s)"
            if last_error is not None:
                message = f"{message}. Last error: {last_error}"
        super().__init__(message)


# ==============================================================================
# EMBEDDING & INPUT ERRORS
# ==============================================================================


class EmbeddingError(LLMRelayError):
    """Raised for errors related to embedding generation."""

    code = "embedding_error"

    def __init__(self, model_name: str | None = None, message: str = "Embedding generation error.", code: str | None = None):
        self.model_name = model_name
        if model_name:
            message = f"Error with embedding model '{model_name}': {message}"
        super().__init__(message, code)


class EmbeddingUnsupportedError(EmbeddingError):
    """Raised when a provider declares no embedding capability."""

    code = "embeddings_not_supported"

    def __init__(self, provider_name: str, message: str = "Provider does not support embeddings."):
        self.provider_name = provider_name
        super().__init__(None, f"{message} Provider: '{provider_name}'")


class DimensionMismatchError(LLMRelayError):
    """Raised when two vectors of different length are compared."""

    code = "dimension_mismatch"

    def __init__(self, expected: int, actual: int, message: str = "Vectors must have the same dimension."):
        self.expected = expected
        self.actual = actual
        super().__init__(f"{message} Expected: {expected}, Actual: {actual}")


class InputValidationError(LLMRelayError):
    """Raised for empty or oversized texts and malformed batches."""

    code = "invalid_input"

    def __init__(self, message: str = "Invalid input.", index: int | None = None, code: str | None = None):
        self.index = index
        super().__init__(message, code)


__all__ = [
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
    "parse_retry_after",
    "http_error_for_status",
    "RetriesExhaustedError",
    "RequestTimeoutError",
    "ChainExhaustedError",
    "EmbeddingError",
    "EmbeddingUnsupportedError",
    "DimensionMismatchError",
    "InputValidationError",
]
