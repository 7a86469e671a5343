# tests/test_exceptions.py
"""
Tests for the llmrelay.exceptions module.

Tests the exception hierarchy, stable codes, structured attributes and the
HTTP status helpers.
"""

import pytest

from llmrelay.exceptions import (
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
    http_error_for_status,
    parse_retry_after,
)
from llmrelay.models import AttemptRecord


class TestHierarchy:
    """Tests for inheritance and codes."""

    @pytest.mark.parametrize("error_cls, code", [
        (UnknownProviderError, "unknown_provider"),
        (ProviderNotConfiguredError, "not_configured"),
        (NoProvidersAvailableError, "no_providers_available"),
    ])
    def test_config_errors(self, error_cls, code) -> None:
        error = error_cls("openai") if error_cls is not NoProvidersAvailableError else error_cls()
        assert isinstance(error, ConfigError)
        assert isinstance(error, LLMRelayError)
        assert error.code == code

    def test_invalid_model(self) -> None:
        error = InvalidModelError("openai", "gpt-9")
        assert isinstance(error, ConfigError)
        assert error.code == "invalid_model"
        assert error.provider_name == "openai"
        assert error.model_name == "gpt-9"
        assert "gpt-9" in str(error)

    def test_upstream_errors_are_provider_errors(self) -> None:
        for error_cls in (RateLimitedError, UpstreamServerError, UpstreamClientError):
            assert issubclass(error_cls, UpstreamHTTPError)
            assert issubclass(error_cls, ProviderError)
        assert issubclass(TransientNetworkError, ProviderError)

    def test_explicit_code_overrides_class_code(self) -> None:
        assert ConfigError("x").code == "configuration_error"
        assert ConfigError("x", code="custom").code == "custom"
        assert ConfigError.code == "configuration_error"

    def test_embedding_errors(self) -> None:
        assert isinstance(EmbeddingUnsupportedError("anthropic"), EmbeddingError)
        assert EmbeddingUnsupportedError("anthropic").provider_name == "anthropic"
        assert "text-embedding-3-small" in str(EmbeddingError("text-embedding-3-small", "boom"))


class TestProviderErrors:
    """Tests for provider error attributes."""

    def test_provider_error_message(self) -> None:
        error = ProviderError("openai", "Bad gateway", status_code=502)
        assert str(error) == "Error with provider 'openai': Bad gateway"
        assert error.detail == "Bad gateway"
        assert error.status_code == 502
        assert error.code == "api_error"

    def test_transient_network_error(self) -> None:
        error = TransientNetworkError("google", "DNS failure")
        assert error.code == "connection_failed"
        assert error.status_code is None

    def test_headers_lowercased_and_retry_after(self) -> None:
        error = RateLimitedError("openai", 429, headers={"Retry-After": "12", "X-Request-Id": "abc"})
        assert error.headers == {"retry-after": "12", "x-request-id": "abc"}
        assert error.retry_after == 12
        assert "429" in str(error)

    @pytest.mark.parametrize("status, error_cls", [
        (429, RateLimitedError),
        (500, UpstreamServerError),
        (503, UpstreamServerError),
        (400, UpstreamClientError),
        (404, UpstreamClientError),
    ])
    def test_http_error_for_status(self, status, error_cls) -> None:
        error = http_error_for_status("openai", status)
        assert type(error) is error_cls
        assert error.status_code == status

    @pytest.mark.parametrize("value, expected", [
        ("5", 5),
        (" 30 ", 30),
        (None, None),
        ("-1", None),
        ("Wed, 21 Oct 2015 07:28:00 GMT", None),
    ])
    def test_parse_retry_after(self, value, expected) -> None:
        assert parse_retry_after(value) == expected


class TestOrchestrationErrors:
    """Tests for retry, deadline and chain errors."""

    def test_retries_exhausted_copies_details(self) -> None:
        last = UpstreamServerError("google", 503)
        error = RetriesExhaustedError(4, last)
        assert error.code == "max_retries"
        assert error.attempts == 4
        assert error.last_error is last
        assert error.provider_name == "google"
        assert error.status_code == 503
        assert str(error).startswith("Request failed after 4 attempt(s)")

    def test_request_timeout(self) -> None:
        cause = TransientNetworkError("openai", "reset")
        error = RequestTimeoutError(last_error=cause)
        assert error.code == "deadline_exceeded"
        assert error.last_error is cause

    def test_chain_exhausted(self) -> None:
        attempts = [AttemptRecord(provider="openai", model="gpt-4o-mini", success=False, latency_ms=3.0)]
        error = ChainExhaustedError(attempts, RuntimeError("boom"))
        assert error.state == "exhausted"
        assert error.code == "all_providers_failed"
        assert "All AI providers failed after 1 attempt(s)" in str(error)
        assert "boom" in str(error)

    def test_chain_aborted_message(self) -> None:
        error = ChainExhaustedError([], state="aborted")
        assert str(error) == "Fallback chain aborted after 0 attempt(s)"


class TestInputErrors:
    """Tests for input and vector errors."""

    def test_dimension_mismatch(self) -> None:
        error = DimensionMismatchError(3, 4)
        assert error.code == "dimension_mismatch"
        assert "Expected: 3, Actual: 4" in str(error)

    def test_input_validation(self) -> None:
        error = InputValidationError("bad", index=2, code="invalid_text")
        assert error.index == 2
        assert error.code == "invalid_text"
        assert error.message == "bad"
