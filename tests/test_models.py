# tests/test_models.py
"""
Tests for the llmrelay.models module.

Covers roles and messages, model metadata, HTTP responses used by the retry
executor, and the chat response envelope.
"""

import pytest
from pydantic import ValidationError

from llmrelay.models import (
    AttemptRecord,
    ChatResponse,
    ComplexityTier,
    CostPriority,
    HTTPResponse,
    Message,
    ModelInfo,
    Role,
    Route,
)


class TestRoleAndMessage:
    """Tests for roles and messages."""

    @pytest.mark.parametrize("value, expected", [
        ("user", Role.USER),
        ("SYSTEM", Role.SYSTEM),
        ("Agent", Role.ASSISTANT),
        ("model", Role.ASSISTANT),
    ])
    def test_role_aliases(self, value, expected) -> None:
        assert Role(value) is expected

    def test_unknown_role(self) -> None:
        with pytest.raises(ValueError):
            Role("narrator")

    def test_message_shortcuts(self) -> None:
        assert Message.user("hi").role == Role.USER
        assert Message.system("be brief").role == Role.SYSTEM

    def test_message_from_dict(self) -> None:
        message = Message.model_validate({"role": "assistant", "content": "hello"})
        assert message.role == Role.ASSISTANT
        assert message.metadata == {}


class TestModelInfo:
    """Tests for model metadata."""

    def test_embedding_flag(self) -> None:
        assert ModelInfo(id="e", provider="p", embedding_dimension=768).is_embedding_model is True
        assert ModelInfo(id="c", provider="p").is_embedding_model is False

    def test_rejects_negative_costs(self) -> None:
        with pytest.raises(ValidationError):
            ModelInfo(id="c", provider="p", input_cost_per_1k=-1.0)


class TestHTTPResponse:
    """Tests for the structured HTTP response."""

    def test_success_range(self) -> None:
        assert HTTPResponse(status_code=204).is_success is True
        assert HTTPResponse(status_code=301).is_success is False

    def test_retry_after_header_lookup_is_case_insensitive(self) -> None:
        assert HTTPResponse(status_code=429, headers={"RETRY-AFTER": "9"}).retry_after == 9
        assert HTTPResponse(status_code=429).retry_after is None


class TestRouteAndResponse:
    """Tests for routes and the chat response envelope."""

    def test_route_equality_ignores_provider_instance(self) -> None:
        a = Route(provider_name="openai", model="gpt-4o-mini", provider=object(), complexity=ComplexityTier.SIMPLE)
        b = Route(provider_name="openai", model="gpt-4o-mini", provider=object(), complexity=ComplexityTier.SIMPLE)
        assert a == b

    def test_enums_accept_values(self) -> None:
        assert CostPriority("quality") is CostPriority.QUALITY
        assert ComplexityTier("medium") is ComplexityTier.MEDIUM

    def test_none_content_becomes_empty(self) -> None:
        response = ChatResponse(content=None, model="m", provider="p")
        assert response.content == ""
        assert response.fallback_used is False
        assert response.fallback_attempts == 1

    def test_attempt_record_rejects_negative_latency(self) -> None:
        with pytest.raises(ValidationError):
            AttemptRecord(provider="p", model="m", success=True, latency_ms=-1.0)
