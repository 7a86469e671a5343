# src/llmrelay/models.py
"""
Core data models for the llmrelay library.

This module defines the Pydantic models and lightweight value objects that
flow between the router, the retry executor, the fallback orchestrator and
the embedding service: chat messages, model metadata, resolved routes,
per-route attempt records and the chat response envelope.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from .exceptions import parse_retry_after

if TYPE_CHECKING:
    from .providers.base import BaseProvider


class Role(str, enum.Enum):
    """
    Enumeration of possible roles in a conversation.
    These roles define the origin or type of a message.
    """
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"

    @classmethod
    def _missing_(cls, value: object):  # type: ignore[misc]
        """
        Handles case-insensitive matching and common aliases for roles.
        For example, "Agent" or "AGENT" will be mapped to Role.ASSISTANT.
        """
        if isinstance(value, str):
            lower_value = value.lower()
            if lower_value in ("agent", "model"):
                return cls.ASSISTANT
            for member in cls:
                if member.value == lower_value:
                    return member
        return None


class Message(BaseModel):
    """
    A single chat turn handed to a provider.

    Attributes:
        role: The role of the entity that produced the message.
        content: The textual content of the message.
        metadata: An optional dictionary for storing additional, unstructured information.
    """
    role: Role = Field(description="The role of the message sender (system, user, or assistant).")
    content: str = Field(description="The textual content of the message.")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Optional dictionary for additional message metadata.")

    @classmethod
    def user(cls, content: str) -> "Message":
        """Shortcut for a user message."""
        return cls(role=Role.USER, content=content)

    @classmethod
    def system(cls, content: str) -> "Message":
        """Shortcut for a system message."""
        return cls(role=Role.SYSTEM, content=content)


class ComplexityTier(str, enum.Enum):
    """Coarse classification of a request used to pick a cost/quality trade-off."""
    SIMPLE = "simple"
    MEDIUM = "medium"
    COMPLEX = "complex"


class CostPriority(str, enum.Enum):
    """Preference selecting among the models routed for a complexity tier."""
    COST = "cost"
    BALANCED = "balanced"
    QUALITY = "quality"


class ModelInfo(BaseModel):
    """
    Static metadata for a model scoped to a provider.

    ``embedding_dimension`` is ``None`` for chat models; any integer value
    marks the model as an embedding model producing vectors of that length.
    Costs are expressed per 1,000 tokens.
    """
    id: str = Field(description="Model identifier as sent to the provider API.")
    provider: str = Field(description="Name of the provider owning the model.")
    name: Optional[str] = Field(default=None, description="Human readable display name.")
    max_tokens: int = Field(default=4096, ge=0, description="Maximum token limit of the model.")
    input_cost_per_1k: float = Field(default=0.0, ge=0.0)
    output_cost_per_1k: float = Field(default=0.0, ge=0.0)
    embedding_dimension: Optional[int] = Field(default=None, gt=0)

    @property
    def is_embedding_model(self) -> bool:
        return self.embedding_dimension is not None


@dataclass(frozen=True)
class Route:
    """
    A resolved (provider, model) pair for one attempt.

    Routes are created per request and never persisted. ``source`` records how
    the pair was resolved: ``forced``, ``routed``, ``default``, ``configured``
    or ``derived``.
    """
    provider_name: str
    model: str
    provider: "BaseProvider" = field(repr=False, compare=False)
    complexity: Optional[ComplexityTier] = None
    cost_priority: Optional[CostPriority] = None
    source: str = "routed"


@dataclass
class HTTPResponse:
    """
    Structured response an attempt function may hand back to the retry executor
    instead of raising. Only ``status_code`` is required; ``data`` holds the
    decoded JSON body when available.
    """
    status_code: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: str = ""
    data: Any = None

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def retry_after(self) -> Optional[int]:
        for key, value in self.headers.items():
            if key.lower() == "retry-after":
                return parse_retry_after(value)
        return None


class AttemptRecord(BaseModel):
    """Telemetry for one route execution inside a fallback chain."""
    provider: str
    model: str
    success: bool
    latency_ms: float = Field(ge=0.0, description="Wall time spent on the route, in milliseconds.")
    error: Optional[str] = None
    error_code: Optional[str] = None
    status_code: Optional[int] = None


class ChatResponse(BaseModel):
    """
    Response envelope returned by the fallback orchestrator on success.

    ``fallback_attempts`` is the number of routes tried (``index + 1`` of the
    winning route) and ``fallback_chain`` lists every attempt in order.
    """
    content: str
    model: str
    provider: str
    usage: Dict[str, Any] = Field(default_factory=dict)
    finish_reason: Optional[str] = None
    fallback_used: bool = False
    fallback_attempts: int = 1
    fallback_chain: List[AttemptRecord] = Field(default_factory=list)

    @field_validator("content", mode="before")
    @classmethod
    def coerce_none_content(cls, v: Any) -> str:
        return "" if v is None else v


@dataclass(frozen=True)
class SimilarityResult:
    """A ranked candidate; ``index`` is its position in the original candidate list."""
    index: int
    similarity: float
    embedding: List[float] = field(repr=False)


__all__ = [
    "Role",
    "Message",
    "ComplexityTier",
    "CostPriority",
    "ModelInfo",
    "Route",
    "HTTPResponse",
    "AttemptRecord",
    "ChatResponse",
    "SimilarityResult",
]
