# src/llmrelay/resilience/__init__.py
"""
Resilience primitives for llmrelay: bounded retry with non-blocking backoff.
"""

from ..config.models import RetryPolicy
from .retry import RetryExecutor, calculate_delay

__all__ = ["RetryExecutor", "RetryPolicy", "calculate_delay"]
