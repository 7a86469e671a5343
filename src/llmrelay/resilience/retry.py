# src/llmrelay/resilience/retry.py
"""
Retry Executor for llmrelay.

Runs an arbitrary async attempt function under a :class:`RetryPolicy`:
bounded attempts, exponential backoff with jitter, classification of HTTP
statuses and error categories, and ``Retry-After`` honouring for 429s.

Each attempt function receives the zero-based attempt index and either
returns a result, returns an :class:`~llmrelay.models.HTTPResponse`, or
raises. Outcomes are handled as follows:

- A plain result is returned unchanged.
- A 2xx ``HTTPResponse`` is returned unchanged; any other status is turned
  into the matching ``UpstreamHTTPError`` and classified by status.
- A raised ``UpstreamHTTPError`` is classified by status; any other
  exception is classified by category code and message phrases.
- ``ConfigError`` and ``RequestTimeoutError`` are never retried.

Backoff waits are ``await``ed through an injectable async ``sleep``
(``asyncio.sleep`` by default), and an optional event-loop deadline bounds
both the attempts and the waits.

Usage:
    executor = RetryExecutor(RetryPolicy(max_retries=2))
    result = await executor.execute(lambda attempt: provider.chat_completion(messages, model="gpt-4o-mini"))
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import Any

from ..config.models import RetryPolicy
from ..exceptions import (
    ConfigError,
    RequestTimeoutError,
    RetriesExhaustedError,
    UpstreamHTTPError,
    http_error_for_status,
)
from ..models import HTTPResponse

logger = logging.getLogger(__name__)

AttemptFn = Callable[[int], Awaitable[Any]]
SleepFn = Callable[[float], Awaitable[Any]]

TRANSIENT_ERROR_PHRASES: tuple[str, ...] = (
    "timeout",
    "connection",
    "network",
    "temporarily",
    "unavailable",
    "server error",
)


def calculate_delay(attempt: int, policy: RetryPolicy, rng: Callable[[], float] = random.random) -> float:
    """
    Computes the backoff delay before retry number ``attempt + 1``.

    ``initial_delay * exponential_base ** attempt``, plus up to
    ``jitter_max`` of that value when jitter is enabled, clamped to
    ``max_delay``.

    Args:
        attempt: Zero-based index of the attempt that just failed.
        policy: The retry policy in force.
        rng: Source of uniform values in ``[0, 1)``.

    Returns:
        The delay in seconds.
    """
    delay = policy.initial_delay * (policy.exponential_base ** attempt)
    if policy.jitter:
        delay += delay * policy.jitter_max * rng()
    return min(delay, policy.max_delay)


def error_category(error: BaseException) -> str | None:
    """Returns the category code of an error (``timeout``, ``connection_failed``...) if known."""
    code = getattr(error, "code", None)
    if isinstance(code, str):
        return code
    if isinstance(error, TimeoutError):
        return "timeout"
    if isinstance(error, ConnectionError):
        return "connection_failed"
    return None


class RetryExecutor:
    """
    Executes attempt functions with bounded retry and non-blocking backoff.

    The executor holds no per-request state apart from aggregate statistics,
    so one instance can serve many concurrent requests.
    """

    def __init__(
        self,
        policy: RetryPolicy | None = None,
        *,
        sleep: SleepFn = asyncio.sleep,
        rng: Callable[[], float] = random.random,
    ):
        """
        Args:
            policy: Default policy for calls that do not pass one.
            sleep: Async suspension primitive used between attempts.
            rng: Source of uniform values in ``[0, 1)`` for jitter.
        """
        self.policy = policy or RetryPolicy()
        self._sleep = sleep
        self._rng = rng
        self._stats = {
            "executions": 0,
            "attempts": 0,
            "retries": 0,
            "successes": 0,
            "failures": 0,
        }

    # --- Classification ---------------------------------------------------

    @staticmethod
    def is_retryable_status_code(status_code: int, policy: RetryPolicy) -> bool:
        """429 and every 5xx are always retryable; otherwise the policy's status set decides."""
        if status_code == 429:
            return True
        if status_code in policy.retryable_status_codes:
            return True
        return 500 <= status_code < 600

    @staticmethod
    def is_retryable_error(error: BaseException, policy: RetryPolicy) -> bool:
        """
        Decides whether a raised error (without an HTTP status) is transient.

        The category code is matched against ``policy.retryable_error_codes``
        first, then the message is scanned case-insensitively for known
        transient phrases.
        """
        if isinstance(error, (ConfigError, RequestTimeoutError)):
            return False
        category = error_category(error)
        if category is not None and category in policy.retryable_error_codes:
            return True
        message = str(error).lower()
        return any(phrase in message for phrase in TRANSIENT_ERROR_PHRASES)

    @staticmethod
    def error_from_response(response: HTTPResponse, provider_name: str = "http") -> UpstreamHTTPError:
        """
        Builds an error from a non-success response, using the provider's
        ``error.code`` / ``error.message`` when the body carries them.
        """
        code = None
        message = None
        data = response.data
        if isinstance(data, dict) and isinstance(data.get("error"), dict):
            code = data["error"].get("code") or data["error"].get("type")
            message = data["error"].get("message")
        return http_error_for_status(
            provider_name,
            response.status_code,
            message=message,
            code=str(code) if code else None,
            headers=response.headers,
            response=data if data is not None else response.body,
        )

    def calculate_delay(self, attempt: int, policy: RetryPolicy | None = None) -> float:
        return calculate_delay(attempt, policy or self.policy, self._rng)

    # --- Execution --------------------------------------------------------

    async def execute(
        self,
        attempt_fn: AttemptFn,
        policy: RetryPolicy | None = None,
        *,
        deadline: float | None = None,
        provider_name: str = "http",
        **overrides: Any,
    ) -> Any:
        """
        Runs ``attempt_fn`` until it succeeds, fails terminally or runs out of attempts.

        Args:
            attempt_fn: Coroutine function taking the attempt index.
            policy: Policy for this call; defaults to the executor's policy.
            deadline: Absolute ``loop.time()`` after which no attempt or wait may run.
            provider_name: Provider reported on errors built from non-success responses.
            **overrides: Per-call policy field overrides (e.g. ``max_retries=1``).

        Returns:
            Whatever the successful attempt returned.

        Raises:
            RetriesExhaustedError: A retryable failure persisted through every attempt.
            RequestTimeoutError: The deadline expired, or the next wait would overrun it.
            Exception: The original error of a non-retryable failure.
        """
        policy = (policy or self.policy).with_overrides(**overrides)
        self._stats["executions"] += 1
        attempt = 0
        while True:
            self._stats["attempts"] += 1
            try:
                result = await self._invoke(attempt_fn, attempt, deadline)
            except (ConfigError, RequestTimeoutError):
                self._stats["failures"] += 1
                raise
            except UpstreamHTTPError as e:
                delay = self._delay_for_status(e, attempt, policy)
                last_error: BaseException = e
            except Exception as e:
                delay = self._delay_for_error(e, attempt, policy)
                last_error = e
            else:
                if not isinstance(result, HTTPResponse) or result.is_success:
                    self._stats["successes"] += 1
                    if attempt > 0:
                        logger.info(f"Request succeeded on attempt {attempt + 1}.")
                    return result
                last_error = self.error_from_response(result, provider_name)
                delay = self._delay_for_status(last_error, attempt, policy)

            await self._wait(delay, deadline, last_error)
            self._stats["retries"] += 1
            attempt += 1

    async def _invoke(self, attempt_fn: AttemptFn, attempt: int, deadline: float | None) -> Any:
        if deadline is None:
            return await attempt_fn(attempt)
        loop = asyncio.get_running_loop()
        if loop.time() >= deadline:
            raise RequestTimeoutError("Request deadline exceeded before attempt could start.")
        timeout_cm = asyncio.timeout_at(deadline)
        try:
            async with timeout_cm:
                return await attempt_fn(attempt)
        except TimeoutError as e:
            if timeout_cm.expired():
                raise RequestTimeoutError(f"Request deadline exceeded during attempt {attempt + 1}.") from e
            raise

    def _delay_for_status(self, error: UpstreamHTTPError, attempt: int, policy: RetryPolicy) -> float:
        """Returns the wait before the next attempt, or raises if the status is terminal."""
        status = error.status_code or 0
        if not self.is_retryable_status_code(status, policy):
            logger.warning(f"Non-retryable status {status} on attempt {attempt + 1}: {error}")
            self._stats["failures"] += 1
            raise error
        if attempt >= policy.max_retries:
            logger.error(f"Max retries ({policy.max_retries}) exceeded. Last status: {status}")
            self._stats["failures"] += 1
            raise RetriesExhaustedError(attempt + 1, error) from error
        if status == 429 and error.retry_after is not None:
            delay = min(float(error.retry_after), policy.max_delay)
        else:
            delay = self.calculate_delay(attempt, policy)
        logger.warning(f"Retryable status {status}. Retrying in {delay:.2f}s (attempt {attempt + 1}/{policy.max_retries})")
        return delay

    def _delay_for_error(self, error: Exception, attempt: int, policy: RetryPolicy) -> float:
        """Returns the wait before the next attempt, or raises if the error is terminal."""
        if not self.is_retryable_error(error, policy):
            logger.warning(f"Non-retryable error on attempt {attempt + 1}: {type(error).__name__}: {error}")
            self._stats["failures"] += 1
            raise error
        if attempt >= policy.max_retries:
            logger.error(f"Max retries ({policy.max_retries}) exceeded. Last error: {error}")
            self._stats["failures"] += 1
            raise RetriesExhaustedError(attempt + 1, error) from error
        delay = self.calculate_delay(attempt, policy)
        logger.warning(f"Retryable error: {error}. Retrying in {delay:.2f}s (attempt {attempt + 1}/{policy.max_retries})")
        return delay

    async def _wait(self, delay: float, deadline: float | None, last_error: BaseException) -> None:
        if deadline is not None:
            remaining = deadline - asyncio.get_running_loop().time()
            if delay >= remaining:
                self._stats["failures"] += 1
                raise RequestTimeoutError(
                    f"Request deadline would be exceeded by a {delay:.2f}s backoff "
                    f"({max(remaining, 0.0):.2f}s left).",
                    last_error=last_error,
                ) from last_error
        await self._sleep(delay)

    def get_statistics(self) -> dict[str, Any]:
        """Returns execution counters and the default policy."""
        return {**self._stats, "policy": self.policy.model_dump(mode="json")}

    def reset_statistics(self) -> None:
        for key in self._stats:
            self._stats[key] = 0


__all__ = [
    "AttemptFn",
    "RetryExecutor",
    "TRANSIENT_ERROR_PHRASES",
    "calculate_delay",
    "error_category",
]
