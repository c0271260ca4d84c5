#!/usr/bin/env python3
"""Resilience helpers for provisioning calls.

Two patterns are provided:
    - retry_async: exponential backoff with jitter for transient
      transport and 5xx failures
    - CircuitBreaker: stop hammering the backend once it is clearly down

Example:
    circuit = CircuitBreaker(failure_threshold=5, timeout=30, name="provisioning")
    rows = await circuit.call(retry_async, fetch, "/customer/work/getCustProdInfo", body)
"""
import asyncio
import logging
import random
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, TypeVar

from .exceptions import (
    CircuitOpenError,
    NetworkError,
    RateLimitError,
    ServerError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


# ============================================
# Retry with Exponential Backoff
# ============================================

RETRYABLE_EXCEPTIONS = (
    NetworkError,
    RateLimitError,
    ServerError,
    asyncio.TimeoutError,
)


def _next_delay(delay: float, max_delay: float, jitter: bool) -> float:
    actual = min(delay, max_delay)
    if jitter:
        actual = actual * (0.5 + random.random())
    return actual


async def retry_async(
    func: Callable[..., Awaitable[T]],
    *args,
    max_attempts: int = 3,
    backoff_factor: float = 2.0,
    initial_delay: float = 1.0,
    max_delay: float = 30.0,
    jitter: bool = True,
    retryable_exceptions: tuple = RETRYABLE_EXCEPTIONS,
    **kwargs,
) -> T:
    """Call an async function, retrying transient failures.

    Args:
        func: Async callable
        *args: Positional arguments for func
        max_attempts: Total attempts including the first
        backoff_factor: Multiplier applied to the delay after each failure
        initial_delay: Seconds to wait before the first retry
        max_delay: Upper bound for a single wait
        jitter: Randomize waits between 50% and 150%
        retryable_exceptions: Exception types worth retrying
        **kwargs: Keyword arguments for func

    Returns:
        Whatever func returns

    Raises:
        The last exception once attempts are exhausted, or any
        non-retryable exception immediately.
    """
    delay = initial_delay

    for attempt in range(1, max_attempts + 1):
        try:
            return await func(*args, **kwargs)
        except retryable_exceptions as e:
            if attempt >= max_attempts:
                logger.error(f"All {max_attempts} attempts failed. Last error: {e}")
                raise

            if isinstance(e, RateLimitError) and e.retry_after:
                delay = float(e.retry_after)

            wait = _next_delay(delay, max_delay, jitter)
            logger.warning(
                f"Attempt {attempt}/{max_attempts} failed: {e}. Retrying in {wait:.1f}s"
            )
            await asyncio.sleep(wait)
            delay = min(delay * backoff_factor, max_delay)

    raise RuntimeError("retry_async called with max_attempts < 1")


# ============================================
# Circuit Breaker
# ============================================

class CircuitState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """Fail fast while the provisioning backend is unavailable.

    CLOSED counts consecutive failures and opens at failure_threshold.
    OPEN rejects calls with CircuitOpenError until timeout seconds pass,
    then lets calls through in HALF_OPEN. success_threshold successes in
    HALF_OPEN close the circuit again; one failure reopens it.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        timeout: float = 30.0,
        success_threshold: int = 1,
        name: str = "provisioning",
    ):
        self.failure_threshold = failure_threshold
        self.timeout = timeout
        self.success_threshold = success_threshold
        self.name = name

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._opened_at: Optional[datetime] = None
        self._lock = asyncio.Lock()

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state == CircuitState.OPEN

    @property
    def failure_count(self) -> int:
        return self._failure_count

    def _timeout_elapsed(self) -> bool:
        if self._opened_at is None:
            return True
        elapsed = (datetime.utcnow() - self._opened_at).total_seconds()
        return elapsed >= self.timeout

    async def call(
        self,
        func: Callable[..., Awaitable[T]],
        *args,
        **kwargs,
    ) -> T:
        """Run func through the breaker.

        Raises:
            CircuitOpenError: If the circuit is open and the timeout has not passed
        """
        async with self._lock:
            if self._state == CircuitState.OPEN:
                if not self._timeout_elapsed():
                    reset_at = self._opened_at + timedelta(seconds=self.timeout)
                    raise CircuitOpenError(
                        f"Circuit breaker '{self.name}' is open",
                        reset_at=reset_at,
                        failure_count=self._failure_count,
                    )
                logger.info(f"Circuit '{self.name}' transitioning to HALF_OPEN")
                self._state = CircuitState.HALF_OPEN
                self._success_count = 0

        try:
            result = await func(*args, **kwargs)
        except Exception as e:
            await self._record_failure(e)
            raise

        await self._record_success()
        return result

    async def _record_success(self) -> None:
        async with self._lock:
            self._failure_count = 0
            if self._state == CircuitState.HALF_OPEN:
                self._success_count += 1
                if self._success_count >= self.success_threshold:
                    logger.info(f"Circuit '{self.name}' closed")
                    self._state = CircuitState.CLOSED
                    self._success_count = 0

    async def _record_failure(self, exception: Exception) -> None:
        async with self._lock:
            self._failure_count += 1
            if self._state == CircuitState.HALF_OPEN:
                logger.warning(f"Circuit '{self.name}' reopening after test failure: {exception}")
                self._state = CircuitState.OPEN
                self._opened_at = datetime.utcnow()
            elif (
                self._state == CircuitState.CLOSED
                and self._failure_count >= self.failure_threshold
            ):
                logger.warning(
                    f"Circuit '{self.name}' opening after {self._failure_count} failures"
                )
                self._state = CircuitState.OPEN
                self._opened_at = datetime.utcnow()

    def reset(self) -> None:
        """Force the breaker back to CLOSED."""
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._opened_at = None
        logger.info(f"Circuit '{self.name}' manually reset")

    def get_status(self) -> dict[str, Any]:
        """Breaker status for the health endpoint."""
        return {
            "name": self.name,
            "state": self._state.value,
            "failure_count": self._failure_count,
            "failure_threshold": self.failure_threshold,
            "timeout_seconds": self.timeout,
            "opened_at": self._opened_at.isoformat() if self._opened_at else None,
        }


__all__ = [
    "RETRYABLE_EXCEPTIONS",
    "retry_async",
    "CircuitState",
    "CircuitBreaker",
]
