"""
Resilience — retry with backoff, and a circuit breaker.

- retry_with_backoff: Open-Meteo fetches. A `retry_after` hint on the
  exception (from an HTTP 429) replaces the computed delay.
- CircuitBreaker: alert enrichment. After repeated LLM failures, rewrites are
  skipped outright until a cool-off passes, so checks stop paying the
  enrichment timeout on every cycle.
"""

import asyncio
import random
import time
from collections import deque
from enum import StrEnum
from typing import Awaitable, Callable, Optional, TypeVar

import structlog

logger = structlog.get_logger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


# ── Retry ──────────────────────────────────────────────────────────────


def backoff_delay(
    attempt: int,
    base_delay: float,
    max_delay: float,
    jitter: float = 0.0,
    hint: Optional[float] = None,
) -> float:
    """Seconds to wait before retry number `attempt + 1` (attempt is 0-based)."""
    if hint is not None:
        return min(max(float(hint), 0.0), max_delay)
    return min(base_delay * (2 ** attempt), max_delay) + random.uniform(0, jitter)


async def retry_with_backoff(
    fn: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 16.0,
    jitter: float = 0.5,
    retry_on: tuple = (Exception,),
    operation_name: str = "operation",
    sleep: Sleep = asyncio.sleep,
) -> T:
    """
    Call `fn` until it succeeds or `max_retries` retries are used up.

    Only exceptions in `retry_on` are retried; anything else propagates
    immediately. The last matching exception is re-raised when retries run out.
    """
    attempt = 0
    while True:
        try:
            return await fn()
        except retry_on as exc:
            if attempt >= max_retries:
                logger.error(
                    "retry_exhausted",
                    operation=operation_name,
                    attempts=attempt + 1,
                    error=str(exc),
                )
                raise
            delay = backoff_delay(
                attempt, base_delay, max_delay, jitter, getattr(exc, "retry_after", None)
            )
            logger.warning(
                "retry_attempt",
                operation=operation_name,
                attempt=attempt + 1,
                max_retries=max_retries,
                delay=round(delay, 2),
                error=str(exc),
            )
            await sleep(delay)
            attempt += 1


# ── Circuit breaker ────────────────────────────────────────────────────


class CircuitState(StrEnum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitOpenError(Exception):
    """The breaker is rejecting calls."""


class CircuitBreaker:
    """
    Fails fast while a dependency is known to be down.

    CLOSED → OPEN after `failure_threshold` failures within `window_seconds`.
    OPEN → HALF_OPEN once `recovery_timeout` has passed; one probe call is let
    through. A successful probe closes the breaker, a failed one re-opens it.
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        window_seconds: float = 60.0,
        recovery_timeout: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.window_seconds = window_seconds
        self.recovery_timeout = recovery_timeout
        self._clock = clock
        self._failures: deque[float] = deque()
        self._retry_at: Optional[float] = None   # set while open
        self._probing = False

    @property
    def state(self) -> CircuitState:
        if self._retry_at is None:
            return CircuitState.CLOSED
        if self._clock() < self._retry_at:
            return CircuitState.OPEN
        return CircuitState.HALF_OPEN

    def _admit(self) -> None:
        state = self.state
        if state == CircuitState.OPEN:
            logger.debug("circuit_open_rejected", breaker=self.name)
            raise CircuitOpenError(f"Circuit breaker '{self.name}' is open")
        if state == CircuitState.HALF_OPEN:
            if self._probing:
                raise CircuitOpenError(f"Circuit breaker '{self.name}' is probing")
            self._probing = True
            logger.info("circuit_half_open", breaker=self.name)

    def record_success(self) -> None:
        if self._retry_at is not None:
            logger.info("circuit_closed", breaker=self.name)
        self.reset()

    def record_failure(self) -> None:
        now = self._clock()
        if self._probing:
            self._probing = False
            self._retry_at = now + self.recovery_timeout
            logger.warning("circuit_reopened", breaker=self.name)
            return

        self._failures.append(now)
        while self._failures and self._failures[0] <= now - self.window_seconds:
            self._failures.popleft()

        if len(self._failures) >= self.failure_threshold:
            self._retry_at = now + self.recovery_timeout
            logger.warning(
                "circuit_opened",
                breaker=self.name,
                failures=len(self._failures),
                retry_in_seconds=self.recovery_timeout,
            )

    async def call(self, fn: Callable[..., Awaitable[T]], *args, **kwargs) -> T:
        """
        Run `fn` if the breaker admits it, recording the outcome.

        Cancellation (an outer asyncio.wait_for timing out) counts as a
        failure and is re-raised.
        """
        self._admit()
        try:
            result = await fn(*args, **kwargs)
        except (Exception, asyncio.CancelledError):
            self.record_failure()
            raise
        self.record_success()
        return result

    def reset(self) -> None:
        self._failures.clear()
        self._retry_at = None
        self._probing = False
