"""Reusable async retry policy with bounded backoff.

One policy object is built per call site (AI model, mapping provider) and
injected into the client that uses it, so backoff state is never shared
between dependencies.

Example:
    policy = RetryPolicy(max_attempts=3, base_delay=2.0, max_delay=10.0)
    coords = await policy.run(lambda: client.fetch(address), label="geocode")
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

EXPONENTIAL = "exponential"
LINEAR = "linear"


def _always_retryable(error: BaseException) -> bool:
    return True


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt budget and backoff schedule for one external call site.

    Attributes:
        max_attempts: Total attempts including the first one.
        base_delay: Delay in seconds after the first failed attempt.
        max_delay: Upper bound for any single delay, None for no cap.
        backoff: ``exponential`` (base * 2^(n-1)) or ``linear`` (base * n).
        attempt_timeout: Per-attempt deadline in seconds, None for no deadline.
        is_retryable: Classifier; non-retryable errors are raised immediately.
        sleep: Awaitable sleep function, replaced in tests.
    """

    max_attempts: int = 3
    base_delay: float = 2.0
    max_delay: float | None = 10.0
    backoff: str = EXPONENTIAL
    attempt_timeout: float | None = None
    is_retryable: Callable[[BaseException], bool] = _always_retryable
    sleep: Callable[[float], Awaitable[Any]] = field(
        default=asyncio.sleep, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.backoff not in (EXPONENTIAL, LINEAR):
            raise ValueError(f"unknown backoff {self.backoff!r}")

    def delay_for(self, attempt: int) -> float:
        """Return the delay after failed attempt number ``attempt`` (1-based)."""
        if self.backoff == LINEAR:
            delay = self.base_delay * attempt
        else:
            delay = self.base_delay * (2 ** (attempt - 1))
        if self.max_delay is not None:
            delay = min(delay, self.max_delay)
        return delay

    async def run(self, fn: Callable[[], Awaitable[T]], label: str = "call") -> T:
        """Await ``fn()`` until it succeeds or the attempt budget is spent.

        Args:
            fn: Zero-argument coroutine factory, called once per attempt.
            label: Name used in log lines.

        Returns:
            The first successful result.

        Raises:
            The last error once attempts are exhausted, or the first
            non-retryable error. A per-attempt timeout surfaces as
            ``asyncio.TimeoutError``.
        """
        attempt = 0
        while True:
            attempt += 1
            try:
                if self.attempt_timeout is not None:
                    return await asyncio.wait_for(fn(), timeout=self.attempt_timeout)
                return await fn()
            except Exception as e:
                if not self.is_retryable(e):
                    logger.warning(
                        "retry_abort label=%s attempt=%d error=%s",
                        label, attempt, type(e).__name__,
                    )
                    raise
                if attempt >= self.max_attempts:
                    logger.warning(
                        "retry_exhausted label=%s attempts=%d error=%s",
                        label, attempt, type(e).__name__,
                    )
                    raise
                delay = self.delay_for(attempt)
                logger.info(
                    "retry_scheduled label=%s attempt=%d/%d delay=%.1fs error=%s",
                    label, attempt, self.max_attempts, delay, e,
                )
                await self.sleep(delay)
