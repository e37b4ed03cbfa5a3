"""Bounded retry utilities for async operations.

One helper serves every oracle call-site (guide map, guide polish, chapter
stage) so that attempt ceilings and backoff behave identically everywhere.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Literal, Optional, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

BackoffMode = Literal["linear", "exponential"]


class RetryExhaustedError(RuntimeError):
    """Raised when every attempt of a retried operation failed."""

    def __init__(self, label: str, attempts: int, last_error: Optional[BaseException]):
        self.label = label
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"{label} failed after {attempts} attempts: {last_error}")


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt ceiling and backoff for one call-site.

    Linear backoff waits ``attempt * base_delay`` after the n-th failure;
    exponential waits ``base_delay * 2 ** (attempt - 1)``.
    """

    max_attempts: int = 3
    base_delay: float = 2.0
    backoff: BackoffMode = "linear"

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.base_delay < 0:
            raise ValueError(f"base_delay must be >= 0, got {self.base_delay}")

    def delay_after(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number ``attempt`` (1-based)."""
        if self.backoff == "exponential":
            return self.base_delay * (2 ** (attempt - 1))
        return self.base_delay * attempt


async def with_retry(
    fn: Callable[[], Awaitable[T]],
    policy: RetryPolicy = RetryPolicy(),
    retry_on: tuple[Type[Exception], ...] = (Exception,),
    label: str = "operation",
    on_failure: Optional[Callable[[int, Exception], None]] = None,
) -> T:
    """Execute ``fn`` until it succeeds or the policy's attempts run out.

    Args:
        fn: Zero-argument coroutine factory, called once per attempt
        policy: Attempt ceiling and backoff
        retry_on: Exception types that count as a failed attempt; anything
            else propagates immediately
        label: Name used in log lines and the exhaustion error
        on_failure: Called with (attempt number, error) after each failure

    Raises:
        RetryExhaustedError: after ``policy.max_attempts`` failures, chained
            from the last error
    """
    last_error: Optional[Exception] = None
    for attempt in range(1, policy.max_attempts + 1):
        try:
            return await fn()
        except retry_on as e:
            last_error = e
            logger.warning(f"{label}: attempt {attempt}/{policy.max_attempts} failed: {e}")
            if on_failure is not None:
                on_failure(attempt, e)
            if attempt < policy.max_attempts:
                await asyncio.sleep(policy.delay_after(attempt))

    raise RetryExhaustedError(label, policy.max_attempts, last_error) from last_error
