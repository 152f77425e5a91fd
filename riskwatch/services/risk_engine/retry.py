"""Retry controller shared by every provider call.

Retries only failures the classifier marks transient (timeouts, rate
limits, unavailable upstream) with exponential back-off. Anything else,
and the final attempt's failure, propagates unmodified.

Usage::

    retry = RetryController(RetryPolicy(max_attempts=3, base_delay_seconds=1.0))
    metadata = await retry.call(client.fetch_call_metadata, call_id, deadline=deadline)

    fetch_metadata = retry.wrap(client.fetch_call_metadata)
"""
import asyncio
import functools
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

from riskwatch.services.providers.errors import is_transient

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential back-off: delay before attempt k is base * 2^(k-1)."""
    max_attempts: int = 2
    base_delay_seconds: float = 1.0
    max_delay_seconds: float = 30.0

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")

    def delay_before(self, attempt: int) -> float:
        """Seconds to wait before `attempt` (attempt 1 never waits)."""
        if attempt <= 1:
            return 0.0
        return min(self.base_delay_seconds * (2 ** (attempt - 1)), self.max_delay_seconds)


class RetryController:
    """Runs async operations under a RetryPolicy.

    A caller-supplied deadline (absolute, on the controller's clock) stops
    further attempts once the next back-off would overrun it. Task
    cancellation is never swallowed.
    """

    def __init__(
        self,
        policy: RetryPolicy = RetryPolicy(),
        classifier: Callable[[BaseException], bool] = is_transient,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.policy = policy
        self.classifier = classifier
        self._sleep = sleep
        self._clock = clock

    def deadline_in(self, seconds: float) -> float:
        """Absolute deadline `seconds` from now on this controller's clock."""
        return self._clock() + seconds

    async def call(
        self,
        operation: Callable[..., Awaitable[T]],
        *args: Any,
        deadline: Optional[float] = None,
        **kwargs: Any,
    ) -> T:
        name = getattr(operation, "__name__", "operation")
        last_error: Optional[Exception] = None

        for attempt in range(1, self.policy.max_attempts + 1):
            if attempt > 1:
                delay = self.policy.delay_before(attempt)
                if deadline is not None and self._clock() + delay >= deadline:
                    logger.warning(
                        "RETRY_ABANDONED_DEADLINE",
                        extra={"operation": name, "attempt": attempt, "delay_seconds": delay}
                    )
                    raise last_error
                await self._sleep(delay)

            try:
                return await operation(*args, **kwargs)
            except Exception as e:
                last_error = e
                if not self.classifier(e):
                    logger.warning(
                        "RETRY_NON_RETRYABLE",
                        extra={"operation": name, "attempt": attempt, "error": str(e)}
                    )
                    raise
                if attempt == self.policy.max_attempts:
                    logger.error(
                        "RETRY_EXHAUSTED",
                        extra={"operation": name, "attempts": attempt, "error": str(e)}
                    )
                    raise
                logger.warning(
                    "RETRY_SCHEDULED",
                    extra={
                        "operation": name,
                        "attempt": attempt,
                        "max_attempts": self.policy.max_attempts,
                        "error": str(e),
                    }
                )

        raise AssertionError("unreachable: loop always returns or raises")

    def wrap(self, operation: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        """Decorator form of call(); the wrapper accepts `deadline=`."""

        @functools.wraps(operation)
        async def wrapper(*args: Any, deadline: Optional[float] = None, **kwargs: Any) -> T:
            return await self.call(operation, *args, deadline=deadline, **kwargs)

        return wrapper
