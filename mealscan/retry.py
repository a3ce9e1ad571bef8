from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from mealscan.errors import describe
from mealscan.models import Err, Ok, Result


logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 4
    initial_delay: float = 1.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.initial_delay < 0:
            raise ValueError("initial_delay must be non-negative")

    def delays(self) -> list[float]:
        return [self.initial_delay * (2**idx) for idx in range(self.max_attempts - 1)]


async def execute_with_retry(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int = 4,
    initial_delay: float = 1.0,
    *,
    sleep: Sleep = asyncio.sleep,
) -> Result[T]:
    """Run ``operation`` until it succeeds or fails with a non-transient kind.

    Only RATE_LIMITED and OVERLOADED are retried, at most ``max_attempts``
    calls in total, waiting ``initial_delay`` seconds before the first retry
    and doubling the wait after each one. Every other kind is returned on the
    first occurrence.
    """
    policy = RetryPolicy(max_attempts=max_attempts, initial_delay=initial_delay)
    delay = policy.initial_delay
    attempt = 0
    while True:
        attempt += 1
        try:
            value = await operation()
        except Exception as exc:
            descriptor = describe(exc)
            if not descriptor.kind.retryable:
                return Err(descriptor)
            if attempt >= policy.max_attempts:
                logger.warning(
                    "Request failed with %s after %d attempts, giving up",
                    descriptor.kind.value,
                    attempt,
                )
                return Err(descriptor)
            logger.warning(
                "Request failed with %s. Retrying in %.1fs (attempt %d of %d)",
                descriptor.kind.value,
                delay,
                attempt + 1,
                policy.max_attempts,
            )
            await sleep(delay)
            delay *= 2
            continue
        return Ok(value)
