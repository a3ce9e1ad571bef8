from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Sequence, TypeVar

from mealscan.models import Err, ErrorDescriptor, Ok, Result
from mealscan.retry import RetryPolicy, Sleep, execute_with_retry


logger = logging.getLogger(__name__)

T = TypeVar("T")

ACCURACY = "accuracy"
FAST = "fast"


@dataclass(frozen=True)
class ModelTier:
    name: str
    model: str
    label: str = ""

    def __post_init__(self) -> None:
        if not self.name or not self.name.strip():
            raise ValueError("tier name must be a non-empty string")
        if not self.model or not self.model.strip():
            raise ValueError("tier model must be a non-empty string")

    @property
    def display_name(self) -> str:
        return self.label or self.model


TierCall = Callable[[ModelTier], Awaitable[T]]


class FallbackChain:
    """Walk model tiers in configured order, one at a time.

    Each tier attempt goes through the retry controller. Only ACCESS_DENIED
    and NOT_FOUND move on to the next tier; any other failure is returned as
    is, without trying another model.
    """

    def __init__(self, policy: RetryPolicy | None = None, *, sleep: Sleep = asyncio.sleep) -> None:
        self.policy = policy or RetryPolicy()
        self._sleep = sleep

    async def invoke(self, call: TierCall[T], tiers: Sequence[ModelTier]) -> Result[T]:
        if not tiers:
            raise ValueError("at least one model tier is required")

        last_error: ErrorDescriptor | None = None
        for index, tier in enumerate(tiers):
            logger.info("Attempting analysis with %s (%s)", tier.model, tier.name)

            async def attempt(tier: ModelTier = tier) -> T:
                return await call(tier)

            outcome = await execute_with_retry(
                attempt,
                self.policy.max_attempts,
                self.policy.initial_delay,
                sleep=self._sleep,
            )
            if isinstance(outcome, Ok):
                logger.info("Tier %s produced the result", tier.name)
                return outcome

            last_error = outcome.error
            if not outcome.kind.tier_unavailable:
                logger.info("Tier %s failed with %s, not falling back", tier.name, outcome.kind.value)
                return outcome

            if index + 1 < len(tiers):
                logger.warning(
                    "Tier %s unavailable (%s), falling back to %s",
                    tier.name,
                    outcome.kind.value,
                    tiers[index + 1].name,
                )

        logger.info("All %d tiers unavailable, last failure %s", len(tiers), last_error.kind.value)
        return Err(last_error)
