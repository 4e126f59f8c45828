"""Retry policy and exponential backoff with bounded jitter."""

import random
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from tenacity import RetryCallState
from tenacity.wait import wait_base

from polaris_orchestrator.exceptions import RateLimitFailure


class RetryPolicy(BaseModel):
    """Retry configuration for one executor. Durations are in seconds."""

    model_config = ConfigDict(frozen=True)

    max_attempts: int = Field(default=3, ge=1)
    base_delay: float = Field(default=1.0, ge=0)
    backoff_multiplier: float = Field(default=2.0, ge=1)
    jitter_ratio: float = Field(default=0.2, ge=0, le=1)
    timeout: float = Field(default=60.0, gt=0)
    rate_limit_backoff_factor: float = Field(default=1.0, ge=1)

    @classmethod
    def single_attempt(cls, timeout: float = 30.0) -> "RetryPolicy":
        """Policy for calls whose caller owns the retry loop, e.g. job polls."""
        return cls(max_attempts=1, base_delay=0.0, jitter_ratio=0.0, timeout=timeout)

    def raw_delay(self, attempt: int) -> float:
        """Un-jittered delay before ``attempt`` (2-based)."""
        return self.base_delay * self.backoff_multiplier ** max(0, attempt - 2)

    def max_delay(self, rate_limited: bool = False) -> float:
        """Upper bound on any single delay within one call."""
        bound = self.raw_delay(max(2, self.max_attempts)) * (1 + self.jitter_ratio)
        if rate_limited:
            bound *= self.rate_limit_backoff_factor
        return bound


class BackoffWait(wait_base):
    """Tenacity wait strategy for one execute() call.

    The delay before attempt n is ``base * multiplier^(n-2) * (1 + U(0, jitter))``.
    Delays never decrease within a call and never exceed ``policy.max_delay``.
    After a 429 the delay is stretched by ``rate_limit_backoff_factor`` and the
    server's Retry-After is honoured as a floor.
    """

    def __init__(self, policy: RetryPolicy, rng: Optional[random.Random] = None):
        self.policy = policy
        self.rng = rng or random.Random()
        self.delays: list[float] = []
        self._rate_limited = False

    def __call__(self, retry_state: RetryCallState) -> float:
        policy = self.policy
        next_attempt = retry_state.attempt_number + 1
        delay = policy.raw_delay(next_attempt) * (1 + self.rng.uniform(0, policy.jitter_ratio))

        error = retry_state.outcome.exception() if retry_state.outcome else None
        if isinstance(error, RateLimitFailure):
            self._rate_limited = True
            delay *= policy.rate_limit_backoff_factor
            if error.retry_after:
                delay = max(delay, error.retry_after)

        if self.delays:
            delay = max(delay, self.delays[-1])
        delay = min(delay, policy.max_delay(self._rate_limited))

        self.delays.append(delay)
        return delay
