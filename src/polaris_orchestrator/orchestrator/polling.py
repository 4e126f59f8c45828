"""Reusable poll-with-backoff loop for long-running remote work."""

import asyncio
import time
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Generic, Optional, TypeVar

from polaris_orchestrator.exceptions import PollTransportError
from polaris_orchestrator.telemetry.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class PollStatus(str, Enum):
    TERMINAL = "terminal"
    TIMEOUT = "timeout"
    TRANSPORT_ERROR = "transport_error"


@dataclass(frozen=True)
class PollSchedule:
    """Delays in seconds. ``max_window`` is a soft deadline on the local wait."""

    base_delay: float = 2.0
    growth: float = 1.25
    cap: float = 5.0
    max_window: float = 240.0

    def next_delay(self, delay: float) -> float:
        return min(delay * self.growth, self.cap)


@dataclass
class PollOutcome(Generic[T]):
    status: PollStatus
    last: Optional[T]
    polls: int
    elapsed: float
    error: Optional[PollTransportError] = None


async def poll_with_backoff(
    poll: Callable[[], Awaitable[T]],
    is_terminal: Callable[[T], bool],
    schedule: PollSchedule,
    *,
    on_snapshot: Optional[Callable[[T], None]] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> PollOutcome[T]:
    """Wait, poll, inspect; repeat until terminal, out of window, or unreachable.

    The final sleep is shortened to whatever remains of the window, so control
    returns within ``max_window`` plus one poll's latency. A poll transport
    failure ends the loop without judging the remote work.
    """
    started = clock()
    delay = schedule.base_delay
    last: Optional[T] = None
    polls = 0

    while True:
        remaining = schedule.max_window - (clock() - started)
        if remaining <= 0:
            logger.info("Poll window exhausted", polls=polls, window=schedule.max_window)
            return PollOutcome(PollStatus.TIMEOUT, last, polls, clock() - started)

        await sleep(min(delay, remaining))

        try:
            last = await poll()
        except PollTransportError as e:
            logger.warning("Poll transport failed", polls=polls, error=e.message)
            return PollOutcome(PollStatus.TRANSPORT_ERROR, last, polls, clock() - started, error=e)
        polls += 1

        if on_snapshot is not None:
            try:
                on_snapshot(last)
            except Exception:
                logger.exception("Progress callback failed")

        if is_terminal(last):
            return PollOutcome(PollStatus.TERMINAL, last, polls, clock() - started)

        delay = schedule.next_delay(delay)
