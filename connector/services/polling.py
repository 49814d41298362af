"""
Convergence polling.

A convergence poller calls an async fetch function until the data it
returns is ready or an absolute deadline passes:

    do:
        result = await fetch()
    while should_continue(result) and clock() < deadline:
        await sleep(waiting_time)

The deadline is computed once, when the loop starts. At least one call is
always made, and reaching the deadline is not an error: the caller gets the
last observed result and decides what to do with it. A slow fetch can
overrun the deadline since nothing interrupts a call in flight.
"""
import asyncio
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, TypeVar

from connector.logging import get_logger
from connector import metrics

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass
class PollOutcome(Generic[T]):
    """Last result observed by a poller and how the loop ended."""
    result: T
    iterations: int
    timed_out: bool


class ConvergencePoller:
    """Bounded polling loop with a fixed delay and a wall-clock deadline."""

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Args:
            clock: Returns the current time in seconds
            sleep: Coroutine function waiting for a number of seconds
        """
        self.clock = clock
        self.sleep = sleep

    async def run(
        self,
        name: str,
        fetch: Callable[[], Awaitable[T]],
        should_continue: Callable[[T], bool],
        timeout: float,
        waiting_time: float,
    ) -> PollOutcome[T]:
        """
        Poll until should_continue is false or the deadline passes.

        Args:
            name: Poller name used in logs and metrics
            fetch: Called once per iteration
            should_continue: Readiness predicate evaluated on each result
            timeout: Seconds from now until the deadline
            waiting_time: Seconds to sleep between two calls

        Returns:
            PollOutcome with the last result
        """
        deadline = self.clock() + timeout
        iterations = 0

        while True:
            result = await fetch()
            iterations += 1

            if not should_continue(result):
                timed_out = False
                break
            if self.clock() >= deadline:
                timed_out = True
                break

            await self.sleep(waiting_time)

        log = logger.warning if timed_out else logger.info
        log(f"{name}_poll_completed", iterations=iterations, timed_out=timed_out)
        metrics.record_poll(name, iterations, timed_out)

        return PollOutcome(result=result, iterations=iterations, timed_out=timed_out)
