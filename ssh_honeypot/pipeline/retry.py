"""
Retry Controller
Bounded exponential backoff that honours provider cool-downs
"""

import asyncio
import logging
import random
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, Optional, TypeVar

from ssh_honeypot.core.exceptions import HoneypotError, RateLimitedError
from ssh_honeypot.utils.helpers import utc_now

logger = logging.getLogger(__name__)

T = TypeVar("T")

@dataclass(frozen=True)
class BackoffPolicy:
    initial_interval: float = 0.5
    multiplier: float = 1.5
    max_interval: float = 10.0
    max_elapsed: float = 30.0
    randomization: float = 0.5

    @classmethod
    def from_settings(cls, settings) -> "BackoffPolicy":
        return cls(
            initial_interval=settings.backoff_initial_interval,
            multiplier=settings.backoff_multiplier,
            max_interval=settings.backoff_max_interval,
            max_elapsed=settings.backoff_max_elapsed,
            randomization=settings.backoff_randomization
        )

class RetryController:
    def __init__(
        self,
        policy: BackoffPolicy = BackoffPolicy(),
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Optional[random.Random] = None
    ):
        self.policy = policy
        self.clock = clock
        self.wall_clock = wall_clock
        self.sleep = sleep
        self.rng = rng or random.Random()

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        stop_event: Optional[asyncio.Event] = None,
        description: str = "operation"
    ) -> T:
        """Run ``operation`` until it succeeds or the retry budget is spent.

        Only :class:`HoneypotError` is retried; anything else propagates at
        once. The next wait never ends before a rate-limited provider's resume
        time, and a wait that would overrun ``max_elapsed`` ends the loop with
        the last error. Setting ``stop_event`` (the connection went away)
        also ends the loop; an attempt already running is not interrupted.
        """
        started = self.clock()
        interval = self.policy.initial_interval
        attempt = 0

        while True:
            attempt += 1
            try:
                return await operation()
            except HoneypotError as e:
                last_error = e

            delay = self._randomize(interval)
            if isinstance(last_error, RateLimitedError):
                delay = max(delay, (last_error.resume_at - self.wall_clock()).total_seconds())
            interval = min(interval * self.policy.multiplier, self.policy.max_interval)

            elapsed = self.clock() - started
            if elapsed + delay > self.policy.max_elapsed:
                logger.warning(
                    f"Giving up on {description} after {attempt} attempt(s) in {elapsed:.1f}s: {last_error}"
                )
                raise last_error

            if stop_event is not None and stop_event.is_set():
                logger.info(f"Connection closed, not retrying {description}: {last_error}")
                raise last_error

            logger.debug(f"Attempt {attempt} of {description} failed ({last_error}), retrying in {delay:.2f}s")
            if await self._wait(delay, stop_event):
                logger.info(f"Connection closed while backing off, abandoning {description}")
                raise last_error

    def _randomize(self, interval: float) -> float:
        spread = self.policy.randomization * interval
        return max(0.0, interval + self.rng.uniform(-spread, spread))

    async def _wait(self, delay: float, stop_event: Optional[asyncio.Event]) -> bool:
        """Sleep for ``delay``; returns True when ``stop_event`` cut it short."""
        if stop_event is None:
            await self.sleep(delay)
            return False

        sleeper = asyncio.ensure_future(self.sleep(delay))
        stopper = asyncio.ensure_future(stop_event.wait())
        try:
            done, _ = await asyncio.wait({sleeper, stopper}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (sleeper, stopper):
                if not task.done():
                    task.cancel()
        return stopper in done
