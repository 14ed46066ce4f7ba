"""
Payment status polling.

Checks a payment on a schedule: a fixed first interval that grows by a
backoff multiplier up to a cap, for at most `max_attempts` checks. Provider
errors count as attempts and polling continues; running out of attempts
reports a timeout rather than an error.
"""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from studyhall.core.config import get_settings
from studyhall.core.errors import PaymentGatewayError
from studyhall.core.logging import get_logger

logger = get_logger(__name__)

FINAL_STATES = ("success", "failed", "expired")


@dataclass
class PollSchedule:
    interval: float
    backoff: float
    max_interval: float
    max_attempts: int

    @classmethod
    def from_settings(cls) -> "PollSchedule":
        settings = get_settings()
        return cls(
            interval=settings.PAYMENT_POLL_INTERVAL_SECONDS,
            backoff=settings.PAYMENT_POLL_BACKOFF,
            max_interval=settings.PAYMENT_POLL_MAX_INTERVAL_SECONDS,
            max_attempts=settings.PAYMENT_POLL_MAX_ATTEMPTS,
        )

    def delays(self) -> list[float]:
        """Sleep before each check after the first."""
        delays = []
        delay = self.interval
        for _ in range(max(self.max_attempts - 1, 0)):
            delays.append(delay)
            delay = min(delay * self.backoff, self.max_interval)
        return delays


@dataclass
class PollResult:
    state: str
    attempts: int
    timed_out: bool
    last_error: Optional[str] = None


async def poll_until_final(
    check: Callable[[], Awaitable[str]],
    schedule: Optional[PollSchedule] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    on_attempt: Optional[Callable[[int], None]] = None,
) -> PollResult:
    schedule = schedule or PollSchedule.from_settings()
    delays = schedule.delays()
    last_error = None
    state = "pending"

    for attempt in range(1, schedule.max_attempts + 1):
        if on_attempt:
            on_attempt(attempt)
        try:
            state = await check()
            last_error = None
        except PaymentGatewayError as exc:
            last_error = exc.message
            logger.warning("payment_poll_check_failed", attempt=attempt, error=exc.message)
            state = "pending"

        if state in FINAL_STATES:
            return PollResult(state=state, attempts=attempt, timed_out=False)

        if attempt < schedule.max_attempts:
            await sleep(delays[attempt - 1])

    logger.info("payment_poll_timeout", attempts=schedule.max_attempts, last_state=state)
    return PollResult(
        state="timeout",
        attempts=schedule.max_attempts,
        timed_out=True,
        last_error=last_error,
    )
