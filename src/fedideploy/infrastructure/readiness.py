"""Readiness polling with bounded exponential backoff.

Replaces fixed sleeps: the caller supplies a check, and the wait ends as
soon as it returns True or fails loudly once the timeout elapses.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

logger = logging.getLogger(__name__)


class ReadinessTimeout(TimeoutError):
    """A readiness check did not succeed before its deadline."""

    def __init__(self, description: str, timeout: float, attempts: int) -> None:
        super().__init__(f"{description} not ready after {timeout:.0f}s ({attempts} attempts)")
        self.description = description
        self.timeout = timeout
        self.attempts = attempts


@dataclass(frozen=True)
class Backoff:
    """Exponential delay schedule.

    Attributes:
        initial_delay: Delay before the second attempt.
        max_delay: Cap applied to every delay.
        factor: Growth per attempt.
    """

    initial_delay: float = 1.0
    max_delay: float = 30.0
    factor: float = 2.0

    def delay(self, attempt: int) -> float:
        """Delay after the zero-based *attempt*."""
        if attempt < 0:
            msg = "attempt must be >= 0"
            raise ValueError(msg)
        return min(self.initial_delay * (self.factor**attempt), self.max_delay)


def wait_until(
    check: Callable[[], bool],
    *,
    description: str,
    timeout: float,
    backoff: Backoff | None = None,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> int:
    """Call *check* until it returns True.

    Returns:
        The number of attempts made.

    Raises:
        ReadinessTimeout: *timeout* seconds elapsed without a passing check.
    """
    schedule = backoff or Backoff()
    deadline = clock() + timeout
    attempt = 0
    while True:
        attempt += 1
        if check():
            logger.debug("%s ready after %d attempt(s)", description, attempt)
            return attempt
        remaining = deadline - clock()
        if remaining <= 0:
            raise ReadinessTimeout(description, timeout, attempt)
        delay = min(schedule.delay(attempt - 1), remaining)
        logger.debug("%s not ready, retrying in %.1fs", description, delay)
        sleep(delay)
