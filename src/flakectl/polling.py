"""Bounded polling, the only retry policy in flakectl."""
from __future__ import annotations

import logging
import time
from collections.abc import Callable

from .errors import ReadinessTimeoutError

LOGGER = logging.getLogger(__name__)


def poll_until(
    check: Callable[[], bool],
    *,
    attempts: int,
    interval: float,
    sleep: Callable[[float], None] = time.sleep,
    description: str = "condition",
) -> int:
    """Call *check* until it returns ``True``; return the successful attempt number.

    At most *attempts* calls are made, with *interval* seconds slept between
    consecutive calls (never after the last one). *sleep* is injectable so the
    bound can be exercised without wall-clock delay.

    Raises:
        ReadinessTimeoutError: when every attempt fails.
    """
    if attempts < 1:
        raise ValueError("attempts must be at least 1")
    for attempt in range(1, attempts + 1):
        if check():
            LOGGER.debug("%s reached on attempt %d", description, attempt)
            return attempt
        if attempt < attempts:
            sleep(interval)
    raise ReadinessTimeoutError(
        f"{description} not reached after {attempts} attempts",
        attempts=attempts,
    )


__all__ = ["poll_until"]
