"""
Fixed-delay retry combinator.

Attempts run strictly one after another; the delay between attempts is fixed
(no backoff). The caller gets a RetryResult back instead of an exception so it
can decide whether an exhausted budget is fatal.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Generic, Optional, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryResult(Generic[T]):
    value: Optional[T] = None
    error: Optional[BaseException] = None
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None


def retry(
    operation: Callable[[], T],
    max_attempts: int = 3,
    delay: float = 1.0,
    *,
    initial_delay: float = 0.0,
    sleep: Callable[[float], None] = time.sleep,
    give_up_on: Tuple[Type[BaseException], ...] = (),
    label: str = "operation",
) -> RetryResult[T]:
    """
    Run `operation` up to `max_attempts` times.

    Args:
        operation: Zero-argument callable; its return value becomes result.value
        max_attempts: Total attempts, including the first
        delay: Seconds slept between a failed attempt and the next one
        initial_delay: Seconds slept once before the first attempt
        sleep: Injected for tests
        give_up_on: Exception types that end the loop immediately
        label: Used in log messages
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")

    if initial_delay > 0:
        sleep(initial_delay)

    last_error: Optional[BaseException] = None
    for attempt in range(1, max_attempts + 1):
        try:
            return RetryResult(value=operation(), attempts=attempt)
        except give_up_on as e:
            logger.error(f"{label}: attempt {attempt} failed terminally: {e}")
            return RetryResult(error=e, attempts=attempt)
        except Exception as e:
            last_error = e
            logger.warning(f"{label}: attempt {attempt}/{max_attempts} failed: {e}")
            if attempt < max_attempts:
                sleep(delay)

    logger.error(f"{label}: giving up after {max_attempts} attempts")
    return RetryResult(error=last_error, attempts=max_attempts)
