"""
Caller-side retry for conflicting units of work.

The kernel never retries: a lost race surfaces as
ConcurrentModificationError after a full rollback.  Callers that want to try
again wrap the whole operation (validation, unit of work, audit) here, so
every attempt re-reads fresh state.
"""

import time
from typing import Callable, TypeVar

from lending_kernel.exceptions import ConcurrentModificationError
from lending_kernel.logging_config import get_logger

logger = get_logger("services.retry")

T = TypeVar("T")


def retry_on_conflict(
    operation: Callable[[], T],
    *,
    max_attempts: int = 3,
    backoff_seconds: float = 0.05,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Run ``operation`` until it stops losing races, at most ``max_attempts``
    times.  The wait doubles after each conflict.

    Raises:
        ValueError: max_attempts < 1.
        ConcurrentModificationError: the last attempt also conflicted.
        Anything else ``operation`` raises, immediately.
    """
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")

    delay = backoff_seconds
    for attempt in range(1, max_attempts + 1):
        try:
            return operation()
        except ConcurrentModificationError:
            if attempt == max_attempts:
                logger.warning(
                    "conflict_retries_exhausted",
                    extra={"attempts": attempt},
                )
                raise
            logger.info(
                "conflict_retrying",
                extra={"attempt": attempt, "delay_seconds": delay},
            )
            if delay > 0:
                sleep(delay)
            delay *= 2
    raise AssertionError("unreachable")
