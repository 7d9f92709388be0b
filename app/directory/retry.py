"""Retry helper with linear backoff."""
import logging
import time
from collections.abc import Callable
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryExhaustedError(Exception):
    """All attempts failed. The last failure is chained as ``__cause__``."""

    def __init__(self, message: str, attempts: int):
        super().__init__(message)
        self.attempts = attempts


def retry_with_backoff(
    operation: Callable[[], T],
    *,
    max_attempts: int = 3,
    base_delay: float = 1.0,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    sleep: Callable[[float], None] = time.sleep,
    description: str = "operation",
) -> T:
    """
    Call ``operation`` until it succeeds or ``max_attempts`` is reached.

    After failed attempt ``n`` the helper waits ``n * base_delay`` seconds.
    Exceptions outside ``retry_on`` propagate immediately.

    Raises:
        RetryExhaustedError: every attempt failed with a retryable error.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    for attempt in range(1, max_attempts + 1):
        try:
            return operation()
        except retry_on as e:
            if attempt == max_attempts:
                raise RetryExhaustedError(
                    f"{description} failed after {attempt} attempts: {e}",
                    attempts=attempt,
                ) from e
            delay = attempt * base_delay
            logger.warning(
                f"{description} failed (attempt {attempt}/{max_attempts}), retrying in {delay:.1f}s: {e}"
            )
            sleep(delay)

    raise AssertionError("unreachable")
