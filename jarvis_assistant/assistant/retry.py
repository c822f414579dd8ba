"""Bounded exponential backoff for model gateway calls."""

import logging
import time
from typing import Callable, TypeVar

from jarvis_assistant.assistant.errors import GatewayError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_transient(error: BaseException) -> bool:
    """True for overload / rate-limit failures that are worth retrying."""
    return isinstance(error, GatewayError) and error.transient


def backoff_delay_ms(attempt: int, base_delay_ms: int = 1000) -> int:
    """Delay before retry number ``attempt`` (1-based), no jitter."""
    return base_delay_ms * 2 ** (attempt - 1)


def with_retry(
    operation: Callable[[], T],
    max_retries: int = 3,
    base_delay_ms: int = 1000,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Run ``operation``, retrying transient gateway failures.

    Fatal errors propagate after the first call. Transient errors are retried
    up to ``max_retries`` times, waiting ``base_delay_ms * 2**(attempt-1)``
    between attempts; once exhausted, the last error propagates.

    Args:
        operation: Zero-argument callable to run.
        max_retries: Maximum number of retries after the first attempt.
        base_delay_ms: Delay before the first retry, in milliseconds.
        sleep: Sleep function (seconds), injectable for tests.
    """
    attempt = 0
    while True:
        try:
            return operation()
        except Exception as e:
            if not is_transient(e) or attempt >= max_retries:
                raise
            attempt += 1
            delay_ms = backoff_delay_ms(attempt, base_delay_ms)
            logger.warning(
                "Transient gateway error (%s), retry %d/%d in %dms",
                e, attempt, max_retries, delay_ms,
            )
            sleep(delay_ms / 1000.0)
