from __future__ import annotations

import logging
import re
import time
from collections.abc import Callable, Iterable
from typing import TypeVar

"""Bounded retry with optional exponential backoff.

RetryExecutor knows nothing about directories: it calls an operation, decides
whether a failure is worth another attempt, sleeps, and eventually re-raises
the last failure for the caller to classify.

Parameter ranges (max_retries 1-10, initial delay 1-300s) are enforced when the
configuration is loaded, not here.
"""

__all__ = [
    "MAX_DELAY_SECONDS",
    "RetryExecutor",
    "is_retryable",
]

T = TypeVar("T")

MAX_DELAY_SECONDS = 300

logger = logging.getLogger(__name__)


def is_retryable(message: str, patterns: Iterable[str] | None) -> bool:
    """True if ``message`` matches any pattern; an empty pattern list retries everything.

    Patterns are case-insensitive regular expressions. A pattern that does not
    compile is matched as a plain substring.
    """
    pattern_list = list(patterns or ())
    if not pattern_list:
        return True
    for pattern in pattern_list:
        try:
            if re.search(pattern, message, re.IGNORECASE):
                return True
        except re.error:
            if pattern.lower() in message.lower():
                return True
    return False


class RetryExecutor:
    """Run a fallible operation up to ``max_retries + 1`` times."""

    def __init__(self, sleep: Callable[[float], None] | None = None) -> None:
        self._sleep = sleep or time.sleep

    def execute(
        self,
        operation: Callable[[], T],
        max_retries: int,
        initial_delay: float,
        use_exponential_backoff: bool = False,
        retryable_error_patterns: Iterable[str] | None = None,
        description: str = "operation",
    ) -> T:
        patterns = list(retryable_error_patterns or ())
        total_attempts = max_retries + 1
        current_delay = float(initial_delay)
        attempt = 0
        while True:
            attempt += 1
            logger.debug("%s: attempt %d/%d", description, attempt, total_attempts)
            try:
                result = operation()
            except Exception as e:
                message = str(e)
                if not is_retryable(message, patterns):
                    logger.debug("%s: non-retryable failure: %s", description, message)
                    raise
                if attempt >= total_attempts:
                    logger.warning(
                        "%s: giving up after %d attempts: %s", description, attempt, message
                    )
                    raise
                logger.warning(
                    "%s: attempt %d/%d failed (%s), retrying in %.0fs",
                    description,
                    attempt,
                    total_attempts,
                    message,
                    current_delay,
                )
                self._sleep(current_delay)
                if use_exponential_backoff:
                    current_delay = min(current_delay * 2, MAX_DELAY_SECONDS)
                continue
            if attempt > 1:
                logger.info("%s: succeeded on attempt %d/%d", description, attempt, total_attempts)
            return result
