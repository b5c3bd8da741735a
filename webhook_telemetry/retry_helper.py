# SPDX-License-Identifier: MIT
# Copyright (c) 2025 webhook-telemetry contributors

"""Retry helper for webhook deliveries."""

import time
from typing import Callable, Optional, TypeVar

from .diagnostics import delivery_logger

logger = delivery_logger(__name__)

T = TypeVar('T')


def retry_with_backoff(
    func: Callable[[], T],
    max_attempts: int = 3,
    backoff_seconds: float = 1.0,
    max_backoff_seconds: float = 30.0,
    should_retry: Optional[Callable[[Exception], bool]] = None,
    delay_hint: Optional[Callable[[Exception], Optional[float]]] = None,
    on_retry: Optional[Callable[[Exception, int], None]] = None,
) -> T:
    """Execute a function with exponential backoff retry logic.

    Args:
        func: Function to execute
        max_attempts: Maximum number of attempts, including the first
        backoff_seconds: Base backoff time in seconds
        max_backoff_seconds: Maximum backoff time (cap)
        should_retry: Predicate deciding whether an exception is transient;
            non-transient exceptions are raised immediately
        delay_hint: Returns a server-provided delay (e.g. a rate limit's
            retry-after) that replaces the computed backoff when not None
        on_retry: Callback called before each retry (exception, attempt_number)

    Returns:
        Result of successful function execution

    Raises:
        Exception: The last exception if all attempts are exhausted
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    attempt = 0
    while True:
        try:
            return func()
        except Exception as e:
            attempt += 1
            if attempt >= max_attempts or (should_retry is not None and not should_retry(e)):
                if attempt >= max_attempts and max_attempts > 1:
                    logger.warning(f"All {max_attempts} attempts exhausted: {e}")
                raise

            backoff = min(backoff_seconds * (2 ** (attempt - 1)), max_backoff_seconds)
            if delay_hint is not None:
                hinted = delay_hint(e)
                if hinted is not None:
                    backoff = min(hinted, max_backoff_seconds)

            logger.info(f"Retry attempt {attempt}/{max_attempts}, waiting {backoff}s")
            if on_retry:
                on_retry(e, attempt)
            time.sleep(backoff)
