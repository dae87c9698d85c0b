"""Retry helper used beneath both API clients"""

import logging
import random
import time
from typing import Callable, Optional, TypeVar

from discovery_bridge.services.errors import RateLimitError, is_retryable

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BASE_DELAY_S = 0.5
MAX_DELAY_S = 30.0
JITTER_RATIO = 0.3


def backoff_delay(attempt: int, base_delay_s: float = DEFAULT_BASE_DELAY_S, jitter: Optional[float] = None) -> float:
    """Delay before retry number ``attempt`` (1-based): base * 2^(n-1), capped, plus up to 30% jitter."""
    delay = min(base_delay_s * (2 ** (attempt - 1)), MAX_DELAY_S)
    if jitter is None:
        jitter = random.uniform(0, JITTER_RATIO)
    return delay + delay * jitter


def with_retries(
    fn: Callable[[], T],
    *,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    base_delay_s: float = DEFAULT_BASE_DELAY_S,
    should_retry: Callable[[BaseException], bool] = is_retryable,
    sleep: Optional[Callable[[float], None]] = None,
    description: str = "request",
) -> T:
    """Run callable with exponential backoff on transient errors."""
    attempt = 1
    while True:
        try:
            return fn()
        except Exception as e:
            if attempt >= max_attempts or not should_retry(e):
                raise
            delay = backoff_delay(attempt, base_delay_s)
            if isinstance(e, RateLimitError) and e.retry_after:
                delay = max(delay, min(e.retry_after, MAX_DELAY_S))
            logger.warning(
                f"{description} failed (attempt {attempt}/{max_attempts}): {e}; retrying in {delay:.2f}s"
            )
            (sleep or time.sleep)(delay)
            attempt += 1
