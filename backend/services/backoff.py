"""Exponential backoff policy for outbound provider calls."""
import logging
import re
import time
from dataclasses import dataclass
from typing import Callable, TypeVar

from config import RETRY_BASE_DELAY, RETRY_MAX_RETRIES
from services.errors import ConfigurationError, UpstreamError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# "rate" must stand alone so that e.g. "failed to generate" is not a match.
RATE_LIMIT_PATTERN = re.compile(r"429|rate[\s_-]?limit|\brate\b|overloaded", re.IGNORECASE)


def is_rate_limit_error(error: Exception) -> bool:
    """Return True for errors that signal provider-side rate limiting."""
    if isinstance(error, ConfigurationError):
        return False
    if isinstance(error, UpstreamError) and error.status_code == 429:
        return True
    return bool(RATE_LIMIT_PATTERN.search(str(error)))


@dataclass
class BackoffPolicy:
    """
    Retry a callable with exponential backoff.

    Attempt 0 runs immediately; retry ``n`` (1-based) waits
    ``base_delay * 2 ** (n - 1)`` seconds first. Errors rejected by
    ``is_retryable`` propagate at once; the last retryable error is re-raised
    once ``max_retries`` retries are used up.
    """
    max_retries: int = RETRY_MAX_RETRIES
    base_delay: float = RETRY_BASE_DELAY
    is_retryable: Callable[[Exception], bool] = is_rate_limit_error

    def delay_for(self, attempt: int) -> float:
        return self.base_delay * (2 ** (attempt - 1))

    def run(self, fn: Callable[[], T], description: str = "provider call") -> T:
        last_error: Exception = RuntimeError(f"{description} was never attempted")

        for attempt in range(self.max_retries + 1):
            if attempt > 0:
                wait = self.delay_for(attempt)
                logger.warning(
                    f"Rate limited on {description}, waiting {wait:.1f}s "
                    f"before retry {attempt}/{self.max_retries}"
                )
                time.sleep(wait)
            try:
                return fn()
            except Exception as e:
                if not self.is_retryable(e):
                    raise
                last_error = e

        logger.error(f"{description} still rate limited after {self.max_retries} retries")
        raise last_error
