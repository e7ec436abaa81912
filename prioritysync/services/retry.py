"""Small retry helper shared by the API clients"""
import logging
import time
from typing import Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRY_STATUS_CODES = (429, 500, 502, 503, 504)


def should_retry(exc: Exception) -> bool:
    """Best-effort retry predicate for transient API failures."""
    rc = getattr(exc, "status_code", None)
    if rc is None:
        rc = getattr(exc, "status", None)
    # If we can't classify, don't retry to avoid hiding real issues.
    return rc in RETRY_STATUS_CODES


def with_retries(fn: Callable[[], T], *, max_attempts: int = 3, base_delay_s: float = 0.5) -> T:
    """Run callable with small exponential backoff on transient errors."""
    attempt = 1
    while True:
        try:
            return fn()
        except Exception as e:
            if attempt >= max_attempts or not should_retry(e):
                raise
            delay = base_delay_s * (2 ** (attempt - 1))
            logger.debug(f"Transient failure (attempt {attempt}/{max_attempts}), retrying in {delay}s: {e}")
            time.sleep(delay)
            attempt += 1
