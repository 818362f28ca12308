"""Exponential backoff for transient Gist API failures."""

import logging
import random
import time
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

__all__ = ["RetryConfig", "RetryExhausted", "backoff_delay", "call_with_retry"]

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryConfig:
    """How often and how patiently to retry a request."""

    max_retries: int = 2
    base_delay: float = 1.0  # seconds
    max_delay: float = 20.0  # seconds
    multiplier: float = 2.0
    jitter: bool = True

    @classmethod
    def disabled(cls) -> "RetryConfig":
        return cls(max_retries=0)


class RetryExhausted(Exception):
    """Every attempt failed with a retryable error."""

    def __init__(self, attempts: int, last_error: Optional[Exception] = None):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"Gave up after {attempts} attempts")


def backoff_delay(attempt: int, config: RetryConfig) -> float:
    """Delay before retry number ``attempt`` (0-indexed), capped at max_delay."""
    delay = min(config.base_delay * (config.multiplier ** attempt), config.max_delay)
    if config.jitter:
        # +/- 20%
        delay += random.uniform(-delay * 0.2, delay * 0.2)
    return max(0.0, delay)


def call_with_retry(
    func: Callable[[], T],
    config: RetryConfig,
    retryable: tuple[type[BaseException], ...],
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call ``func`` until it succeeds or the retry budget runs out.

    Raises:
        RetryExhausted: If every attempt raised one of ``retryable``
    """
    last_error: Optional[Exception] = None
    attempts = config.max_retries + 1

    for attempt in range(attempts):
        try:
            return func()
        except retryable as e:
            last_error = e
            if attempt + 1 >= attempts:
                break
            delay = backoff_delay(attempt, config)
            logger.warning(f"Attempt {attempt + 1} failed: {e}. Retrying in {delay:.1f}s")
            sleep(delay)

    raise RetryExhausted(attempts, last_error)
