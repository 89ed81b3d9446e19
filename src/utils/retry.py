"""Retry helpers for transient storage and media-tool failures.

Wraps tenacity with the project's retry policy: exponential backoff, a bounded
number of attempts, and retries only for errors that declare themselves
retryable. Works on both sync and async callables.
"""

import logging

from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)


def is_retryable(exc: BaseException) -> bool:
    """Return True for exceptions flagged as transient.

    Exceptions opt in through a truthy ``retryable`` attribute; everything
    else (validation failures, programming errors) propagates immediately.
    """
    return bool(getattr(exc, "retryable", False))


def retry_api_call(max_retries: int = 3, base_delay: float = 1.0, max_delay: float = 30.0):
    """Decorator retrying a storage/API call with exponential backoff.

    Args:
        max_retries: Retries after the first attempt (total attempts = max_retries + 1)
        base_delay: Initial backoff in seconds, doubled on every retry
        max_delay: Upper bound for a single backoff sleep

    Returns:
        Configured tenacity decorator. The final exception is re-raised unchanged.
    """
    return retry(
        stop=stop_after_attempt(max_retries + 1),
        wait=wait_exponential(multiplier=base_delay, min=base_delay, max=max_delay),
        retry=retry_if_exception(is_retryable),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )


def retry_media_probe(max_retries: int = 2, base_delay: float = 0.5):
    """Decorator for ffprobe-style inspections, which fail fast and retry briefly."""
    return retry_api_call(max_retries=max_retries, base_delay=base_delay, max_delay=5.0)
