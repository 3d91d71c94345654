"""
Error handling utilities for governance assessments.

Provides retry logic with exponential backoff for calls to external
collaborators (inventory and directory providers).
"""

import logging
import time
from typing import Callable, Optional, TypeVar

from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)

T = TypeVar('T')


class RetryableError(Exception):
    """Base exception for errors that should trigger retry logic."""
    pass


def is_retryable_error(error: Exception) -> bool:
    """
    Classify if an error is retryable (throttling, network errors).

    Args:
        error: The exception to classify

    Returns:
        True if the error should trigger a retry, False otherwise
    """
    if isinstance(error, RetryableError):
        return True

    # Providers backed by AWS services surface throttling as ClientError
    if isinstance(error, ClientError):
        error_code = error.response.get('Error', {}).get('Code', '')
        retryable_codes = [
            'ThrottlingException',
            'Throttling',
            'TooManyRequestsException',
            'RequestLimitExceeded',
            'ServiceUnavailable',
            'InternalError',
            'RequestTimeout',
        ]
        if error_code in retryable_codes:
            return True

    error_message = str(error).lower()
    retryable_patterns = [
        'timeout',
        'timed out',
        'connection',
        'network',
        'temporarily unavailable',
        'too many requests',
    ]

    return any(pattern in error_message for pattern in retryable_patterns)


def retry_with_backoff(
    func: Callable[[], T],
    max_retries: int = 3,
    initial_delay: float = 1.0,
    backoff_factor: float = 2.0,
    retryable_check: Optional[Callable[[Exception], bool]] = None
) -> T:
    """
    Retry a function with exponential backoff.

    Only retries on errors classified as retryable; anything else is
    re-raised immediately.

    Args:
        func: The function to execute (should take no arguments)
        max_retries: Maximum number of attempts (default: 3)
        initial_delay: Initial delay in seconds (default: 1.0)
        backoff_factor: Multiplier for delay on each retry (default: 2.0)
        retryable_check: Optional custom function to check if error is retryable

    Returns:
        The result of the function call

    Raises:
        The last exception if all retries are exhausted

    Example:
        >>> inventory = retry_with_backoff(lambda: provider.fetch_inventory(["sub1"]))
    """
    if retryable_check is None:
        retryable_check = is_retryable_error

    func_name = getattr(func, '__name__', repr(func))

    for attempt in range(max_retries):
        try:
            return func()
        except Exception as e:
            if not retryable_check(e):
                logger.warning(f"Non-retryable error encountered: {type(e).__name__}: {e}")
                raise

            if attempt == max_retries - 1:
                logger.error(f"All {max_retries} retry attempts exhausted for {func_name}")
                raise

            delay = initial_delay * (backoff_factor ** attempt)
            logger.warning(
                f"Retryable error on attempt {attempt + 1}/{max_retries}: "
                f"{type(e).__name__}: {e}. Retrying in {delay}s..."
            )
            time.sleep(delay)

    raise RuntimeError(f"retry_with_backoff called with max_retries={max_retries}")
