"""Utility modules for governance assessments."""

from .error_handling import RetryableError, is_retryable_error, retry_with_backoff
from .cancellation import CancellationToken, WorkerSlots

__all__ = ["RetryableError", "is_retryable_error", "retry_with_backoff", "CancellationToken", "WorkerSlots"]
