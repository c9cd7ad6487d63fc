"""Utility helpers."""

from scribeflow.utils.cancellation import CancellationToken
from scribeflow.utils.retry import RetryPolicy, is_retryable, run_with_retry

__all__ = ["CancellationToken", "RetryPolicy", "is_retryable", "run_with_retry"]
