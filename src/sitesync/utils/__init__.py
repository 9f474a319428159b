"""
Shared utilities.
"""

from .retry import RetryConfig, RetryResult, retry_with_backoff, calculate_delay

__all__ = ["RetryConfig", "RetryResult", "retry_with_backoff", "calculate_delay"]
