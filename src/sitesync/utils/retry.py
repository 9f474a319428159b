"""
Bounded retry with exponential backoff.

Used where a result may take a moment to settle, such as re-reading
protected settings after a database restore.
"""

import logging
import random
import time
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional


logger = logging.getLogger(__name__)


@dataclass
class RetryConfig:
    """
    Configuration for retry behavior.

    Attributes:
        max_attempts: Maximum number of attempts (including first try)
        initial_delay_ms: Initial delay in milliseconds
        max_delay_ms: Maximum delay in milliseconds
        backoff_multiplier: Multiplier for exponential backoff
        jitter: Whether to add random jitter to delay
    """
    max_attempts: int = 3
    initial_delay_ms: float = 250.0
    max_delay_ms: float = 2000.0
    backoff_multiplier: float = 2.0
    jitter: bool = True


@dataclass
class RetryResult:
    """
    Result of a retry operation.

    Attributes:
        success: Whether the operation succeeded
        result: The result value if successful
        attempts: Number of attempts made
        error: The final error if failed
        error_history: Messages of each failed attempt
    """
    success: bool
    result: Any = None
    attempts: int = 0
    error: Optional[Exception] = None
    error_history: List[str] = field(default_factory=list)


def calculate_delay(attempt: int, config: RetryConfig) -> float:
    """
    Calculate delay for a given attempt with exponential backoff.

    Args:
        attempt: Attempt number (0-based)
        config: Retry configuration

    Returns:
        Delay in seconds
    """
    delay_ms = min(
        config.initial_delay_ms * (config.backoff_multiplier ** attempt),
        config.max_delay_ms
    )

    # ±25% random variation
    if config.jitter:
        delay_ms *= 0.75 + (random.random() * 0.5)

    return delay_ms / 1000.0


def retry_with_backoff(
    operation: Callable[[], Any],
    config: RetryConfig,
    retry_on: tuple = (Exception,),
    operation_name: str = "operation",
    sleep: Callable[[float], None] = time.sleep,
) -> RetryResult:
    """
    Execute an operation with retry and exponential backoff.

    Args:
        operation: Callable to execute (should take no arguments)
        config: Retry configuration
        retry_on: Tuple of exception types to retry on
        operation_name: Name for logging
        sleep: Delay function (injectable for tests)

    Returns:
        RetryResult with success/failure info

    Example:
        >>> config = RetryConfig(max_attempts=3)
        >>> result = retry_with_backoff(lambda: verify_settings(), config)
        >>> if not result.success:
        ...     print(result.error_history)
    """
    error_history = []

    for attempt in range(config.max_attempts):
        try:
            logger.debug(f"{operation_name}: attempt {attempt + 1}/{config.max_attempts}")
            result = operation()

            if attempt > 0:
                logger.info(f"{operation_name} succeeded after {attempt + 1} attempts")

            return RetryResult(
                success=True,
                result=result,
                attempts=attempt + 1,
                error_history=error_history,
            )

        except retry_on as e:
            error_history.append(str(e))
            logger.warning(
                f"{operation_name} failed on attempt {attempt + 1}/{config.max_attempts}: {e}"
            )

            if attempt < config.max_attempts - 1:
                delay = calculate_delay(attempt, config)
                logger.debug(f"Backing off for {delay:.3f}s before retry")
                sleep(delay)

        except Exception as e:
            logger.error(f"{operation_name} failed with non-retryable error: {e}")
            error_history.append(str(e))
            return RetryResult(
                success=False,
                attempts=attempt + 1,
                error=e,
                error_history=error_history,
            )

    logger.error(f"{operation_name} exhausted all {config.max_attempts} attempts")
    return RetryResult(
        success=False,
        attempts=config.max_attempts,
        error=Exception(f"Failed after {config.max_attempts} attempts"),
        error_history=error_history,
    )
