"""
Retry logic with exponential backoff for host reads.

Only idempotent lookups are decorated. Writes against the host are never
retried: a failed write is terminal for the submission it belongs to.
"""

import logging
from typing import Callable, Type, Tuple

from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
    before_sleep_log,
)

from ..exceptions import RateLimitError, ConnectionError

logger = logging.getLogger(__name__)


def retry_with_backoff(
    max_attempts: int = 3,
    min_wait: float = 1.0,
    max_wait: float = 60.0,
    multiplier: float = 2.0,
    exceptions: Tuple[Type[Exception], ...] = (ConnectionError, RateLimitError),
) -> Callable:
    """
    Decorator for retrying operations with exponential backoff.

    Args:
        max_attempts: Maximum number of attempts
        min_wait: Minimum wait time in seconds
        max_wait: Maximum wait time in seconds
        multiplier: Exponential backoff multiplier
        exceptions: Tuple of exception types to retry on

    Returns:
        Decorated function with retry logic

    Examples:
        >>> @retry_with_backoff(max_attempts=5, min_wait=0.5)
        ... def fetch_option_values():
        ...     pass
    """
    return retry(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=multiplier, min=min_wait, max=max_wait),
        retry=retry_if_exception_type(exceptions),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )


def retry_civicrm_operation(func: Callable) -> Callable:
    """
    Decorator for read-only CiviCRM API calls.

    Retries transport failures and rate limiting three times. Errors reported
    by the host itself (``APIError``) are not retried.

    Examples:
        >>> @retry_civicrm_operation
        ... def get_single(entity, **params):
        ...     return connector.call(entity, "getsingle", params)
    """
    return retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=2.0, min=0.5, max=10.0),
        retry=retry_if_exception_type((ConnectionError, RateLimitError)),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )(func)
