"""Shared retry policy for the source and target HTTP clients.

Timeouts and connection errors are retried with exponential backoff.
HTTP error statuses are not retried; they propagate to the caller.
"""

import logging

import requests
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)


def is_transient(exception: BaseException) -> bool:
    """Check if exception is a timeout or connection error that should be retried.

    Args:
        exception: Exception to check

    Returns:
        True if this is a timeout or transient connection exception
    """
    return isinstance(
        exception,
        (requests.Timeout, requests.ConnectionError),
    )


def transient_retry(max_attempts: int) -> Retrying:
    """Build a ``Retrying`` controller for one client.

    Args:
        max_attempts: Total attempts per request, including the first.

    Returns:
        Callable controller: ``retrying(func, *args, **kwargs)``.
    """
    return Retrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=1, min=1, max=30),
        retry=retry_if_exception(is_transient),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
