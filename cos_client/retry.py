"""Retry logic with exponential backoff for transient failures.

The client itself never retries. This module is for callers (such as
the command line tool) that want to retry idempotent operations like
listing, downloading or deleting. Multipart uploads must not be wrapped
in it: their cleanup is handled by the upload itself.

Transient (Retryable):
- Transport failures (connection errors, timeouts)
- Server errors (5xx)
- Rate limiting (429)

Permanent (Not Retryable):
- Client errors (4xx except 429)
- Authentication and signature failures (401, 403)
- Decode and protocol errors
"""

import logging
import time
from typing import Any, Callable, Optional, Sequence

from cos_client.errors import CosError, ResponseError, TransportError

logger = logging.getLogger(__name__)

# HTTP status codes that indicate transient server issues
RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}


class RetryExhausted(CosError):
    """Raised when all retry attempts have been exhausted."""

    def __init__(
        self,
        message: str,
        attempts: int,
        last_error: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error


def is_retryable_error(error: Exception) -> bool:
    """Determine if an error is transient and worth retrying.

    Args:
        error: The exception that was raised.

    Returns:
        True if the error is transient and should trigger a retry,
        False if the error is permanent and retrying won't help.
    """
    if isinstance(error, TransportError):
        return True

    if isinstance(error, ResponseError):
        return error.status_code in RETRYABLE_STATUS_CODES

    return False


def retry_with_backoff(
    func: Callable[..., Any],
    max_attempts: int = 3,
    delays: Sequence[float] = (1.0, 2.0, 4.0),
    args: tuple = (),
    kwargs: Optional[dict] = None,
    sleep: Optional[Callable[[float], None]] = None,
) -> Any:
    """Execute a function with retry logic and exponential backoff.

    Args:
        func: The function to execute.
        max_attempts: Maximum number of attempts (including first try).
        delays: Sequence of delay times (seconds) between retries.
                delays[0] is used after first failure, etc.
        args: Positional arguments to pass to func.
        kwargs: Keyword arguments to pass to func.
        sleep: Function used to wait between attempts (time.sleep if None).

    Returns:
        The return value of func if successful.

    Raises:
        RetryExhausted: If all attempts fail with retryable errors.
        Exception: If a non-retryable error occurs, it's raised immediately.
    """
    if kwargs is None:
        kwargs = {}

    for attempt in range(1, max_attempts + 1):
        try:
            return func(*args, **kwargs)
        except CosError as e:
            if not is_retryable_error(e):
                raise

            if attempt >= max_attempts:
                raise RetryExhausted(
                    f"Operation failed after {max_attempts} attempts: {e}",
                    attempts=max_attempts,
                    last_error=e,
                ) from e

            delay = delays[min(attempt - 1, len(delays) - 1)]
            logger.warning("Attempt %d/%d failed (%s); retrying in %.1fs", attempt, max_attempts, e, delay)
            (sleep or time.sleep)(delay)

    raise RetryExhausted(
        f"Operation failed after {max_attempts} attempts",
        attempts=max_attempts,
    )
