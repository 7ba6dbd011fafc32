"""
Retry decorator with exponential backoff for upstream reads

Spreadsheet API calls and database reads fail transiently (rate limits,
dropped connections, 5xx responses). Reads are safe to repeat; writes are
not retried here because a pass re-diffs from scratch on the next tick.

Usage:
    from utils.retry import retry_upstream_read

    @retry_upstream_read(max_retries=3)
    def fetch_grid(service, spreadsheet_id, sheet_range):
        return service.spreadsheets().values().get(...).execute()
"""

import logging
import random
import time
from collections.abc import Callable
from functools import wraps
from typing import Any

logger = logging.getLogger(__name__)

RETRYABLE_HTTP_STATUSES = frozenset({408, 429, 500, 502, 503, 504})

_RETRYABLE_MESSAGE_PATTERNS = (
    "connection refused",
    "connection reset",
    "connection closed",
    "server closed the connection",
    "could not connect",
    "timed out",
    "timeout",
    "broken pipe",
    "rate limit",
    "quota exceeded",
)

_RETRYABLE_TYPE_NAMES = {
    "connectionerror",
    "timeouterror",
    "operationalerror",
    "interfaceerror",
    "poolexhaustederror",
}


def _http_status(exception: Exception) -> int | None:
    """Status code of a googleapiclient HttpError, if the exception carries one."""
    status = getattr(exception, "status_code", None)
    if status is None:
        resp = getattr(exception, "resp", None)
        status = getattr(resp, "status", None)
    try:
        return int(status) if status is not None else None
    except (TypeError, ValueError):
        return None


def is_retryable_upstream_error(exception: Exception) -> bool:
    """
    Decide whether an upstream failure is worth retrying

    HTTP errors are judged by status code only (429 and 5xx are retryable,
    4xx are not). Everything else is judged by exception type name and
    message, which covers psycopg2 and socket-level failures without
    importing either.

    Args:
        exception: The exception raised by the upstream call

    Returns:
        True if the call may succeed when repeated
    """
    status = _http_status(exception)
    if status is not None:
        return status in RETRYABLE_HTTP_STATUSES

    if isinstance(exception, (ConnectionError, TimeoutError)):
        return True

    if type(exception).__name__.lower() in _RETRYABLE_TYPE_NAMES:
        return True

    message = str(exception).lower()
    return any(pattern in message for pattern in _RETRYABLE_MESSAGE_PATTERNS)


def retry_with_backoff(
    max_retries: int = 3,
    base_delay: float = 0.5,
    max_delay: float = 30.0,
    exponential_base: float = 2.0,
    jitter: bool = True,
    should_retry: Callable[[Exception], bool] | None = None,
    on_retry: Callable[[int, Exception, float], None] | None = None,
):
    """
    Decorator that retries a function with exponential backoff

    Args:
        max_retries: Retry attempts after the first call (default: 3)
        base_delay: Delay before the first retry in seconds (default: 0.5)
        max_delay: Upper bound for any single delay in seconds (default: 30.0)
        exponential_base: Growth factor between delays (default: 2.0)
        jitter: Spread delays by +/-25% to avoid synchronized retries
        should_retry: Predicate deciding whether an exception is retryable
            (default: every exception is)
        on_retry: Callback(attempt, exception, delay) invoked before sleeping

    Returns:
        Decorated function
    """
    def decorator(func: Callable) -> Callable:
        func_name = getattr(func, "__name__", "function")

        @wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            for attempt in range(max_retries + 1):
                try:
                    return func(*args, **kwargs)
                except Exception as e:
                    if should_retry is not None and not should_retry(e):
                        logger.debug(
                            f"Not retrying {func_name}: {type(e).__name__}: {e}"
                        )
                        raise

                    if attempt == max_retries:
                        logger.error(
                            f"Giving up on {func_name} after {max_retries} retries: "
                            f"{type(e).__name__}: {e}"
                        )
                        raise

                    delay = min(base_delay * (exponential_base ** attempt), max_delay)
                    if jitter:
                        spread = delay * 0.25
                        delay = max(0.05, delay + random.uniform(-spread, spread))

                    logger.warning(
                        f"{func_name} failed (attempt {attempt + 1}/{max_retries + 1}): "
                        f"{type(e).__name__}: {e}. Retrying in {delay:.2f}s"
                    )

                    if on_retry:
                        try:
                            on_retry(attempt + 1, e, delay)
                        except Exception as callback_error:
                            logger.error(f"Retry callback failed: {callback_error}")

                    time.sleep(delay)

            raise RuntimeError(f"Retry loop for {func_name} exited without a result")

        return wrapper
    return decorator


def retry_upstream_read(
    max_retries: int = 3,
    base_delay: float = 0.5,
    on_retry: Callable[[int, Exception, float], None] | None = None,
):
    """
    Convenience decorator for idempotent reads against Sheets or PostgreSQL

    Only transient failures (see is_retryable_upstream_error) are retried;
    permission errors, bad ranges and SQL errors fail immediately.
    """
    return retry_with_backoff(
        max_retries=max_retries,
        base_delay=base_delay,
        should_retry=is_retryable_upstream_error,
        on_retry=on_retry,
    )
