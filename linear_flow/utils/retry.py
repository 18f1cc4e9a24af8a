"""Retry utilities for handling transient failures.

Provides a decorator for retrying async operations with exponential
backoff. The code-host client uses it on read-only calls, so one flaky
response during a long CI wait does not abort a ship.

Example:
    >>> @async_retry(max_attempts=3, backoff_factor=2.0, exceptions=(ExternalServiceError,))
    ... async def fetch_checks(number: int) -> CheckRunSummary:
    ...     ...

Backoff Formula:
    delay = backoff_factor ** attempt_number
    For backoff_factor=2.0: 2s, 4s, 8s, ...
"""

import asyncio
import functools
from collections.abc import Callable
from typing import Any, TypeVar

import structlog

log = structlog.get_logger(__name__)

T = TypeVar("T")


def async_retry(
    max_attempts: int = 3,
    backoff_factor: float = 2.0,
    exceptions: tuple[type[Exception], ...] = (Exception,),
    should_retry: Callable[[Exception], bool] | None = None,
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Decorator for async functions with exponential backoff retry logic.

    Args:
        max_attempts: Maximum number of calls before giving up.
        backoff_factor: Base of the exponential delay between attempts.
        exceptions: Exception types that trigger a retry. Others propagate
            immediately.
        should_retry: Optional predicate to narrow retries further (e.g.
            only 5xx responses). Returning False re-raises at once.

    Returns:
        A decorator that wraps async functions with retry logic.

    Raises:
        The last caught exception once all attempts are exhausted.
    """

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            for attempt in range(1, max_attempts + 1):
                try:
                    return await func(*args, **kwargs)
                except exceptions as e:
                    if should_retry is not None and not should_retry(e):
                        raise
                    if attempt == max_attempts:
                        log.error(
                            "retry_exhausted",
                            function=func.__name__,
                            attempts=attempt,
                            error=str(e),
                        )
                        raise

                    delay = backoff_factor**attempt
                    log.warning(
                        "retry_attempt",
                        function=func.__name__,
                        attempt=attempt,
                        max_attempts=max_attempts,
                        delay=delay,
                        error=str(e),
                    )
                    await asyncio.sleep(delay)

            raise RuntimeError("Retry logic error")

        return wrapper

    return decorator
