"""
Small shared helpers for ctxvault.
"""

import functools
import logging
import time
from typing import Callable, TypeVar

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable)


def retry_on_failure(
    max_attempts: int = 3,
    delay: float = 0.5,
    backoff: float = 2.0,
    exceptions: tuple[type[BaseException], ...] = (Exception,),
) -> Callable[[F], F]:
    """
    Retry a synchronous callable when it raises one of ``exceptions``.

    Args:
        max_attempts: Total number of attempts (including the first one)
        delay: Seconds to wait before the first retry
        backoff: Multiplier applied to the delay after every failed attempt
        exceptions: Exception types that trigger a retry

    Returns:
        Decorator wrapping the function; the last exception is re-raised
        once all attempts are exhausted
    """
    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            wait = delay
            for attempt in range(1, max_attempts + 1):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if attempt == max_attempts:
                        raise
                    logger.warning(
                        f"{func.__name__} failed (attempt {attempt}/{max_attempts}): {e}. "
                        f"Retrying in {wait:.1f}s"
                    )
                    time.sleep(wait)
                    wait *= backoff
        return wrapper  # type: ignore[return-value]
    return decorator


def sql_quote(value: str) -> str:
    """Quote a string literal for a LanceDB where clause."""
    return "'" + value.replace("'", "''") + "'"
