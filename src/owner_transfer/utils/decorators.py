"""Timing and retry decorators used by the driver and the Drive adapter."""
import functools
import logging
import time
from typing import Any, Callable, Optional, Tuple, Type, TypeVar, cast

logger = logging.getLogger(__name__)

F = TypeVar('F', bound=Callable[..., Any])


def log_execution_time(func: F) -> F:
    """Log how long each call of ``func`` took, under its qualified name.

    Failures are logged with their duration and re-raised unchanged.
    """
    name = func.__qualname__

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        started = time.monotonic()
        try:
            result = func(*args, **kwargs)
        except Exception as e:
            logger.error(f"{name} failed after {time.monotonic() - started:.2f}s: {e}")
            raise
        logger.info(f"{name} completed in {time.monotonic() - started:.2f}s")
        return result
    return cast(F, wrapper)


def retry(max_attempts: int = 3, delay: float = 1.0, backoff: float = 2.0,
          exceptions: Tuple[Type[BaseException], ...] = (Exception,),
          max_delay: float = 30.0, logger_name: Optional[str] = None):
    """Retry a call with exponential backoff.

    Args:
        max_attempts: Total attempts, the first call included
        delay: Wait before the second attempt, in seconds
        backoff: Multiplier applied to the wait after every failure
        exceptions: Exception types that trigger another attempt; anything
            else propagates from the first failure
        max_delay: Upper bound for a single wait
        logger_name: Logger for retry messages (defaults to this module's)

    Returns:
        Decorator function
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")
    retry_logger = logging.getLogger(logger_name) if logger_name else logger

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            wait = delay
            for attempt in range(1, max_attempts + 1):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if attempt == max_attempts:
                        retry_logger.error(
                            f"Giving up on {func.__name__} after {max_attempts} attempts: {e}"
                        )
                        raise
                    retry_logger.warning(
                        f"{func.__name__} attempt {attempt}/{max_attempts} failed: {e}; "
                        f"retrying in {wait:.1f}s"
                    )
                    time.sleep(wait)
                    wait = min(wait * backoff, max_delay)

        return cast(F, wrapper)

    return decorator
