# Hey future me - SQLite allows exactly one writer. Five page workers committing at the
# same moment WILL see "database is locked" now and then. Those locks are temporary,
# so commits go through with_db_retry and wait a bit instead of failing the page.
"""Database retry utilities for handling SQLite lock errors."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from functools import wraps
from typing import ParamSpec, TypeVar

from sqlalchemy.exc import IntegrityError, OperationalError

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


def is_lock_error(exception: BaseException) -> bool:
    """Check if an exception is a retryable database lock error."""
    if not isinstance(exception, OperationalError):
        return False
    error_msg = str(exception).lower()
    return "locked" in error_msg or "busy" in error_msg


# Two page workers can both create the stub for an artist neither has seen yet. The
# loser hits the unique remote_id index; re-running its unit of work finds the
# winner's row instead.
def is_conflict_error(exception: BaseException) -> bool:
    """Check if an exception is a unique-constraint race between workers."""
    if not isinstance(exception, IntegrityError):
        return False
    error_msg = str(exception).lower()
    return "unique" in error_msg or "duplicate key" in error_msg


def is_retryable_error(exception: BaseException) -> bool:
    return is_lock_error(exception) or is_conflict_error(exception)


def with_db_retry(
    max_attempts: int = 3,
    initial_delay: float = 0.5,
    max_delay: float = 5.0,
    backoff_factor: float = 2.0,
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """Decorator for retrying async database operations on transient errors.

    Lock errors and unique-constraint races are retried with exponential backoff
    (0.5s, 1s, 2s ... capped at max_delay). Any other database error is raised
    immediately.

    Args:
        max_attempts: Maximum attempts including the first one
        initial_delay: Delay before the first retry in seconds
        max_delay: Upper bound for a single delay
        backoff_factor: Multiplier applied to the delay after each retry

    Returns:
        Decorated coroutine function
    """

    def decorator(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            delay = initial_delay
            for attempt in range(1, max_attempts + 1):
                try:
                    return await func(*args, **kwargs)
                except (OperationalError, IntegrityError) as e:
                    if not is_retryable_error(e) or attempt == max_attempts:
                        if is_retryable_error(e):
                            logger.error(
                                "Database still locked or conflicting after %d attempts, giving up: %s",
                                max_attempts,
                                func.__qualname__,
                            )
                        raise
                    logger.warning(
                        "Database %s (attempt %d/%d), retrying in %.1fs: %s",
                        "locked" if is_lock_error(e) else "write conflict",
                        attempt,
                        max_attempts,
                        delay,
                        func.__qualname__,
                    )
                    await asyncio.sleep(delay)
                    delay = min(delay * backoff_factor, max_delay)
            raise RuntimeError("Unexpected state in retry decorator")

        return wrapper

    return decorator
