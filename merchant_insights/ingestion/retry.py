"""
Retry policy for bulk writes.

Each write is attempted a fixed number of times with a linearly growing pause
(`base_delay * attempt`) to ride out short connectivity blips. Only transient
errors are retried; anything else (constraint or data errors) fails at once.
After the last attempt the last error propagates unchanged.
"""

from __future__ import annotations

from typing import Awaitable, Callable, Tuple, Type, TypeVar

import psycopg
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_incrementing,
)

from merchant_insights.utils.logging import get_logger

log = get_logger(__name__)

T = TypeVar("T")

# psycopg_pool.PoolTimeout subclasses OperationalError.
TRANSIENT_ERRORS: Tuple[Type[BaseException], ...] = (
    psycopg.OperationalError,
    psycopg.InterfaceError,
    OSError,
)


def _log_retry(state: RetryCallState) -> None:
    exc = state.outcome.exception() if state.outcome else None
    log.warning(
        f"Bulk write attempt {state.attempt_number} failed, retrying",
        extra={
            "attempt": state.attempt_number,
            "sleep_seconds": state.next_action.sleep if state.next_action else None,
            "error": str(exc),
            "error_type": type(exc).__name__,
        },
    )


async def write_with_retry(
    write: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    base_delay_ms: int = 500,
    transient: Tuple[Type[BaseException], ...] = TRANSIENT_ERRORS,
) -> T:
    """
    Run `write` until it succeeds or `max_attempts` is exhausted.

    Parameters
    ----------
    write : callable
        Zero-argument coroutine factory; called once per attempt.
    max_attempts : int
        Total number of attempts, including the first.
    base_delay_ms : int
        Pause before attempt n+1 is `base_delay_ms * n`.
    transient : tuple of exception types
        Errors worth retrying.

    Raises
    ------
    Exception
        The last error raised by `write` once attempts are exhausted, or the
        first non-transient error.
    """
    base_delay = base_delay_ms / 1000.0
    retrying = AsyncRetrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_incrementing(start=base_delay, increment=base_delay),
        retry=retry_if_exception_type(transient),
        before_sleep=_log_retry,
        reraise=True,
    )
    return await retrying(write)


__all__ = ["TRANSIENT_ERRORS", "write_with_retry"]
