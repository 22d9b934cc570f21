"""Retry policy for reads from the warehouse.

Reads against a busy SQL Server occasionally fail on network blips or
deadlock victims. ``with_retry`` re-issues such a read with backoff, via
tenacity, before the failure reaches the caller.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional, Tuple, Type, TypeVar

import tenacity
from tenacity.wait import wait_base

__all__ = ["with_retry"]

F = TypeVar("F", bound=Callable[..., Any])


def _wait_strategy(backoff_seconds: float, exponential: bool, jitter: bool) -> wait_base:
    wait: wait_base
    if exponential:
        # backoff, 2 x backoff, 4 x backoff, ...
        wait = tenacity.wait_exponential(multiplier=backoff_seconds, min=backoff_seconds)
    else:
        wait = tenacity.wait_fixed(backoff_seconds)
    if jitter:
        wait = wait + tenacity.wait_random(0, backoff_seconds / 2)
    return wait


def with_retry(
    max_attempts: int = 3,
    backoff_seconds: float = 1.0,
    exponential: bool = True,
    jitter: bool = True,
    retry_exceptions: Optional[Tuple[Type[Exception], ...]] = None,
) -> Callable[[F], F]:
    """Decorate a read so transient failures are retried.

    Args:
        max_attempts: Total attempts, the first included
        backoff_seconds: Delay before the first retry
        exponential: Double the delay after each failure
        jitter: Add up to half of ``backoff_seconds`` at random
        retry_exceptions: Exception types worth retrying (default: any)

    Once attempts run out the last exception propagates unchanged.

    Example:
        @with_retry(max_attempts=5, backoff_seconds=2.0)
        def fetch(con, name):
            return con.table(name).execute()
    """
    retry_on = tuple(retry_exceptions or (Exception,))
    wait = _wait_strategy(backoff_seconds, exponential, jitter)

    def decorator(fn: F) -> F:
        log = logging.getLogger(fn.__module__)

        def announce(state: tenacity.RetryCallState) -> None:
            error = state.outcome.exception() if state.outcome else None
            delay = state.next_action.sleep if state.next_action else 0.0
            log.warning(
                "%s failed on attempt %d of %d (%s); retrying in %.1fs",
                fn.__name__,
                state.attempt_number,
                max_attempts,
                error,
                delay,
            )

        retrying = tenacity.retry(
            stop=tenacity.stop_after_attempt(max_attempts),
            wait=wait,
            retry=tenacity.retry_if_exception_type(retry_on),
            before_sleep=announce,
            reraise=True,
        )
        return retrying(fn)  # type: ignore[return-value]

    return decorator
