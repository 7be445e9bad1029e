"""Bounded retry with exponential backoff around external calls."""

from __future__ import annotations

import logging
from typing import Callable, TypeVar

from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    wait_random_exponential,
)

_LOG = logging.getLogger("retry")
T = TypeVar("T")


def _log_retry(service: str) -> Callable[[RetryCallState], None]:
    def _before_sleep(state: RetryCallState) -> None:
        exc = state.outcome.exception() if state.outcome else None
        _LOG.warning(
            "external_call_retry",
            extra={
                "service": service,
                "attempt": state.attempt_number,
                "sleep_seconds": round(state.next_action.sleep, 2) if state.next_action else None,
                "error_type": type(exc).__name__ if exc else None,
            },
        )

    return _before_sleep


def call_with_retry(
    fn: Callable[[], T],
    *,
    service: str,
    is_transient: Callable[[BaseException], bool],
    max_attempts: int,
    max_wait: float = 16.0,
    multiplier: float = 0.5,
) -> T:
    """Invoke ``fn`` until it succeeds, raises a non-transient error, or attempts run out.

    The last exception is re-raised unchanged; callers translate it into the
    pipeline's error taxonomy.
    """
    retrying = Retrying(
        stop=stop_after_attempt(max(1, max_attempts)),
        wait=wait_random_exponential(multiplier=multiplier, max=max_wait),
        retry=retry_if_exception(is_transient),
        before_sleep=_log_retry(service),
        reraise=True,
    )
    return retrying(fn)


__all__ = ["call_with_retry"]
