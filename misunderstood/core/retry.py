"""Bounded exponential backoff for callers of the triage operations.

The triage operations are single-shot; pipelines and pollers that want to
survive transient store failures wrap them with :func:`call_with_backoff`.
Only the exception types listed in ``retry_on`` are retried, so failures such
as an expired authorization surface immediately instead of being retried
forever.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, TypeVar

from sqlalchemy.exc import OperationalError
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


def backoff_wait(polling_interval: float, max_backoff_factor: int) -> wait_exponential:
    """Waits double from ``polling_interval`` up to ``max_backoff_factor`` intervals."""

    return wait_exponential(
        multiplier=polling_interval,
        min=0,
        max=polling_interval * max_backoff_factor,
    )


def call_with_backoff(
    operation: Callable[[], T],
    *,
    polling_interval: float,
    max_backoff_factor: int = 6,
    max_attempts: int = 5,
    retry_on: tuple[type[BaseException], ...] = (OperationalError,),
    sleep: Callable[[float], None] | None = None,
) -> T:
    """Run ``operation`` and retry it on transient failures.

    Raises the last transient error once ``max_attempts`` calls have failed.
    """

    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    retrying = Retrying(
        reraise=True,
        stop=stop_after_attempt(max_attempts),
        wait=backoff_wait(polling_interval, max_backoff_factor),
        retry=retry_if_exception_type(retry_on),
        before_sleep=before_sleep_log(logger, logging.INFO),
        sleep=sleep or (lambda seconds: time.sleep(seconds)),
    )
    return retrying(operation)


__all__ = ["backoff_wait", "call_with_backoff"]
