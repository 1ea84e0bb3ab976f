"""
Generic retry with exponential backoff for transient pipeline failures.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

import aiohttp

from ytmp3_cli.core.cancellation import CancelToken
from ytmp3_cli.exceptions import PipelineError

log = logging.getLogger(__name__)

T = TypeVar("T")


def is_transient(exc: BaseException) -> bool:
    """Returns True for failures worth retrying locally."""
    if isinstance(exc, PipelineError):
        return exc.retryable
    return isinstance(exc, (aiohttp.ClientError, asyncio.TimeoutError))


async def retry_async(
    operation: Callable[[int], Awaitable[T]],
    *,
    max_attempts: int,
    initial_delay: float,
    cancel: Optional[CancelToken] = None,
    should_retry: Callable[[BaseException], bool] = is_transient,
    on_retry: Optional[Callable[[int, float, BaseException], None]] = None,
    label: str = "operation",
) -> T:
    """
    Runs `operation(attempt)` up to `max_attempts` times.

    After each transient failure the wrapper waits `delay` and doubles it. The
    final failure is re-raised as-is. Non-transient failures propagate at once.
    A set cancel token skips any remaining backoff.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    delay = initial_delay
    for attempt in range(1, max_attempts + 1):
        if cancel:
            cancel.raise_if_cancelled()
        try:
            return await operation(attempt)
        except Exception as e:
            if attempt >= max_attempts or not should_retry(e):
                raise
            log.debug(
                f"{label} attempt {attempt}/{max_attempts} failed: {e}. "
                f"Retrying in {delay:.2f}s..."
            )
            if on_retry:
                on_retry(attempt, delay, e)
            if cancel:
                await cancel.sleep(delay)
            else:
                await asyncio.sleep(delay)
            delay *= 2

    raise AssertionError("unreachable")
