"""
A cooperative cancellation signal shared by every pipeline in a batch.
"""

import asyncio
import logging
from contextlib import suppress
from typing import Awaitable, Optional, TypeVar

from ytmp3_cli.exceptions import PipelineCancelledError

log = logging.getLogger(__name__)

T = TypeVar("T")


class CancelToken:
    """
    Wraps an `asyncio.Event`. Once set it stays set; every suspension point in
    the pipeline (backoff delays, external processes, HTTP reads) checks it.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "Batch cancelled.") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()
            log.debug(f"Cancel token set: {reason}")

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise PipelineCancelledError(self.reason or "Cancelled.")

    async def wait(self) -> None:
        await self._event.wait()

    async def sleep(self, delay: float) -> None:
        """Sleeps for `delay` seconds, returning early with an error on cancel."""
        self.raise_if_cancelled()
        if delay <= 0:
            return
        try:
            await asyncio.wait_for(self._event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return
        self.raise_if_cancelled()

    async def race(self, awaitable: Awaitable[T]) -> T:
        """
        Awaits `awaitable` unless the token fires first, in which case the
        pending work is cancelled and PipelineCancelledError is raised.
        """
        work = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait(
                {work, waiter}, return_when=asyncio.FIRST_COMPLETED
            )
        except asyncio.CancelledError:
            work.cancel()
            raise
        finally:
            waiter.cancel()
            with suppress(asyncio.CancelledError):
                await waiter

        if work in done:
            return work.result()

        work.cancel()
        with suppress(asyncio.CancelledError, Exception):
            await work
        raise PipelineCancelledError(self.reason or "Cancelled.")
