"""
Bounded-concurrency execution of many track pipelines as one batch.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Iterable, List, Optional

from ytmp3_cli.exceptions import ErrorKind, PipelineCancelledError
from ytmp3_cli.models.stats import BatchReport, BatchState, BatchStatus
from ytmp3_cli.models.track import Failure, PipelineOutcome, TrackRequest

from .cancellation import CancelToken

log = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 3

TrackRunner = Callable[[TrackRequest, CancelToken], Awaitable[PipelineOutcome]]
# (event, request, outcome) where event is "admitted" or "finished"
BatchEventCallback = Callable[[str, TrackRequest, Optional[PipelineOutcome]], None]


class BatchController:
    """
    Admits tracks up to a fixed bound and aggregates their outcomes.

    A controller runs exactly once: IDLE -> RUNNING -> COMPLETED | CANCELLED.
    One track's failure never fails the batch.
    """

    def __init__(
        self,
        run_track: TrackRunner,
        concurrency: int = DEFAULT_CONCURRENCY,
        on_event: Optional[BatchEventCallback] = None,
        cancel_token: Optional[CancelToken] = None,
    ):
        if concurrency < 1:
            raise ValueError("Concurrency bound must be at least 1.")
        self.run_track = run_track
        self.concurrency = concurrency
        self.on_event = on_event
        self.cancel_token = cancel_token or CancelToken()
        self.status = BatchStatus.IDLE
        self.state = BatchState()
        self.duplicates_removed = 0

    @property
    def cancelled(self) -> bool:
        return self.cancel_token.cancelled

    def cancel(self, reason: str = "Batch cancelled.") -> None:
        """Stops admission and signals every in-flight pipeline to stop."""
        if self.status in (BatchStatus.COMPLETED, BatchStatus.CANCELLED):
            return
        log.info(f"[yellow]Cancelling batch: {reason}[/yellow]")
        self.cancel_token.cancel(reason)

    def _emit(
        self, event: str, request: TrackRequest, outcome: Optional[PipelineOutcome] = None
    ) -> None:
        if self.on_event:
            self.on_event(event, request, outcome)

    def _cancelled_outcome(self, request: TrackRequest, detail: str) -> Failure:
        return Failure(
            request=request,
            kind=ErrorKind.CANCELLED,
            detail=detail,
            last_error_kind=ErrorKind.CANCELLED,
        )

    async def _run_one(self, request: TrackRequest) -> None:
        async with self._semaphore:
            if self.cancel_token.cancelled:
                outcome: PipelineOutcome = self._cancelled_outcome(
                    request, "Batch was cancelled before this track started."
                )
                self.state.finish(request, outcome)
                self._emit("finished", request, outcome)
                return

            self.state.admit(request)
            self._emit("admitted", request)
            try:
                outcome = await self.run_track(request, self.cancel_token)
            except PipelineCancelledError as e:
                outcome = self._cancelled_outcome(request, str(e))
            except Exception as e:
                log.error(
                    f"[red]Unexpected error processing {request.external_id}: "
                    f"{type(e).__name__}: {e}[/red]",
                    exc_info=log.isEnabledFor(logging.DEBUG),
                )
                outcome = Failure(
                    request=request,
                    kind=ErrorKind.INTERNAL_ERROR,
                    detail=f"{type(e).__name__}: {e}",
                    last_error_kind=ErrorKind.INTERNAL_ERROR,
                )
            self.state.finish(request, outcome)
            self._emit("finished", request, outcome)

    async def run(self, requests: Iterable[TrackRequest]) -> BatchReport:
        """Runs every request and returns the aggregated report."""
        if self.status != BatchStatus.IDLE:
            raise RuntimeError("A batch controller can only be run once.")

        requested: List[TrackRequest] = list(requests)
        unique = list(dict.fromkeys(requested))
        self.duplicates_removed = len(requested) - len(unique)
        if self.duplicates_removed:
            log.info(f"Removed {self.duplicates_removed} duplicate track requests.")

        self.state.total = len(unique)
        self.status = BatchStatus.RUNNING
        self._semaphore = asyncio.Semaphore(self.concurrency)
        started = time.monotonic()

        try:
            await asyncio.gather(*(self._run_one(r) for r in unique))
        except asyncio.CancelledError:
            self.cancel_token.cancel("Batch task was cancelled.")
            self.status = BatchStatus.CANCELLED
            raise

        self.status = (
            BatchStatus.CANCELLED if self.cancel_token.cancelled else BatchStatus.COMPLETED
        )
        return BatchReport(
            status=self.status,
            entries=[(r, self.state.per_track_outcome[r]) for r in unique],
            peak_in_flight=self.state.peak_in_flight,
            duration_s=time.monotonic() - started,
            duplicates_removed=self.duplicates_removed,
        )
