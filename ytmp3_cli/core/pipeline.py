"""
The per-track state machine and the two public entry points of the library:
`acquire_and_transcode` for one track and `run_batch` for many.
"""

import logging
import time
from pathlib import Path
from typing import Callable, Iterable, List, Optional

from ytmp3_cli.acquisition.chain import AcquisitionChain, last_error_kind
from ytmp3_cli.exceptions import InvalidQualityError, PipelineError
from ytmp3_cli.media.downloader import Downloader, close_connection_pool
from ytmp3_cli.media.tagger import Tagger
from ytmp3_cli.media.transcoder import Transcoder
from ytmp3_cli.models.config import PipelineConfig
from ytmp3_cli.models.quality import DEFAULT_LADDER, QualityLadder
from ytmp3_cli.models.stats import BatchReport
from ytmp3_cli.models.track import (
    AttemptRecord,
    Delegated,
    Failure,
    PipelineOutcome,
    PipelineState,
    RedirectTarget,
    Success,
    TrackRequest,
)
from ytmp3_cli.storage.scratch import ScratchDirectory, default_scratch
from ytmp3_cli.utils.formatting import suggested_filename
from ytmp3_cli.utils.structured_logger import PipelineEventLogger

from .batch import BatchController, BatchEventCallback
from .cancellation import CancelToken

log = logging.getLogger(__name__)

TransitionCallback = Callable[[TrackRequest, PipelineState], None]


class PipelineOrchestrator:
    """
    Drives one track through PENDING -> RESOLVING -> (REDIRECTING | TRANSCODING)
    -> (COMPLETE | FAILED).

    Pipeline errors never escape `acquire_and_transcode`; they become Failure
    outcomes carrying the attempt log. Scratch-directory initialization errors
    do propagate. Encoded MP3s pick up album and cover-art frames when the
    request carries them.
    """

    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        scratch: Optional[ScratchDirectory] = None,
        chain: Optional[AcquisitionChain] = None,
        transcoder: Optional[Transcoder] = None,
        tagger: Optional[Tagger] = None,
        event_logger: Optional[PipelineEventLogger] = None,
        on_transition: Optional[TransitionCallback] = None,
        ladder: QualityLadder = DEFAULT_LADDER,
    ):
        self.config = config or PipelineConfig()
        if scratch is None:
            scratch = (
                ScratchDirectory(Path(self.config.scratch_dir))
                if self.config.scratch_dir
                else default_scratch()
            )
        self.scratch = scratch
        self.ladder = ladder
        downloader = Downloader(
            timeout=self.config.http_timeout, max_workers=self.config.max_workers
        )
        self.chain = chain or AcquisitionChain.from_config(
            self.config, scratch=self.scratch, downloader=downloader, ladder=ladder
        )
        self.transcoder = transcoder or Transcoder.from_config(
            self.config, scratch=self.scratch
        )
        self.tagger = tagger or Tagger.from_config(
            self.config, downloader, scratch=self.scratch
        )
        self.event_logger = event_logger
        self.on_transition = on_transition
        if self.chain.on_attempt is None:
            self.chain.on_attempt = self._on_attempt

    @classmethod
    def from_config(
        cls,
        config: PipelineConfig,
        event_logger: Optional[PipelineEventLogger] = None,
        on_transition: Optional[TransitionCallback] = None,
    ) -> "PipelineOrchestrator":
        return cls(config, event_logger=event_logger, on_transition=on_transition)

    def _on_attempt(self, request: TrackRequest, record: AttemptRecord) -> None:
        if not record.succeeded and self.event_logger:
            self.event_logger.attempt_failed(request, record)

    def _transition(self, request: TrackRequest, state: PipelineState) -> None:
        log.debug(f"{request.external_id}: {state.value}")
        if self.on_transition:
            self.on_transition(request, state)

    def _quality_for(self, request: TrackRequest) -> int:
        try:
            return self.ladder.tier(request.quality_hint or self.config.quality).ordinal
        except InvalidQualityError as e:
            raise PipelineError(str(e)) from e

    async def acquire_and_transcode(
        self, request: TrackRequest, cancel: Optional[CancelToken] = None
    ) -> PipelineOutcome:
        """Runs the full pipeline for one track and returns its outcome."""
        self.scratch.ensure()
        attempt_log: List[AttemptRecord] = []
        started = time.monotonic()

        self._transition(request, PipelineState.PENDING)
        try:
            quality = self._quality_for(request)
            if self.event_logger:
                self.event_logger.track_started(request, quality)

            self._transition(request, PipelineState.RESOLVING)
            acquired = await self.chain.resolve(
                request, quality=quality, cancel=cancel, attempt_log=attempt_log
            )

            if isinstance(acquired, RedirectTarget):
                self._transition(request, PipelineState.REDIRECTING)
                delegated = Delegated(
                    request=request, target=acquired, attempt_log=attempt_log
                )
                self._transition(request, PipelineState.COMPLETE)
                if self.event_logger:
                    self.event_logger.track_delegated(delegated)
                return delegated

            self._transition(request, PipelineState.TRANSCODING)
            result = await self.transcoder.transcode(acquired, request, cancel)
            result = await self.tagger.tag(result, request, cancel)
        except PipelineError as e:
            failure = Failure(
                request=request,
                kind=e.kind,
                detail=e.detail,
                attempt_log=attempt_log,
                last_error_kind=last_error_kind(e),
            )
            self._transition(request, PipelineState.FAILED)
            if self.event_logger:
                self.event_logger.track_failed(failure)
            return failure

        success = Success(
            request=request,
            result=result,
            strategy=acquired.source_strategy,
            tier=acquired.tier,
            filename=suggested_filename(request.title, request.artist),
            attempt_log=attempt_log,
        )
        self._transition(request, PipelineState.COMPLETE)
        if self.event_logger:
            self.event_logger.track_completed(success, time.monotonic() - started)
        return success

    def create_batch(
        self,
        concurrency: Optional[int] = None,
        on_event: Optional[BatchEventCallback] = None,
        cancel: Optional[CancelToken] = None,
    ) -> BatchController:
        """Returns a fresh controller so callers can cancel the batch."""
        return BatchController(
            self.acquire_and_transcode,
            concurrency=concurrency or self.config.max_workers,
            on_event=on_event,
            cancel_token=cancel,
        )

    async def run_batch(
        self,
        requests: Iterable[TrackRequest],
        concurrency: Optional[int] = None,
        cancel: Optional[CancelToken] = None,
        on_event: Optional[BatchEventCallback] = None,
        controller: Optional[BatchController] = None,
    ) -> BatchReport:
        """
        Runs many tracks under one concurrency bound.

        Raises ScratchDirectoryError before any track starts when the scratch
        root cannot be created.
        """
        self.scratch.ensure()
        requests = list(requests)
        controller = controller or self.create_batch(concurrency, on_event, cancel)
        if self.event_logger:
            self.event_logger.batch_started(
                total=len(set(requests)),
                concurrency=controller.concurrency,
                duplicates_removed=len(requests) - len(set(requests)),
            )

        report = await controller.run(requests)

        if self.event_logger:
            self.event_logger.batch_completed(
                status=report.status.value,
                succeeded=len(report.succeeded),
                delegated=len(report.delegated),
                failed=len(report.failed) - len(report.cancelled),
                cancelled=len(report.cancelled),
                peak_in_flight=report.peak_in_flight,
                duration_s=report.duration_s,
            )
        return report

    async def aclose(self) -> None:
        """Releases leftover scratch files and the shared HTTP pool."""
        leftover = self.scratch.release_all()
        if leftover:
            log.warning(f"[yellow]Released {leftover} leftover scratch files.[/yellow]")
        await close_connection_pool()
