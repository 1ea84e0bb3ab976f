"""
The acquisition dispatcher: walks the configured strategies in priority order
and returns the first result, recording every attempt along the way.
"""

import asyncio
import logging
import time
from typing import Callable, Dict, List, Optional, Sequence, Type

import aiohttp

from ytmp3_cli.core.cancellation import CancelToken
from ytmp3_cli.exceptions import (
    ErrorKind,
    NetworkFailureError,
    NoAvailableSourceError,
    PipelineCancelledError,
    PipelineError,
    QualityUnavailableError,
)
from ytmp3_cli.media.downloader import Downloader
from ytmp3_cli.models.config import PipelineConfig
from ytmp3_cli.models.quality import DEFAULT_LADDER, QualityLadder, QualityTier
from ytmp3_cli.models.track import AttemptRecord, StrategyKind, TrackRequest
from ytmp3_cli.storage.scratch import ScratchDirectory, default_scratch
from ytmp3_cli.utils.retry import retry_async

from .base import AcquisitionStrategy, StrategyResult
from .binary import ExternalBinaryStrategy
from .library import LibraryExtractionStrategy
from .redirect import HostedConverterStrategy

log = logging.getLogger(__name__)

STRATEGY_REGISTRY: Dict[StrategyKind, Type[AcquisitionStrategy]] = {
    StrategyKind.LIBRARY: LibraryExtractionStrategy,
    StrategyKind.BINARY: ExternalBinaryStrategy,
    StrategyKind.REDIRECT: HostedConverterStrategy,
}

AttemptCallback = Callable[[TrackRequest, AttemptRecord], None]


class AcquisitionChain:
    """
    Tries each strategy in order until one yields bytes or a redirect.

    Within a strategy, each tier is wrapped in the retry policy. The chain drops
    to the lowest tier only when a strategy reports QualityUnavailableError; any
    other exhausted failure moves on to the next strategy, which is never
    revisited.
    """

    def __init__(
        self,
        strategies: Sequence[AcquisitionStrategy],
        ladder: QualityLadder = DEFAULT_LADDER,
        attempts: int = 3,
        delay: float = 0.5,
        on_attempt: Optional[AttemptCallback] = None,
    ):
        if not strategies:
            raise ValueError("An acquisition chain needs at least one strategy.")
        self.strategies = list(strategies)
        self.ladder = ladder
        self.attempts = attempts
        self.delay = delay
        self.on_attempt = on_attempt

    @classmethod
    def from_config(
        cls,
        config: PipelineConfig,
        scratch: Optional[ScratchDirectory] = None,
        downloader: Optional[Downloader] = None,
        ladder: QualityLadder = DEFAULT_LADDER,
    ) -> "AcquisitionChain":
        scratch = scratch or default_scratch()
        downloader = downloader or Downloader(
            timeout=config.http_timeout, max_workers=config.max_workers
        )
        strategies = [
            STRATEGY_REGISTRY[kind].from_config(
                config, scratch=scratch, downloader=downloader
            )
            for kind in config.strategy_kinds
        ]
        return cls(
            strategies,
            ladder=ladder,
            attempts=config.strategy_attempts,
            delay=config.strategy_delay,
        )

    @property
    def order(self) -> List[StrategyKind]:
        return [s.kind for s in self.strategies]

    def _record(
        self, request: TrackRequest, attempt_log: List[AttemptRecord], record: AttemptRecord
    ) -> None:
        attempt_log.append(record)
        if self.on_attempt:
            self.on_attempt(request, record)

    async def _attempt(
        self,
        strategy: AcquisitionStrategy,
        request: TrackRequest,
        tier: QualityTier,
        attempt: int,
        cancel: Optional[CancelToken],
        attempt_log: List[AttemptRecord],
    ) -> StrategyResult:
        started = time.monotonic()
        try:
            try:
                result = await strategy.acquire(request, tier, cancel)
            except PipelineError:
                raise
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                raise NetworkFailureError(
                    f"{strategy.name} hit a network error: {e or type(e).__name__}"
                ) from e
            except Exception as e:
                log.debug(f"{strategy.name} raised unexpectedly", exc_info=True)
                raise PipelineError(
                    f"{strategy.name} raised {type(e).__name__}",
                    detail=f"{type(e).__name__}: {e}",
                    retryable=False,
                ) from e
        except PipelineCancelledError:
            raise
        except PipelineError as e:
            self._record(
                request,
                attempt_log,
                AttemptRecord(
                    strategy=strategy.kind,
                    tier=tier.ordinal,
                    attempt=attempt,
                    succeeded=False,
                    error_kind=e.kind,
                    detail=e.detail,
                    elapsed_s=time.monotonic() - started,
                ),
            )
            raise

        self._record(
            request,
            attempt_log,
            AttemptRecord(
                strategy=strategy.kind,
                tier=tier.ordinal,
                attempt=attempt,
                succeeded=True,
                elapsed_s=time.monotonic() - started,
            ),
        )
        return result

    async def resolve(
        self,
        request: TrackRequest,
        quality: Optional[int] = None,
        cancel: Optional[CancelToken] = None,
        attempt_log: Optional[List[AttemptRecord]] = None,
    ) -> StrategyResult:
        """
        Returns the first AcquisitionResult or RedirectTarget any strategy yields.

        Raises NoAvailableSourceError (carrying the last underlying error) when
        every strategy is exhausted, and PipelineCancelledError on cancel.
        """
        if attempt_log is None:
            attempt_log = []
        requested = quality or request.quality_hint or self.ladder.highest.ordinal
        tiers = self.ladder.attempt_tiers(requested)
        last_error: Optional[PipelineError] = None

        for strategy in self.strategies:
            for tier in tiers:
                if cancel:
                    cancel.raise_if_cancelled()

                async def operation(attempt: int, strategy=strategy, tier=tier):
                    return await self._attempt(
                        strategy, request, tier, attempt, cancel, attempt_log
                    )

                try:
                    return await retry_async(
                        operation,
                        max_attempts=self.attempts,
                        initial_delay=self.delay,
                        cancel=cancel,
                        label=f"{strategy.name}[{request.external_id}]",
                    )
                except PipelineCancelledError:
                    raise
                except QualityUnavailableError as e:
                    last_error = e
                    log.debug(
                        f"{strategy.name} cannot meet tier {tier.ordinal} for "
                        f"{request.external_id}: {e}"
                    )
                    continue
                except PipelineError as e:
                    last_error = e
                    log.debug(
                        f"{strategy.name} exhausted for {request.external_id}: {e}"
                    )
                    break

        raise NoAvailableSourceError(
            f"All acquisition strategies failed for {request.external_id}.",
            last_error=last_error,
        )


def last_error_kind(error: PipelineError) -> ErrorKind:
    """The kind of the underlying failure behind a chain exhaustion."""
    if isinstance(error, NoAvailableSourceError) and error.last_error is not None:
        return error.last_error.kind
    return error.kind
