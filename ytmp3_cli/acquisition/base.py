"""
The single capability every acquisition strategy implements.
"""

import re
from abc import ABC, abstractmethod
from typing import Optional, Union

from ytmp3_cli.core.cancellation import CancelToken
from ytmp3_cli.exceptions import SourceNotFoundError
from ytmp3_cli.media.downloader import Downloader
from ytmp3_cli.models.config import PipelineConfig
from ytmp3_cli.models.quality import QualityTier
from ytmp3_cli.models.track import (
    AcquisitionResult,
    RedirectTarget,
    StrategyKind,
    TrackRequest,
)
from ytmp3_cli.storage.scratch import ScratchDirectory

StrategyResult = Union[AcquisitionResult, RedirectTarget]

# Messages the extractor prints for videos that will never become available.
_UNAVAILABLE_PATTERNS = re.compile(
    r"video unavailable|private video|has been removed|"
    r"this video is not available|account associated with this video has been terminated|"
    r"not made this video available|incomplete youtube id|is not a valid url",
    re.IGNORECASE,
)
_FORMAT_UNAVAILABLE_PATTERNS = re.compile(
    r"requested format is not available|no video formats found", re.IGNORECASE
)


def looks_unavailable(message: str) -> bool:
    return bool(_UNAVAILABLE_PATTERNS.search(message or ""))


def looks_format_unavailable(message: str) -> bool:
    return bool(_FORMAT_UNAVAILABLE_PATTERNS.search(message or ""))


class AcquisitionStrategy(ABC):
    """
    One self-contained way of obtaining raw audio for a track.

    Implementations either return an AcquisitionResult, return a RedirectTarget
    (handing the track to an external service), or raise a PipelineError.
    """

    kind: StrategyKind

    @abstractmethod
    async def acquire(
        self,
        request: TrackRequest,
        tier: QualityTier,
        cancel: Optional[CancelToken] = None,
    ) -> StrategyResult:
        """Obtains raw audio bytes for `request` at `tier`, or fails."""

    @classmethod
    @abstractmethod
    def from_config(
        cls,
        config: PipelineConfig,
        *,
        scratch: ScratchDirectory,
        downloader: Downloader,
    ) -> "AcquisitionStrategy":
        """Builds the strategy from the application configuration."""

    @property
    def name(self) -> str:
        return self.kind.value

    @staticmethod
    def require_id(request: TrackRequest) -> None:
        if not request.external_id or not request.external_id.strip():
            raise SourceNotFoundError("Track request has no video identifier.")

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"
