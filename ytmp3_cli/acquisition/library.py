"""
Library extraction: reads the platform's stream manifest through yt-dlp's
Python API and fetches the best audio-only stream directly over HTTP.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from yt_dlp import YoutubeDL
from yt_dlp.utils import DownloadError, ExtractorError

from ytmp3_cli.core.cancellation import CancelToken
from ytmp3_cli.exceptions import (
    NetworkFailureError,
    QualityUnavailableError,
    SourceNotFoundError,
)
from ytmp3_cli.media.downloader import Downloader
from ytmp3_cli.models.quality import QualityTier
from ytmp3_cli.models.track import AcquisitionResult, StrategyKind, TrackRequest

from .base import AcquisitionStrategy, looks_unavailable

log = logging.getLogger(__name__)

YDL_OPTIONS = {
    "quiet": True,
    "no_warnings": True,
    "noplaylist": True,
    "skip_download": True,
    "socket_timeout": 20,
}


def audio_only_formats(info: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Returns formats that carry audio, no video, and a direct URL."""
    audio = []
    for fmt in info.get("formats") or []:
        if not isinstance(fmt, dict) or not fmt.get("url"):
            continue
        acodec = str(fmt.get("acodec") or "")
        vcodec = str(fmt.get("vcodec") or "")
        if acodec and acodec != "none" and (not vcodec or vcodec == "none"):
            audio.append(fmt)
    return audio


def format_bitrate(fmt: Dict[str, Any]) -> float:
    return float(fmt.get("abr") or fmt.get("tbr") or 0.0)


def select_best_audio(info: Dict[str, Any], tier: QualityTier) -> Dict[str, Any]:
    """
    Picks the highest-bitrate audio-only representation.

    Raises SourceNotFoundError when the manifest has no audio-only stream and
    QualityUnavailableError when the best stream is below the tier's floor.
    """
    candidates = audio_only_formats(info)
    if not candidates:
        raise SourceNotFoundError("Manifest contains no audio-only stream.")

    best = max(candidates, key=format_bitrate)
    bitrate = format_bitrate(best)
    if bitrate and bitrate < tier.min_source_kbps:
        raise QualityUnavailableError(
            f"Best audio stream is {bitrate:.0f} kbps, below the "
            f"{tier.min_source_kbps} kbps floor for tier {tier.ordinal}."
        )
    return best


class LibraryExtractionStrategy(AcquisitionStrategy):
    """Queries the manifest in-process and downloads the chosen stream."""

    kind = StrategyKind.LIBRARY

    def __init__(self, downloader: Optional[Downloader] = None):
        self.downloader = downloader or Downloader()

    @classmethod
    def from_config(cls, config, *, scratch, downloader):
        return cls(downloader=downloader)

    def _extract_info(self, url: str) -> Dict[str, Any]:
        with YoutubeDL(dict(YDL_OPTIONS)) as ydl:
            info = ydl.extract_info(url, download=False)
        if not isinstance(info, dict):
            raise SourceNotFoundError("Extractor returned no metadata.")
        return info

    async def fetch_manifest(
        self, request: TrackRequest, cancel: Optional[CancelToken] = None
    ) -> Dict[str, Any]:
        """Runs the blocking extractor in a worker thread."""
        work = asyncio.to_thread(self._extract_info, request.source_url)
        try:
            if cancel:
                return await cancel.race(work)
            return await work
        except (DownloadError, ExtractorError) as e:
            message = str(e)
            if looks_unavailable(message):
                raise SourceNotFoundError(
                    f"Video {request.external_id} is unavailable.", detail=message
                ) from e
            raise NetworkFailureError(
                f"Manifest lookup failed for {request.external_id}.", detail=message
            ) from e

    async def acquire(
        self,
        request: TrackRequest,
        tier: QualityTier,
        cancel: Optional[CancelToken] = None,
    ) -> AcquisitionResult:
        self.require_id(request)
        info = await self.fetch_manifest(request, cancel)
        fmt = select_best_audio(info, tier)
        log.debug(
            f"Selected format {fmt.get('format_id')} ({fmt.get('ext')}, "
            f"{format_bitrate(fmt):.0f} kbps) for {request.external_id}"
        )

        raw = await self.downloader.fetch_bytes(
            fmt["url"], headers=fmt.get("http_headers"), cancel=cancel
        )
        return AcquisitionResult(
            raw_bytes=raw,
            container_format=str(fmt.get("ext") or "webm"),
            source_strategy=self.kind,
            tier=tier.ordinal,
        )
