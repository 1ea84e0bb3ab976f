"""
External binary acquisition: shells out to the yt-dlp executable and reads back
the audio file it writes into a scoped scratch path.
"""

import logging
from typing import List, Optional

import aiofiles

from ytmp3_cli.core.cancellation import CancelToken
from ytmp3_cli.exceptions import (
    ProcessFailureError,
    QualityUnavailableError,
    SourceNotFoundError,
)
from ytmp3_cli.models.quality import QualityTier
from ytmp3_cli.models.track import AcquisitionResult, StrategyKind, TrackRequest
from ytmp3_cli.storage.scratch import ScratchDirectory, default_scratch
from ytmp3_cli.utils.process import run_process, verify_output

from .base import AcquisitionStrategy, looks_format_unavailable, looks_unavailable

log = logging.getLogger(__name__)


class ExternalBinaryStrategy(AcquisitionStrategy):
    """Runs `yt-dlp -x` and treats exit 0 plus a non-empty file as success."""

    kind = StrategyKind.BINARY

    def __init__(
        self,
        executable: str = "yt-dlp",
        container: str = "m4a",
        timeout: float = 300.0,
        scratch: Optional[ScratchDirectory] = None,
    ):
        self.executable = executable
        self.container = container
        self.timeout = timeout
        self.scratch = scratch or default_scratch()

    @classmethod
    def from_config(cls, config, *, scratch, downloader):
        return cls(
            executable=config.ytdlp_path,
            container=config.binary_container,
            timeout=config.process_timeout,
            scratch=scratch,
        )

    def build_args(
        self, request: TrackRequest, tier: QualityTier, output_template: str
    ) -> List[str]:
        # The tier floor becomes a format filter; fallback to bestaudio is only
        # allowed on the lowest tier, which has no floor.
        if tier.min_source_kbps > 0:
            selector = f"bestaudio[abr>={tier.min_source_kbps}]"
        else:
            selector = "bestaudio/best"
        return [
            self.executable,
            "-f",
            selector,
            "-x",
            "--audio-format",
            self.container,
            "-o",
            output_template,
            "--no-playlist",
            "--no-warnings",
            "--no-progress",
            request.source_url,
        ]

    async def acquire(
        self,
        request: TrackRequest,
        tier: QualityTier,
        cancel: Optional[CancelToken] = None,
    ) -> AcquisitionResult:
        self.require_id(request)

        async with self.scratch.scoped(
            f"{request.external_id}.{self.container}"
        ) as handle:
            template = f"{handle.path.with_suffix('')}.%(ext)s"
            args = self.build_args(request, tier, template)
            result = await run_process(
                args, timeout=self.timeout, cancel=cancel, tool="yt-dlp"
            )

            if not result.ok:
                stderr = result.stderr
                if looks_unavailable(stderr):
                    raise SourceNotFoundError(
                        f"Video {request.external_id} is unavailable.",
                        detail=result.stderr_tail,
                    )
                if looks_format_unavailable(stderr):
                    raise QualityUnavailableError(
                        f"No audio stream satisfies tier {tier.ordinal} "
                        f"({tier.min_source_kbps} kbps floor).",
                        detail=result.stderr_tail,
                    )
                raise ProcessFailureError(
                    "yt-dlp exited with an error",
                    exit_code=result.returncode,
                    stderr_tail=result.stderr_tail,
                )

            size = verify_output(result, handle.path, tool="yt-dlp")
            log.debug(f"yt-dlp wrote {size} bytes for {request.external_id}")

            async with aiofiles.open(handle.path, "rb") as f:
                raw = await f.read()

        return AcquisitionResult(
            raw_bytes=raw,
            container_format=self.container,
            source_strategy=self.kind,
            tier=tier.ordinal,
        )

    def __repr__(self) -> str:
        return f"ExternalBinaryStrategy(executable={self.executable!r})"
