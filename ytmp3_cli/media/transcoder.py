"""
Converts raw source audio to MP3 with embedded title/artist tags using ffmpeg.
"""

import logging
from typing import List, Optional

import aiofiles

from ytmp3_cli.core.cancellation import CancelToken
from ytmp3_cli.exceptions import (
    ProcessFailureError,
    TranscodeFailedError,
    YtMp3Error,
)
from ytmp3_cli.models.config import PipelineConfig
from ytmp3_cli.models.track import AcquisitionResult, TrackRequest, TranscodeResult
from ytmp3_cli.storage.scratch import ScratchDirectory, default_scratch
from ytmp3_cli.utils.formatting import format_size
from ytmp3_cli.utils.process import run_process, verify_output
from ytmp3_cli.utils.retry import retry_async

from .integrity import FileIntegrityChecker

log = logging.getLogger(__name__)

MP3_MIME_TYPE = "audio/mpeg"


class Transcoder:
    """
    Runs one ffmpeg process per attempt, never reused.

    Input and output live in scoped scratch handles that are released before
    `transcode` returns, whatever the outcome.
    """

    def __init__(
        self,
        executable: str = "ffmpeg",
        timeout: float = 300.0,
        attempts: int = 2,
        delay: float = 1.0,
        verify: bool = False,
        scratch: Optional[ScratchDirectory] = None,
    ):
        self.executable = executable
        self.timeout = timeout
        self.attempts = attempts
        self.delay = delay
        self.verify = verify
        self.scratch = scratch or default_scratch()

    @classmethod
    def from_config(
        cls, config: PipelineConfig, scratch: Optional[ScratchDirectory] = None
    ) -> "Transcoder":
        return cls(
            executable=config.ffmpeg_path,
            timeout=config.process_timeout,
            attempts=config.transcode_attempts,
            delay=config.transcode_delay,
            verify=config.verify_output,
            scratch=scratch,
        )

    def build_args(
        self, input_path: str, output_path: str, title: str, artist: str
    ) -> List[str]:
        return [
            self.executable,
            "-hide_banner",
            "-y",
            "-i",
            input_path,
            "-vn",
            "-codec:a",
            "libmp3lame",
            "-qscale:a",
            "2",
            "-write_xing",
            "1",
            "-id3v2_version",
            "3",
            "-metadata",
            f"title={title}",
            "-metadata",
            f"artist={artist}",
            output_path,
        ]

    async def _transcode_once(
        self,
        source: AcquisitionResult,
        request: TrackRequest,
        cancel: Optional[CancelToken],
    ) -> TranscodeResult:
        container = source.container_format or "bin"
        stem = request.external_id or "track"
        async with self.scratch.scoped(f"{stem}_in.{container}") as src_handle:
            async with self.scratch.scoped(f"{stem}_out.mp3") as out_handle:
                async with aiofiles.open(src_handle.path, "wb") as f:
                    await f.write(source.raw_bytes)

                args = self.build_args(
                    str(src_handle.path),
                    str(out_handle.path),
                    request.title,
                    request.artist,
                )
                try:
                    result = await run_process(
                        args, timeout=self.timeout, cancel=cancel, tool="ffmpeg"
                    )
                except ProcessFailureError as e:
                    raise TranscodeFailedError(
                        str(e),
                        exit_code=e.exit_code,
                        stderr_tail=e.stderr_tail,
                        retryable=e.retryable,
                    ) from e
                verify_output(
                    result,
                    out_handle.path,
                    tool="ffmpeg",
                    error_cls=TranscodeFailedError,
                )

                if self.verify:
                    problem = FileIntegrityChecker.mp3_problem(out_handle.path)
                    if problem:
                        raise TranscodeFailedError(
                            f"Encoded MP3 failed verification: {problem}"
                        )

                async with aiofiles.open(out_handle.path, "rb") as f:
                    audio = await f.read()

        if not audio:
            raise TranscodeFailedError("Encoded MP3 was empty when read back")
        return TranscodeResult(
            audio_bytes=audio, mime_type=MP3_MIME_TYPE, size_bytes=len(audio)
        )

    async def transcode(
        self,
        source: AcquisitionResult,
        request: TrackRequest,
        cancel: Optional[CancelToken] = None,
    ) -> TranscodeResult:
        """
        Transcodes `source` to tagged MP3 bytes.

        Retryable failures are retried with backoff; the last TranscodeFailedError
        propagates once attempts are exhausted.
        """

        async def operation(attempt: int) -> TranscodeResult:
            try:
                return await self._transcode_once(source, request, cancel)
            except YtMp3Error:
                raise
            except Exception as e:
                log.debug("Transcode raised unexpectedly", exc_info=True)
                raise TranscodeFailedError(
                    f"Transcoding raised {type(e).__name__}: {e}", retryable=False
                ) from e

        result = await retry_async(
            operation,
            max_attempts=self.attempts,
            initial_delay=self.delay,
            cancel=cancel,
            label=f"ffmpeg[{request.external_id}]",
        )
        log.debug(
            f"Transcoded {request.external_id} from {source.container_format} "
            f"({format_size(source.size_bytes)} -> {format_size(result.size_bytes)})"
        )
        return result
