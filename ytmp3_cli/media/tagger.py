"""
Writes album and front-cover ID3 frames into transcoded MP3s.
"""

import asyncio
import logging
from typing import Optional

import aiofiles
import mutagen.id3 as id3
from mutagen.id3 import ID3NoHeaderError

from ytmp3_cli.core.cancellation import CancelToken
from ytmp3_cli.exceptions import PipelineCancelledError, PipelineError
from ytmp3_cli.models.config import PipelineConfig
from ytmp3_cli.models.track import TrackRequest, TranscodeResult
from ytmp3_cli.storage.scratch import ScratchDirectory, default_scratch

from .downloader import Downloader

log = logging.getLogger(__name__)

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"
FRONT_COVER = 3


def guess_image_mime(data: bytes) -> str:
    """PNG when the signature says so, JPEG otherwise."""
    return "image/png" if data.startswith(PNG_SIGNATURE) else "image/jpeg"


class Tagger:
    """
    Adds the album name and cover art of a request to finished MP3 bytes.

    Tagging is best effort: when the artwork cannot be fetched or the tags
    cannot be written, the audio is returned exactly as the encoder produced
    it. Only cancellation propagates.
    """

    def __init__(
        self,
        downloader: Downloader,
        embed_art: bool = True,
        scratch: Optional[ScratchDirectory] = None,
    ):
        self.downloader = downloader
        self.embed_art = embed_art
        self.scratch = scratch or default_scratch()

    @classmethod
    def from_config(
        cls,
        config: PipelineConfig,
        downloader: Downloader,
        scratch: Optional[ScratchDirectory] = None,
    ) -> "Tagger":
        return cls(downloader, embed_art=config.embed_artwork, scratch=scratch)

    def wants_tags(self, request: TrackRequest) -> bool:
        return bool(request.album or (self.embed_art and request.artwork_url))

    async def _fetch_artwork(
        self, request: TrackRequest, cancel: Optional[CancelToken]
    ) -> Optional[bytes]:
        if not (self.embed_art and request.artwork_url):
            return None
        return await self.downloader.fetch_bytes(
            request.artwork_url, cancel=cancel, warn_below=0
        )

    @staticmethod
    def _write_tags(path: str, request: TrackRequest, artwork: Optional[bytes]) -> None:
        try:
            tags = id3.ID3(path)
        except ID3NoHeaderError:
            tags = id3.ID3()

        tags.setall("TIT2", [id3.TIT2(encoding=3, text=request.title)])
        if request.artist:
            tags.setall("TPE1", [id3.TPE1(encoding=3, text=request.artist)])
        if request.album:
            tags.setall("TALB", [id3.TALB(encoding=3, text=request.album)])
        if artwork:
            desc = f"Album cover for {request.album}" if request.album else "Cover"
            tags.delall("APIC")
            tags.add(
                id3.APIC(
                    encoding=3,
                    mime=guess_image_mime(artwork),
                    type=FRONT_COVER,
                    desc=desc,
                    data=artwork,
                )
            )
        tags.save(path, v2_version=3)

    async def tag(
        self,
        result: TranscodeResult,
        request: TrackRequest,
        cancel: Optional[CancelToken] = None,
    ) -> TranscodeResult:
        """Returns `result` with album/cover frames added, or unchanged."""
        if not self.wants_tags(request):
            return result

        try:
            artwork = await self._fetch_artwork(request, cancel)
        except PipelineCancelledError:
            raise
        except PipelineError as e:
            log.warning(
                f"[yellow]Cover art for {request.external_id} unavailable, "
                f"keeping untagged audio: {e.detail}[/yellow]"
            )
            return result

        stem = request.external_id or "track"
        try:
            async with self.scratch.scoped(f"{stem}_tag.mp3") as handle:
                async with aiofiles.open(handle.path, "wb") as f:
                    await f.write(result.audio_bytes)
                await asyncio.to_thread(
                    self._write_tags, str(handle.path), request, artwork
                )
                async with aiofiles.open(handle.path, "rb") as f:
                    tagged = await f.read()
        except Exception as e:
            log.error(
                f"Failed to tag '{request.label}': {e}",
                exc_info=log.getEffectiveLevel() == logging.DEBUG,
            )
            return result

        log.debug(
            f"Tagged {request.external_id}: album={request.album!r}, "
            f"cover={len(artwork) if artwork else 0} bytes"
        )
        return TranscodeResult(
            audio_bytes=tagged, mime_type=result.mime_type, size_bytes=len(tagged)
        )
