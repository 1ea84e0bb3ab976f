"""End-to-end tests for the per-track pipeline and batch entry point"""

import asyncio
import json
from dataclasses import replace

import pytest
from mutagen.id3 import ID3

from helpers import OK, FakeDownloader, FakeStrategy, redirect_target, scratch_files
from ytmp3_cli.acquisition import AcquisitionChain, ExternalBinaryStrategy
from ytmp3_cli.core.cancellation import CancelToken
from ytmp3_cli.core.pipeline import PipelineOrchestrator
from ytmp3_cli.exceptions import (
    ErrorKind,
    NetworkFailureError,
    ProcessFailureError,
    SourceNotFoundError,
)
from ytmp3_cli.media.tagger import Tagger
from ytmp3_cli.media.transcoder import MP3_MIME_TYPE, Transcoder
from ytmp3_cli.models.config import PipelineConfig
from ytmp3_cli.models.stats import BatchStatus
from ytmp3_cli.models.track import (
    Delegated,
    Failure,
    PipelineState,
    StrategyKind,
    Success,
)
from ytmp3_cli.utils.structured_logger import create_structured_logger

LIB, BIN, RED = StrategyKind.LIBRARY, StrategyKind.BINARY, StrategyKind.REDIRECT


@pytest.fixture
def build(scratch, fake_ffmpeg):
    """Builds an orchestrator around the given strategies and a fake ffmpeg."""
    script, _ = fake_ffmpeg

    def _build(*strategies, attempts=3, transcoder=None, **kwargs):
        chain = AcquisitionChain(list(strategies), attempts=attempts, delay=0)
        transcoder = transcoder or Transcoder(
            executable=script, attempts=2, delay=0, scratch=scratch
        )
        return PipelineOrchestrator(
            PipelineConfig(), scratch=scratch, chain=chain, transcoder=transcoder, **kwargs
        )

    return _build


class TestAcquireAndTranscode:
    async def test_first_attempt_success(self, build, request_factory, scratch):
        orchestrator = build(FakeStrategy(LIB, [OK]))

        outcome = await orchestrator.acquire_and_transcode(request_factory(quality=1))

        assert isinstance(outcome, Success)
        assert outcome.state == PipelineState.COMPLETE
        assert outcome.result.mime_type == MP3_MIME_TYPE
        assert outcome.result.size_bytes > 0
        assert outcome.strategy == LIB
        assert outcome.tier == 1
        assert outcome.filename == "Never_Gonna_Rick.mp3"
        assert scratch_files(scratch) == []

    async def test_success_after_two_network_failures(self, build, track_request):
        library = FakeStrategy(
            LIB, [NetworkFailureError("reset"), NetworkFailureError("reset"), OK]
        )
        outcome = await build(library).acquire_and_transcode(track_request)

        assert isinstance(outcome, Success)
        assert len(outcome.attempt_log) == 3

    async def test_everything_exhausted(self, build, track_request):
        orchestrator = build(
            FakeStrategy(LIB, [NetworkFailureError("down")]),
            FakeStrategy(BIN, [ProcessFailureError("exit 1", exit_code=1)]),
            FakeStrategy(RED, [SourceNotFoundError("no converter reachable")]),
        )

        outcome = await orchestrator.acquire_and_transcode(track_request)

        assert isinstance(outcome, Failure)
        assert outcome.state == PipelineState.FAILED
        assert outcome.kind == ErrorKind.NO_AVAILABLE_SOURCE
        assert outcome.last_error_kind == ErrorKind.SOURCE_NOT_FOUND
        assert outcome.unavailable
        assert not outcome.retry_later
        assert outcome.manual_url.endswith(track_request.external_id)

    async def test_unexpected_strategy_error_falls_through(self, build, track_request):
        binary = FakeStrategy(BIN, [OK])
        orchestrator = build(FakeStrategy(LIB, [RuntimeError("extractor crashed")]), binary)

        outcome = await orchestrator.acquire_and_transcode(track_request)

        assert isinstance(outcome, Success)
        assert outcome.strategy == BIN
        assert outcome.attempt_log[0].error_kind == ErrorKind.INTERNAL_ERROR

    async def test_unknown_quality_hint_is_a_failure(self, build, request_factory):
        library = FakeStrategy(LIB, [OK])

        outcome = await build(library).acquire_and_transcode(request_factory(quality=9))

        assert isinstance(outcome, Failure)
        assert outcome.kind == ErrorKind.INTERNAL_ERROR
        assert "Unknown quality tier 9" in outcome.detail
        assert library.calls == []

    async def test_redirect_is_delegated(self, build, track_request):
        transitions = []
        orchestrator = build(
            FakeStrategy(LIB, [SourceNotFoundError("blocked")]),
            FakeStrategy(RED, [redirect_target("y2mate")]),
            on_transition=lambda request, state: transitions.append(state),
        )

        outcome = await orchestrator.acquire_and_transcode(track_request)

        assert isinstance(outcome, Delegated)
        assert outcome.target.service == "y2mate"
        assert transitions == [
            PipelineState.PENDING,
            PipelineState.RESOLVING,
            PipelineState.REDIRECTING,
            PipelineState.COMPLETE,
        ]

    async def test_transitions_for_success(self, build, track_request):
        transitions = []
        orchestrator = build(
            FakeStrategy(LIB, [OK]),
            on_transition=lambda request, state: transitions.append(state),
        )

        await orchestrator.acquire_and_transcode(track_request)

        assert transitions == [
            PipelineState.PENDING,
            PipelineState.RESOLVING,
            PipelineState.TRANSCODING,
            PipelineState.COMPLETE,
        ]

    async def test_transcode_failure_is_retry_later(
        self, build, make_script, scratch, track_request
    ):
        broken = Transcoder(
            executable=make_script("ffmpeg-broken", "import sys\nsys.exit(1)\n"),
            attempts=2,
            delay=0,
            scratch=scratch,
        )
        orchestrator = build(FakeStrategy(LIB, [OK]), transcoder=broken)

        outcome = await orchestrator.acquire_and_transcode(track_request)

        assert isinstance(outcome, Failure)
        assert outcome.kind == ErrorKind.TRANSCODE_FAILED
        assert outcome.retry_later
        assert len(outcome.attempt_log) == 1
        assert scratch_files(scratch) == []

    async def test_cancelled_track(self, build, track_request):
        token = CancelToken()
        token.cancel()

        outcome = await build(FakeStrategy(LIB, [OK])).acquire_and_transcode(
            track_request, cancel=token
        )

        assert isinstance(outcome, Failure)
        assert outcome.cancelled

    async def test_identical_requests_do_not_share_scratch(
        self, build, make_script, scratch, track_request
    ):
        seen = str(scratch.root.parent / "seen.log")
        yt_dlp = make_script(
            "yt-dlp",
            f"""
            import sys, time
            args = sys.argv[1:]
            target = args[args.index("-o") + 1].replace("%(ext)s", "m4a")
            with open({seen!r}, "a") as log:
                log.write(target + "\\n")
            time.sleep(0.2)
            with open(target, "wb") as out:
                out.write(b"\\x00audio" * 256)
            """,
        )
        binary = ExternalBinaryStrategy(executable=yt_dlp, timeout=30, scratch=scratch)
        orchestrator = build(binary)

        first, second = await asyncio.gather(
            orchestrator.acquire_and_transcode(track_request),
            orchestrator.acquire_and_transcode(track_request),
        )

        assert isinstance(first, Success) and isinstance(second, Success)
        assert first.result.audio_bytes == second.result.audio_bytes
        with open(seen) as f:
            targets = f.read().splitlines()
        assert len(set(targets)) == 2
        assert scratch_files(scratch) == []


class TestRunBatch:
    async def test_batch_writes_event_log(self, build, request_factory, tmp_path):
        base, events = create_structured_logger(
            log_dir=tmp_path / "logs", enable_json=True, enable_console=False
        )
        orchestrator = build(
            FakeStrategy(LIB, [OK]), event_logger=events
        )
        requests = [request_factory(external_id=f"video{i:06d}") for i in range(3)]

        report = await orchestrator.run_batch(requests + requests[:1], concurrency=2)
        base.close()

        assert report.status == BatchStatus.COMPLETED
        assert len(report.succeeded) == 3
        entries = [
            json.loads(line) for line in base.json_log_path.read_text().splitlines()
        ]
        names = [e["event"] for e in entries]
        assert names[0] == "batch_started"
        assert names[-1] == "batch_completed"
        assert names.count("track_completed") == 3
        assert entries[0]["duplicates_removed"] == 1
        assert entries[-1]["succeeded"] == 3

    async def test_failed_attempts_are_logged(self, build, track_request, tmp_path):
        base, events = create_structured_logger(
            log_dir=tmp_path / "logs", enable_json=True, enable_console=False
        )
        orchestrator = build(
            FakeStrategy(LIB, [NetworkFailureError("reset"), OK]), event_logger=events
        )

        await orchestrator.run_batch([track_request])
        base.close()

        names = [
            json.loads(line)["event"]
            for line in base.json_log_path.read_text().splitlines()
        ]
        assert "attempt_failed" in names

    async def test_aclose_releases_leftovers(self, build, scratch, http_pool):
        orchestrator = build(FakeStrategy(LIB, [OK]))
        scratch.acquire("orphan.m4a").path.write_bytes(b"x")

        await orchestrator.aclose()

        assert scratch_files(scratch) == []


class TestArtworkTagging:
    async def test_album_and_cover_are_embedded(
        self, build, request_factory, scratch, tmp_path
    ):
        cover = b"\xff\xd8\xff\xe0" + b"\x00" * 256
        downloader = FakeDownloader({"https://img.example/cover.jpg": cover})
        orchestrator = build(
            FakeStrategy(LIB, [OK]), tagger=Tagger(downloader, scratch=scratch)
        )
        request = replace(
            request_factory(),
            album="Whenever You Need Somebody",
            artwork_url="https://img.example/cover.jpg",
        )

        outcome = await orchestrator.acquire_and_transcode(request)

        assert isinstance(outcome, Success)
        saved = tmp_path / outcome.filename
        saved.write_bytes(outcome.result.audio_bytes)
        tags = ID3(str(saved))
        assert tags["TALB"].text == ["Whenever You Need Somebody"]
        (picture,) = tags.getall("APIC")
        assert picture.data == cover
        assert picture.mime == "image/jpeg"
        assert outcome.result.size_bytes == len(outcome.result.audio_bytes)
        assert scratch_files(scratch) == []

    async def test_artwork_failure_keeps_untagged_audio(
        self, build, request_factory, scratch
    ):
        downloader = FakeDownloader(
            {"https://img.example/cover.jpg": NetworkFailureError("HTTP 503")}
        )
        plain = await build(FakeStrategy(LIB, [OK])).acquire_and_transcode(
            request_factory()
        )
        orchestrator = build(
            FakeStrategy(LIB, [OK]), tagger=Tagger(downloader, scratch=scratch)
        )
        request = replace(
            request_factory(), album="Album", artwork_url="https://img.example/cover.jpg"
        )

        outcome = await orchestrator.acquire_and_transcode(request)

        assert isinstance(outcome, Success)
        assert outcome.result.audio_bytes == plain.result.audio_bytes
        assert downloader.fetched == [("https://img.example/cover.jpg", None)]
