"""Tests for the acquisition chain dispatcher"""

import aiohttp
import pytest

from helpers import OK, FakeStrategy, redirect_target
from ytmp3_cli.acquisition import (
    AcquisitionChain,
    ExternalBinaryStrategy,
    HostedConverterStrategy,
    LibraryExtractionStrategy,
)
from ytmp3_cli.core.cancellation import CancelToken
from ytmp3_cli.exceptions import (
    ErrorKind,
    NetworkFailureError,
    NoAvailableSourceError,
    PipelineCancelledError,
    ProcessFailureError,
    QualityUnavailableError,
    SourceNotFoundError,
)
from ytmp3_cli.models.config import PipelineConfig
from ytmp3_cli.models.track import AcquisitionResult, RedirectTarget, StrategyKind

LIB, BIN, RED = StrategyKind.LIBRARY, StrategyKind.BINARY, StrategyKind.REDIRECT


def make_chain(*strategies, attempts=3):
    return AcquisitionChain(list(strategies), attempts=attempts, delay=0)


class TestAcquisitionChain:
    async def test_first_strategy_success(self, track_request):
        library = FakeStrategy(LIB, [OK])
        binary = FakeStrategy(BIN, [OK])
        log = []

        result = await make_chain(library, binary).resolve(
            track_request, quality=1, attempt_log=log
        )

        assert isinstance(result, AcquisitionResult)
        assert result.source_strategy == LIB
        assert result.tier == 1
        assert binary.calls == []
        assert len(log) == 1 and log[0].succeeded

    async def test_two_transient_failures_then_success(self, track_request):
        library = FakeStrategy(
            LIB, [NetworkFailureError("a"), NetworkFailureError("b"), OK]
        )
        log = []

        result = await make_chain(library).resolve(track_request, attempt_log=log)

        assert result.source_strategy == LIB
        assert len(log) == 3
        assert [r.succeeded for r in log] == [False, False, True]
        assert log[0].error_kind == ErrorKind.NETWORK_FAILURE
        assert [r.attempt for r in log] == [1, 2, 3]

    async def test_quality_fallback_uses_lowest_tier(self, track_request):
        library = FakeStrategy(LIB, [QualityUnavailableError("too low"), OK])
        log = []

        result = await make_chain(library).resolve(
            track_request, quality=4, attempt_log=log
        )

        assert result.tier == 1
        assert library.calls == [4, 1]
        assert log[0].error_kind == ErrorKind.QUALITY_UNAVAILABLE

    async def test_advances_without_retrying_previous_strategy(self, track_request):
        library = FakeStrategy(LIB, [NetworkFailureError("down")])
        binary = FakeStrategy(BIN, [OK])

        result = await make_chain(library, binary, attempts=2).resolve(
            track_request, quality=4
        )

        assert result.source_strategy == BIN
        # Non-quality failures skip the lowest-tier retry
        assert library.calls == [4, 4]
        assert binary.calls == [4]

    async def test_exhausted_quality_fallback_advances(self, track_request):
        library = FakeStrategy(LIB, [QualityUnavailableError("never")])
        binary = FakeStrategy(BIN, [OK])

        result = await make_chain(library, binary).resolve(track_request, quality=3)

        assert library.calls == [3, 1]
        assert result.source_strategy == BIN

    async def test_all_strategies_exhausted(self, track_request):
        library = FakeStrategy(LIB, [NetworkFailureError("down")])
        binary = FakeStrategy(BIN, [ProcessFailureError("exit 1", exit_code=1)])
        redirect = FakeStrategy(RED, [SourceNotFoundError("no converter")])
        log = []

        with pytest.raises(NoAvailableSourceError) as exc_info:
            await make_chain(library, binary, redirect, attempts=2).resolve(
                track_request, attempt_log=log
            )

        assert isinstance(exc_info.value.last_error, SourceNotFoundError)
        assert len(log) == 5
        assert library.calls == [4, 4]
        assert binary.calls == [4, 4]
        assert redirect.calls == [4]

    async def test_redirect_is_returned_as_is(self, track_request):
        library = FakeStrategy(LIB, [SourceNotFoundError("private")])
        target = redirect_target()
        redirect = FakeStrategy(RED, [target])

        result = await make_chain(library, redirect).resolve(track_request)

        assert isinstance(result, RedirectTarget)
        assert result == target

    async def test_unexpected_strategy_error_advances(self, track_request):
        library = FakeStrategy(LIB, [RuntimeError("extractor crashed")])
        binary = FakeStrategy(BIN, [OK])
        log = []

        result = await make_chain(library, binary).resolve(
            track_request, attempt_log=log
        )

        assert result.source_strategy == BIN
        assert library.calls == [4]
        assert log[0].error_kind == ErrorKind.INTERNAL_ERROR
        assert log[0].detail == "RuntimeError: extractor crashed"
        assert log[1].succeeded

    async def test_raw_network_errors_are_retried(self, track_request):
        library = FakeStrategy(LIB, [aiohttp.ClientConnectionError("reset"), OK])
        log = []

        await make_chain(library).resolve(track_request, attempt_log=log)

        assert log[0].error_kind == ErrorKind.NETWORK_FAILURE
        assert len(log) == 2

    async def test_cancelled_token_stops_chain(self, track_request):
        token = CancelToken()
        token.cancel()
        library = FakeStrategy(LIB, [OK])

        with pytest.raises(PipelineCancelledError):
            await make_chain(library).resolve(track_request, cancel=token)
        assert library.calls == []

    async def test_quality_hint_is_used_when_no_quality_given(self, request_factory):
        library = FakeStrategy(LIB, [OK])
        await make_chain(library).resolve(request_factory(quality=2))
        assert library.calls == [2]

    async def test_attempt_callback(self, track_request):
        seen = []
        library = FakeStrategy(LIB, [NetworkFailureError("x"), OK])
        chain = make_chain(library)
        chain.on_attempt = lambda request, record: seen.append(record.succeeded)

        await chain.resolve(track_request)

        assert seen == [False, True]

    def test_requires_a_strategy(self):
        with pytest.raises(ValueError):
            AcquisitionChain([])


class TestChainFromConfig:
    def test_default_order(self, scratch):
        chain = AcquisitionChain.from_config(PipelineConfig(), scratch=scratch)
        assert chain.order == [LIB, BIN, RED]
        assert isinstance(chain.strategies[0], LibraryExtractionStrategy)
        assert isinstance(chain.strategies[1], ExternalBinaryStrategy)
        assert isinstance(chain.strategies[2], HostedConverterStrategy)

    def test_configured_order_and_settings(self, scratch):
        config = PipelineConfig(
            strategy_order=["binary", "redirect"],
            strategy_attempts=5,
            ytdlp_path="/opt/yt-dlp",
            binary_container="opus",
        )
        chain = AcquisitionChain.from_config(config, scratch=scratch)

        assert chain.order == [BIN, RED]
        assert chain.attempts == 5
        binary = chain.strategies[0]
        assert binary.executable == "/opt/yt-dlp"
        assert binary.container == "opus"
        assert binary.scratch is scratch
        assert [name for name, _ in chain.strategies[1].services] == [
            "yt-download.org",
            "y2mate",
            "ytmp3.cc",
        ]
