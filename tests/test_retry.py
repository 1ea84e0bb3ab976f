"""Tests for the retry/backoff wrapper"""

import asyncio
import time

import aiohttp
import pytest

from ytmp3_cli.core.cancellation import CancelToken
from ytmp3_cli.exceptions import (
    NetworkFailureError,
    PipelineCancelledError,
    ProcessFailureError,
    QualityUnavailableError,
    SourceNotFoundError,
    TranscodeFailedError,
)
from ytmp3_cli.utils.retry import is_transient, retry_async


class TestIsTransient:
    def test_retryable_pipeline_errors(self):
        assert is_transient(NetworkFailureError("x"))
        assert is_transient(ProcessFailureError("x", exit_code=1))
        assert is_transient(TranscodeFailedError("x"))

    def test_permanent_pipeline_errors(self):
        assert not is_transient(SourceNotFoundError("x"))
        assert not is_transient(QualityUnavailableError("x"))
        assert not is_transient(ProcessFailureError("missing binary", retryable=False))

    def test_raw_network_errors(self):
        assert is_transient(aiohttp.ClientConnectionError())
        assert is_transient(asyncio.TimeoutError())
        assert not is_transient(ValueError("bug"))


class TestRetryAsync:
    async def test_returns_first_success(self):
        calls = []

        async def op(attempt):
            calls.append(attempt)
            return "done"

        assert await retry_async(op, max_attempts=3, initial_delay=0) == "done"
        assert calls == [1]

    async def test_delays_double_between_attempts(self):
        delays = []

        async def op(attempt):
            if attempt < 4:
                raise NetworkFailureError(f"attempt {attempt}")
            return attempt

        started = time.monotonic()
        result = await retry_async(
            op,
            max_attempts=4,
            initial_delay=0.02,
            on_retry=lambda attempt, delay, exc: delays.append(delay),
        )
        elapsed = time.monotonic() - started

        assert result == 4
        assert delays == pytest.approx([0.02, 0.04, 0.08])
        assert elapsed >= 0.14

    async def test_reraises_original_error_after_exhaustion(self):
        errors = []

        async def op(attempt):
            err = NetworkFailureError(f"attempt {attempt}")
            errors.append(err)
            raise err

        with pytest.raises(NetworkFailureError) as exc_info:
            await retry_async(op, max_attempts=3, initial_delay=0)

        assert len(errors) == 3
        assert exc_info.value is errors[-1]

    async def test_non_transient_error_is_not_retried(self):
        calls = []

        async def op(attempt):
            calls.append(attempt)
            raise SourceNotFoundError("gone")

        with pytest.raises(SourceNotFoundError):
            await retry_async(op, max_attempts=5, initial_delay=0)
        assert calls == [1]

    async def test_cancel_skips_remaining_backoff(self):
        token = CancelToken()

        async def op(attempt):
            raise NetworkFailureError("flaky")

        started = time.monotonic()
        with pytest.raises(PipelineCancelledError):
            await retry_async(
                op,
                max_attempts=5,
                initial_delay=30,
                cancel=token,
                on_retry=lambda *_: token.cancel("stop"),
            )
        assert time.monotonic() - started < 5

    async def test_already_cancelled_token_fails_fast(self):
        token = CancelToken()
        token.cancel()
        calls = []

        async def op(attempt):
            calls.append(attempt)

        with pytest.raises(PipelineCancelledError):
            await retry_async(op, max_attempts=3, initial_delay=0, cancel=token)
        assert calls == []

    async def test_rejects_zero_attempts(self):
        async def op(attempt):
            return None

        with pytest.raises(ValueError):
            await retry_async(op, max_attempts=0, initial_delay=0)
