"""Tests for HTTP stream fetches and probes against a local server"""

import asyncio
import time

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from ytmp3_cli.core.cancellation import CancelToken
from ytmp3_cli.exceptions import (
    EmptyOutputError,
    NetworkFailureError,
    PipelineCancelledError,
    SourceNotFoundError,
)
from ytmp3_cli.media.downloader import Downloader

PAYLOAD = b"\x00stream" * 20000


@pytest.fixture
async def server(http_pool):
    async def audio(request):
        return web.Response(body=PAYLOAD)

    async def empty(request):
        return web.Response(body=b"")

    async def gone(request):
        return web.Response(status=404)

    async def broken(request):
        return web.Response(status=503)

    async def stall(request):
        response = web.StreamResponse()
        await response.prepare(request)
        await response.write(PAYLOAD[:1024])
        await asyncio.sleep(3)
        await response.write_eof()
        return response

    app = web.Application()
    app.router.add_route("*", "/audio", audio)
    app.router.add_get("/empty", empty)
    app.router.add_get("/gone", gone)
    app.router.add_get("/broken", broken)
    app.router.add_get("/stall", stall)

    test_server = TestServer(app)
    await test_server.start_server()
    yield test_server
    await test_server.close()


class TestDownloader:
    async def test_fetches_whole_body(self, server):
        body = await Downloader(timeout=10).fetch_bytes(str(server.make_url("/audio")))
        assert body == PAYLOAD

    async def test_not_found(self, server):
        with pytest.raises(SourceNotFoundError):
            await Downloader(timeout=10).fetch_bytes(str(server.make_url("/gone")))

    async def test_server_error_is_network_failure(self, server):
        with pytest.raises(NetworkFailureError):
            await Downloader(timeout=10).fetch_bytes(str(server.make_url("/broken")))

    async def test_empty_body(self, server):
        with pytest.raises(EmptyOutputError):
            await Downloader(timeout=10).fetch_bytes(str(server.make_url("/empty")))

    async def test_cancelled_fetch(self, server):
        token = CancelToken()
        token.cancel()
        with pytest.raises(PipelineCancelledError):
            await Downloader(timeout=10).fetch_bytes(
                str(server.make_url("/audio")), cancel=token
            )

    async def test_cancel_interrupts_stalled_read(self, server):
        token = CancelToken()
        fetch = asyncio.ensure_future(
            Downloader(timeout=10).fetch_bytes(
                str(server.make_url("/stall")), cancel=token
            )
        )
        await asyncio.sleep(0.3)
        started = time.monotonic()
        token.cancel()

        with pytest.raises(PipelineCancelledError):
            await fetch
        assert time.monotonic() - started < 1.0

    async def test_probe(self, server):
        downloader = Downloader()
        assert await downloader.probe(str(server.make_url("/audio")))
        assert not await downloader.probe(str(server.make_url("/gone")))

    async def test_probe_unreachable_host(self, http_pool):
        assert not await Downloader().probe("http://127.0.0.1:9/", timeout=2)
