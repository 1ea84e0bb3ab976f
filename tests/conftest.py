"""Test configuration and fixtures"""

import stat
import sys
import textwrap

import pytest

from ytmp3_cli.media.downloader import close_connection_pool
from ytmp3_cli.models.track import TrackRequest
from ytmp3_cli.storage.scratch import ScratchDirectory


@pytest.fixture
def scratch(tmp_path):
    """A scratch directory private to one test"""
    return ScratchDirectory(tmp_path / "scratch")


@pytest.fixture
def make_script(tmp_path):
    """Writes an executable Python script standing in for an external tool"""

    def _make(name: str, body: str) -> str:
        path = tmp_path / "bin" / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(f"#!{sys.executable}\n" + textwrap.dedent(body))
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return str(path)

    return _make


@pytest.fixture
def fake_ffmpeg(make_script, tmp_path):
    """An ffmpeg that records its arguments and writes a small MP3-like file"""
    calls = tmp_path / "ffmpeg_calls.log"
    script = make_script(
        "ffmpeg",
        f"""
        import json, sys
        args = sys.argv[1:]
        with open({str(calls)!r}, "a") as log:
            log.write(json.dumps(args) + "\\n")
        with open(args[-1], "wb") as out:
            out.write(b"\\xff\\xfb\\x90\\x00" * 1024)
        """,
    )
    return script, calls


@pytest.fixture
def request_factory():
    def _make(
        external_id="dQw4w9WgXcQ", title="Never Gonna", artist="Rick", quality=None
    ):
        return TrackRequest(
            external_id=external_id, title=title, artist=artist, quality_hint=quality
        )

    return _make


@pytest.fixture
def track_request(request_factory):
    return request_factory()


@pytest.fixture
async def http_pool():
    """Closes the shared HTTP pool after a test that used it"""
    yield
    await close_connection_pool()
