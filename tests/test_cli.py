"""Tests for CLI input parsing and the commands that need no network"""

import pytest
from typer.testing import CliRunner

from ytmp3_cli import __version__
from ytmp3_cli.cli import app as cli_app
from ytmp3_cli.cli.app import app, normalize_video_id, parse_track_lines

runner = CliRunner()


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    path = tmp_path / "ytmp3-cli" / "config.ini"
    monkeypatch.setattr(cli_app, "CONFIG_FILE", path)
    return path


class TestNormalizeVideoId:
    @pytest.mark.parametrize(
        "value",
        [
            "dQw4w9WgXcQ",
            " dQw4w9WgXcQ ",
            "https://www.youtube.com/watch?v=dQw4w9WgXcQ",
            "https://www.youtube.com/watch?list=PL1&v=dQw4w9WgXcQ&t=4",
            "https://youtu.be/dQw4w9WgXcQ?si=abc",
            "https://youtube.com/shorts/dQw4w9WgXcQ",
        ],
    )
    def test_accepted_forms(self, value):
        assert normalize_video_id(value) == "dQw4w9WgXcQ"

    @pytest.mark.parametrize("value", ["", "short", "https://example.com/watch?v=x"])
    def test_rejected_forms(self, value):
        with pytest.raises(ValueError):
            normalize_video_id(value)


class TestParseTrackLines:
    def test_parses_fields(self):
        requests = parse_track_lines(
            [
                "# video_id,title,artist,quality",
                "",
                'dQw4w9WgXcQ,"Never Gonna Give You Up, Live",Rick Astley,2',
                "https://youtu.be/9bZkp7q19f0,Gangnam Style,PSY",
                "kJQP7kiw5Fk",
            ]
        )

        assert [r.external_id for r in requests] == [
            "dQw4w9WgXcQ",
            "9bZkp7q19f0",
            "kJQP7kiw5Fk",
        ]
        assert requests[0].title == "Never Gonna Give You Up, Live"
        assert requests[0].quality_hint == 2
        assert requests[1].artist == "PSY"
        assert requests[1].quality_hint is None
        assert requests[2].title == "kJQP7kiw5Fk"

    def test_reports_line_number(self):
        with pytest.raises(ValueError, match="Line 2"):
            parse_track_lines(["dQw4w9WgXcQ,a,b", "not-an-id,a,b"])

    def test_album_and_artwork_columns(self):
        (request,) = parse_track_lines(
            ["dQw4w9WgXcQ,Never Gonna,Rick,,Whenever You Need Somebody,https://img.example/c.jpg"]
        )
        assert request.quality_hint is None
        assert request.album == "Whenever You Need Somebody"
        assert request.artwork_url == "https://img.example/c.jpg"

    def test_bad_quality(self):
        with pytest.raises(ValueError, match="Line 1"):
            parse_track_lines(["dQw4w9WgXcQ,a,b,best"])


class TestCommands:
    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_init_then_validate(self, config_file):
        result = runner.invoke(app, ["init", "--force", "-q", "2", "-w", "5"])
        assert result.exit_code == 0
        assert config_file.is_file()
        assert "quality = 2" in config_file.read_text()

        result = runner.invoke(app, ["validate"])
        assert result.exit_code == 0

    def test_init_rejects_invalid_settings(self, config_file):
        result = runner.invoke(app, ["init", "--force", "-q", "9"])
        assert result.exit_code != 0
        assert not config_file.exists()

    def test_validate_reports_bad_config(self, config_file):
        config_file.parent.mkdir(parents=True)
        config_file.write_text("[DEFAULT]\nmax_workers = 0\n")

        result = runner.invoke(app, ["validate"])

        assert result.exit_code == 1
        assert "invalid" in result.output

    def test_fetch_rejects_bad_video(self, config_file):
        result = runner.invoke(app, ["fetch", "not a video"])
        assert result.exit_code == 2

    def test_batch_without_input(self, config_file):
        result = runner.invoke(app, ["batch"])
        assert result.exit_code == 1
        assert "No input provided" in result.output

    def test_batch_with_bad_line(self, config_file, tmp_path):
        tracks = tmp_path / "tracks.csv"
        tracks.write_text("dQw4w9WgXcQ,a,b\nnope,a,b\n")

        result = runner.invoke(app, ["batch", str(tracks)])

        assert result.exit_code == 1
        assert "Line 2" in result.output
