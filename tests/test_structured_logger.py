"""Tests for JSONL pipeline event logging"""

import json
import logging

from helpers import make_failure, make_success
from ytmp3_cli.exceptions import ErrorKind
from ytmp3_cli.models.track import AttemptRecord, StrategyKind
from ytmp3_cli.utils.structured_logger import StructuredLogger, create_structured_logger


def read_entries(path):
    return [json.loads(line) for line in path.read_text().splitlines()]


class TestStructuredLogger:
    def test_json_disabled_without_directory(self):
        logger = StructuredLogger("test.nojson")
        assert not logger.enable_json
        assert logger.json_log_path is None
        logger.info("ignored", value=1)
        logger.close()

    def test_entries_carry_session_context(self, tmp_path):
        with StructuredLogger("test.json", log_dir=tmp_path, enable_console=False) as logger:
            logger.set_session_context(command="batch")
            logger.warning("something", external_id="abc", extra={"k": 1})

        (entry,) = read_entries(logger.json_log_path)
        assert entry["event"] == "something"
        assert entry["level"] == "WARNING"
        assert entry["command"] == "batch"
        assert entry["external_id"] == "abc"
        assert "session_id" in entry

    def test_console_line_skips_structured_values(self, caplog):
        logger = StructuredLogger("test.console")
        with caplog.at_level(logging.INFO, logger="test.console"):
            logger.info("track_completed", external_id="abc", attempts=[{"x": 1}])
        assert "[track_completed] external_id=abc" in caplog.text
        assert "attempts" not in caplog.text


class TestPipelineEventLogger:
    def test_track_events(self, tmp_path, track_request):
        base, events = create_structured_logger(
            log_dir=tmp_path, enable_json=True, enable_console=False
        )
        record = AttemptRecord(
            strategy=StrategyKind.LIBRARY,
            tier=4,
            attempt=1,
            succeeded=False,
            error_kind=ErrorKind.NETWORK_FAILURE,
            detail="reset",
        )
        events.attempt_failed(track_request, record)
        events.track_completed(make_success(track_request), 1.234)
        events.track_failed(make_failure(track_request, ErrorKind.CANCELLED))
        base.close()

        attempt, completed, failed = read_entries(base.json_log_path)
        assert attempt["error_kind"] == "network_failure"
        assert attempt["strategy"] == "library"
        assert completed["size_bytes"] == len(b"mp3-bytes")
        assert completed["duration_s"] == 1.23
        assert failed["level"] == "WARNING"
        assert failed["kind"] == "cancelled"
