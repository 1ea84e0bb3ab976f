"""
Structured logging for pipeline events.

Each event goes to the standard `ytmp3_cli.events` logger as a one-line
`[event] key=value` message and, when a log directory is configured, to a
JSONL file that also carries the session context.
"""

import json
import logging
import time
import uuid
from datetime import datetime
from pathlib import Path
from typing import IO, Any, List, Optional

from ytmp3_cli.models.track import (
    AttemptRecord,
    Delegated,
    Failure,
    Success,
    TrackRequest,
)


class StructuredLogger:
    """
    Emits named events with keyword context.

    Usage:
        with StructuredLogger("ytmp3_cli.events", log_dir=Path("logs")) as events:
            events.info("track_completed", external_id="dQw4w9WgXcQ", size_bytes=4_512_000)
    """

    def __init__(
        self,
        name: str,
        log_dir: Optional[Path] = None,
        enable_json: bool = True,
        enable_console: bool = True,
    ):
        """
        Args:
            name: Name of the standard logger to write through
            log_dir: Directory for the JSONL file; None disables JSON output
            enable_json: Whether to write JSONL when `log_dir` is given
            enable_console: Whether to also write through the standard logger
        """
        self.name = name
        self.log_dir = log_dir
        self.enable_json = enable_json and log_dir is not None
        self.enable_console = enable_console
        self.json_log_path: Optional[Path] = None

        self._logger = logging.getLogger(name)
        self._json_file: Optional[IO[str]] = None
        if self.enable_json:
            log_dir.mkdir(parents=True, exist_ok=True)
            stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            self.json_log_path = log_dir / f"ytmp3_cli_{stamp}.jsonl"
            self._json_file = open(self.json_log_path, "a", encoding="utf-8")  # noqa: SIM115

        self._session_context: dict[str, Any] = {
            "session_id": uuid.uuid4().hex[:12],
            "session_started": datetime.fromtimestamp(time.time()).isoformat(),
        }

    def set_session_context(self, **kwargs) -> None:
        """Adds fields to every subsequent JSON entry."""
        self._session_context.update(kwargs)

    @staticmethod
    def _console_line(event: str, context: dict[str, Any]) -> str:
        # Nested values (attempt logs) only go to JSON
        fields = " ".join(
            f"{key}={value}"
            for key, value in context.items()
            if not isinstance(value, (list, dict))
        )
        return f"[{event}] {fields}" if fields else f"[{event}]"

    def _write_json(self, level: str, event: str, context: dict[str, Any]) -> None:
        if self._json_file is None or self._json_file.closed:
            return
        entry = {
            "timestamp": datetime.now().isoformat(),
            "level": level,
            "event": event,
            **self._session_context,
            **context,
        }
        try:
            self._json_file.write(json.dumps(entry, default=str) + "\n")
            self._json_file.flush()
        except OSError as e:
            self._logger.warning(f"Disabling JSON event log {self.json_log_path}: {e}")
            self._json_file.close()

    def _emit(self, level: int, event: str, **context) -> None:
        if self.enable_console:
            self._logger.log(level, self._console_line(event, context))
        if self.enable_json:
            self._write_json(logging.getLevelName(level), event, context)

    def debug(self, event: str, **context) -> None:
        self._emit(logging.DEBUG, event, **context)

    def info(self, event: str, **context) -> None:
        self._emit(logging.INFO, event, **context)

    def warning(self, event: str, **context) -> None:
        self._emit(logging.WARNING, event, **context)

    def error(self, event: str, **context) -> None:
        self._emit(logging.ERROR, event, **context)

    def close(self) -> None:
        if self._json_file is not None and not self._json_file.closed:
            self._json_file.close()

    def __enter__(self) -> "StructuredLogger":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


def _attempts(log: List[AttemptRecord]) -> List[dict]:
    return [record.to_dict() for record in log]


class PipelineEventLogger:
    """Specialized logger for per-track and per-batch pipeline events."""

    def __init__(self, logger: StructuredLogger):
        self.logger = logger

    def track_started(self, request: TrackRequest, quality: int):
        self.logger.debug(
            "track_started",
            external_id=request.external_id,
            title=request.title,
            artist=request.artist,
            quality=quality,
        )

    def attempt_failed(self, request: TrackRequest, record: AttemptRecord):
        self.logger.debug(
            "attempt_failed", external_id=request.external_id, **record.to_dict()
        )

    def track_completed(self, outcome: Success, duration_s: float):
        self.logger.info(
            "track_completed",
            external_id=outcome.request.external_id,
            filename=outcome.filename,
            strategy=outcome.strategy.value,
            tier=outcome.tier,
            size_bytes=outcome.result.size_bytes,
            duration_s=round(duration_s, 2),
            attempts=_attempts(outcome.attempt_log),
        )

    def track_delegated(self, outcome: Delegated):
        self.logger.info(
            "track_delegated",
            external_id=outcome.request.external_id,
            service=outcome.target.service,
            url=outcome.target.url,
            attempts=_attempts(outcome.attempt_log),
        )

    def track_failed(self, outcome: Failure):
        """Failures are errors unless the batch was cancelled."""
        emit = self.logger.warning if outcome.cancelled else self.logger.error
        emit(
            "track_failed",
            external_id=outcome.request.external_id,
            kind=outcome.kind.value,
            detail=outcome.detail,
            last_error_kind=(
                outcome.last_error_kind.value if outcome.last_error_kind else None
            ),
            attempts=_attempts(outcome.attempt_log),
        )

    def batch_started(self, total: int, concurrency: int, duplicates_removed: int):
        self.logger.info(
            "batch_started",
            total=total,
            concurrency=concurrency,
            duplicates_removed=duplicates_removed,
        )

    def batch_completed(
        self,
        status: str,
        succeeded: int,
        delegated: int,
        failed: int,
        cancelled: int,
        peak_in_flight: int,
        duration_s: float,
    ):
        self.logger.info(
            "batch_completed",
            status=status,
            succeeded=succeeded,
            delegated=delegated,
            failed=failed,
            cancelled=cancelled,
            peak_in_flight=peak_in_flight,
            duration_s=round(duration_s, 2),
        )


def create_structured_logger(
    log_dir: Optional[Path] = None,
    enable_json: bool = False,
    enable_console: bool = True,
) -> tuple[StructuredLogger, PipelineEventLogger]:
    """
    Create the structured loggers.

    Returns:
        Tuple of (base_logger, event_logger)
    """
    base = StructuredLogger(
        "ytmp3_cli.events",
        log_dir=log_dir,
        enable_json=enable_json,
        enable_console=enable_console,
    )
    return base, PipelineEventLogger(base)
