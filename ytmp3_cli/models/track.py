"""
Data structures that flow through a single track's pipeline run.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from ytmp3_cli.exceptions import TRANSIENT_KINDS, ErrorKind

WATCH_URL = "https://www.youtube.com/watch?v={video_id}"


class StrategyKind(str, Enum):
    """The closed set of acquisition strategy variants."""

    LIBRARY = "library"
    BINARY = "binary"
    REDIRECT = "redirect"


class PipelineState(str, Enum):
    """Externally observed states of a per-track pipeline."""

    PENDING = "pending"
    RESOLVING = "resolving"
    REDIRECTING = "redirecting"
    TRANSCODING = "transcoding"
    COMPLETE = "complete"
    FAILED = "failed"


@dataclass(frozen=True)
class TrackRequest:
    """An immutable request to acquire one track."""

    external_id: str
    title: str = "track"
    artist: str = ""
    quality_hint: Optional[int] = None
    album: str = ""
    artwork_url: str = ""

    @property
    def source_url(self) -> str:
        return WATCH_URL.format(video_id=self.external_id)

    @property
    def label(self) -> str:
        return f"{self.artist} - {self.title}" if self.artist else self.title


@dataclass
class AcquisitionResult:
    """Raw audio produced by exactly one strategy attempt."""

    raw_bytes: bytes = field(repr=False)
    container_format: str
    source_strategy: StrategyKind
    tier: int

    @property
    def size_bytes(self) -> int:
        return len(self.raw_bytes)


@dataclass(frozen=True)
class RedirectTarget:
    """A third-party service the caller should be sent to instead of bytes."""

    url: str
    service: str


@dataclass
class TranscodeResult:
    """Terminal success payload for one track."""

    audio_bytes: bytes = field(repr=False)
    mime_type: str
    size_bytes: int


@dataclass(frozen=True)
class AttemptRecord:
    """One structured log entry for a single strategy attempt."""

    strategy: StrategyKind
    tier: int
    attempt: int
    succeeded: bool
    error_kind: Optional[ErrorKind] = None
    detail: str = ""
    elapsed_s: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "strategy": self.strategy.value,
            "tier": self.tier,
            "attempt": self.attempt,
            "succeeded": self.succeeded,
            "error_kind": self.error_kind.value if self.error_kind else None,
            "detail": self.detail,
            "elapsed_s": round(self.elapsed_s, 3),
        }


@dataclass
class Success:
    """The track was acquired and transcoded."""

    request: TrackRequest
    result: TranscodeResult
    strategy: StrategyKind
    tier: int
    filename: str
    attempt_log: List[AttemptRecord] = field(default_factory=list)

    state = PipelineState.COMPLETE
    ok = True


@dataclass
class Delegated:
    """The track was handed off to an external converter service."""

    request: TrackRequest
    target: RedirectTarget
    attempt_log: List[AttemptRecord] = field(default_factory=list)

    state = PipelineState.COMPLETE
    ok = True


@dataclass
class Failure:
    """The track's pipeline terminated without a usable result."""

    request: TrackRequest
    kind: ErrorKind
    detail: str
    attempt_log: List[AttemptRecord] = field(default_factory=list)
    last_error_kind: Optional[ErrorKind] = None

    state = PipelineState.FAILED
    ok = False

    @property
    def attempts(self) -> int:
        return len(self.attempt_log)

    @property
    def cancelled(self) -> bool:
        return self.kind == ErrorKind.CANCELLED

    @property
    def retry_later(self) -> bool:
        """True when the last underlying error was transient."""
        return not self.cancelled and self.last_error_kind in TRANSIENT_KINDS

    @property
    def unavailable(self) -> bool:
        if self.cancelled or self.retry_later:
            return False
        return self.kind in (ErrorKind.NO_AVAILABLE_SOURCE, ErrorKind.SOURCE_NOT_FOUND)

    @property
    def manual_url(self) -> str:
        return self.request.source_url


PipelineOutcome = Union[Success, Delegated, Failure]
