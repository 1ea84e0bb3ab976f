"""
Dataclasses for tracking a batch's admission state and its final report.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Set, Tuple

from ytmp3_cli.models.track import (
    Delegated,
    Failure,
    PipelineOutcome,
    Success,
    TrackRequest,
)


class BatchStatus(str, Enum):
    """Lifecycle of a batch."""

    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


@dataclass
class BatchState:
    """
    Mutable admission bookkeeping, owned exclusively by one BatchController.
    """

    total: int = 0
    admitted: int = 0
    completed: int = 0
    in_flight: Set[TrackRequest] = field(default_factory=set)
    per_track_outcome: Dict[TrackRequest, PipelineOutcome] = field(
        default_factory=dict
    )
    peak_in_flight: int = 0

    def admit(self, request: TrackRequest) -> None:
        self.in_flight.add(request)
        self.admitted += 1
        self.peak_in_flight = max(self.peak_in_flight, len(self.in_flight))

    def finish(self, request: TrackRequest, outcome: PipelineOutcome) -> None:
        self.in_flight.discard(request)
        self.per_track_outcome[request] = outcome
        self.completed += 1

    @property
    def queued(self) -> int:
        return self.total - self.admitted


@dataclass
class BatchReport:
    """Aggregated per-track outcomes for a finished or cancelled batch."""

    status: BatchStatus
    entries: List[Tuple[TrackRequest, PipelineOutcome]] = field(default_factory=list)
    peak_in_flight: int = 0
    duration_s: float = 0.0
    duplicates_removed: int = 0

    @property
    def total(self) -> int:
        return len(self.entries)

    @property
    def outcomes(self) -> List[PipelineOutcome]:
        return [outcome for _, outcome in self.entries]

    @property
    def succeeded(self) -> List[Success]:
        return [o for o in self.outcomes if isinstance(o, Success)]

    @property
    def delegated(self) -> List[Delegated]:
        return [o for o in self.outcomes if isinstance(o, Delegated)]

    @property
    def failed(self) -> List[Failure]:
        return [o for o in self.outcomes if isinstance(o, Failure)]

    @property
    def cancelled(self) -> List[Failure]:
        return [o for o in self.failed if o.cancelled]

    @property
    def total_size_bytes(self) -> int:
        return sum(o.result.size_bytes for o in self.succeeded)

    def outcome_for(self, request: TrackRequest) -> Optional[PipelineOutcome]:
        for entry_request, outcome in self.entries:
            if entry_request == request:
                return outcome
        return None
