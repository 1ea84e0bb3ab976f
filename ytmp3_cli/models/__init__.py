"""
Data Models Layer.

This package contains the Pydantic configuration model and the dataclasses that
define the core data structures used throughout the pipeline.
"""

from .config import PipelineConfig
from .quality import DEFAULT_LADDER, QualityLadder, QualityTier
from .stats import BatchReport, BatchState, BatchStatus
from .track import (
    AcquisitionResult,
    AttemptRecord,
    Delegated,
    Failure,
    PipelineOutcome,
    PipelineState,
    RedirectTarget,
    StrategyKind,
    Success,
    TrackRequest,
    TranscodeResult,
)

__all__ = [
    "AcquisitionResult",
    "AttemptRecord",
    "BatchReport",
    "BatchState",
    "BatchStatus",
    "DEFAULT_LADDER",
    "Delegated",
    "Failure",
    "PipelineConfig",
    "PipelineOutcome",
    "PipelineState",
    "QualityLadder",
    "QualityTier",
    "RedirectTarget",
    "StrategyKind",
    "Success",
    "TrackRequest",
    "TranscodeResult",
]
