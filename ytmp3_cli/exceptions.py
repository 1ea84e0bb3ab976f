"""
Defines custom exceptions for the application to allow for more specific error handling.

Pipeline errors carry an `ErrorKind` so that a failed track can be reported as a
structured outcome rather than a bare traceback.
"""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Classification of a pipeline failure."""

    SOURCE_NOT_FOUND = "source_not_found"
    NETWORK_FAILURE = "network_failure"
    PROCESS_FAILURE = "process_failure"
    EMPTY_OUTPUT = "empty_output"
    QUALITY_UNAVAILABLE = "quality_unavailable"
    TRANSCODE_FAILED = "transcode_failed"
    NO_AVAILABLE_SOURCE = "no_available_source"
    CANCELLED = "cancelled"
    INTERNAL_ERROR = "internal_error"


TRANSIENT_KINDS = frozenset(
    {
        ErrorKind.NETWORK_FAILURE,
        ErrorKind.PROCESS_FAILURE,
        ErrorKind.EMPTY_OUTPUT,
        ErrorKind.TRANSCODE_FAILED,
    }
)


class YtMp3Error(Exception):
    """Base exception for all application-specific errors."""


class ConfigurationError(YtMp3Error):
    """Raised for issues related to configuration loading or validation."""


class InvalidQualityError(YtMp3Error):
    """Raised when an invalid quality tier is requested."""


class ScratchDirectoryError(YtMp3Error):
    """Raised when the process-wide scratch directory cannot be created."""


class BundleError(YtMp3Error):
    """Raised when a batch's files cannot be packed into an archive."""


class PipelineError(YtMp3Error):
    """
    Base class for failures raised while acquiring or transcoding a track.

    Subclasses set `kind` and whether the failure is worth retrying locally.
    """

    kind: ErrorKind = ErrorKind.INTERNAL_ERROR
    retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        detail: Optional[str] = None,
        retryable: Optional[bool] = None,
    ):
        super().__init__(message)
        self.detail = detail or message
        if retryable is not None:
            self.retryable = retryable


class SourceNotFoundError(PipelineError):
    """Raised when no audio representation exists for the identifier."""

    kind = ErrorKind.SOURCE_NOT_FOUND


class NetworkFailureError(PipelineError):
    """Raised for transient network errors talking to the source platform."""

    kind = ErrorKind.NETWORK_FAILURE
    retryable = True


class QualityUnavailableError(PipelineError):
    """Raised when a strategy cannot satisfy the requested quality tier."""

    kind = ErrorKind.QUALITY_UNAVAILABLE


class ProcessFailureError(PipelineError):
    """Raised when an external tool exits non-zero or produces no usable output."""

    kind = ErrorKind.PROCESS_FAILURE
    retryable = True

    def __init__(
        self,
        message: str,
        *,
        exit_code: Optional[int] = None,
        stderr_tail: str = "",
        retryable: Optional[bool] = None,
    ):
        detail = message
        if exit_code is not None:
            detail = f"{message} (exit code {exit_code})"
        if stderr_tail:
            detail = f"{detail}: {stderr_tail}"
        super().__init__(message, detail=detail, retryable=retryable)
        self.exit_code = exit_code
        self.stderr_tail = stderr_tail


class EmptyOutputError(ProcessFailureError):
    """Raised when a tool reports success but the output is missing or zero bytes."""

    kind = ErrorKind.EMPTY_OUTPUT


class TranscodeFailedError(ProcessFailureError):
    """Raised when the encoder fails its success oracle."""

    kind = ErrorKind.TRANSCODE_FAILED


class NoAvailableSourceError(PipelineError):
    """Raised when every acquisition strategy has been exhausted for a track."""

    kind = ErrorKind.NO_AVAILABLE_SOURCE

    def __init__(self, message: str, *, last_error: Optional[PipelineError] = None):
        detail = message
        if last_error is not None:
            detail = f"{message} Last error: {last_error.detail}"
        super().__init__(message, detail=detail)
        self.last_error = last_error


class PipelineCancelledError(PipelineError):
    """Raised when the batch a track belongs to has been cancelled."""

    kind = ErrorKind.CANCELLED
