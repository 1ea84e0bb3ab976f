"""Shared test doubles"""

from ytmp3_cli.acquisition.base import AcquisitionStrategy
from ytmp3_cli.exceptions import ErrorKind
from ytmp3_cli.models.track import (
    AcquisitionResult,
    Failure,
    RedirectTarget,
    StrategyKind,
    Success,
    TrackRequest,
    TranscodeResult,
)
from ytmp3_cli.storage.scratch import ScratchDirectory

OK = "ok"


def scratch_files(scratch: ScratchDirectory) -> list:
    if not scratch.root.exists():
        return []
    return sorted(p.name for p in scratch.root.iterdir())


class FakeStrategy(AcquisitionStrategy):
    """
    Plays back a script of steps, one per call. A step is an exception to
    raise, OK to return raw audio at the attempted tier, or a value to return.
    The last step repeats once the script runs out.
    """

    def __init__(self, kind: StrategyKind, steps):
        self.kind = kind
        self.steps = list(steps)
        self.calls = []

    @classmethod
    def from_config(cls, config, *, scratch, downloader):
        return cls(StrategyKind.LIBRARY, [OK])

    async def acquire(self, request, tier, cancel=None):
        self.calls.append(tier.ordinal)
        step = self.steps.pop(0) if len(self.steps) > 1 else self.steps[0]
        if isinstance(step, BaseException):
            raise step
        if step == OK:
            return AcquisitionResult(
                raw_bytes=b"\x00raw-audio" * 64,
                container_format="webm",
                source_strategy=self.kind,
                tier=tier.ordinal,
            )
        return step


def redirect_target(service="ytmp3.cc"):
    return RedirectTarget(url=f"https://{service}/download/x", service=service)


def make_success(request: TrackRequest, payload: bytes = b"mp3-bytes") -> Success:
    return Success(
        request=request,
        result=TranscodeResult(
            audio_bytes=payload, mime_type="audio/mpeg", size_bytes=len(payload)
        ),
        strategy=StrategyKind.LIBRARY,
        tier=4,
        filename=f"{request.title}.mp3",
    )


def make_failure(request: TrackRequest, kind=ErrorKind.NO_AVAILABLE_SOURCE) -> Failure:
    return Failure(request=request, kind=kind, detail="failed", last_error_kind=kind)


class FakeDownloader:
    """Serves canned bytes and probe answers keyed by URL."""

    def __init__(self, payloads=None, reachable=()):
        self.payloads = dict(payloads or {})
        self.reachable = set(reachable)
        self.fetched = []
        self.probed = []

    async def fetch_bytes(self, url, headers=None, cancel=None, warn_below=0):
        self.fetched.append((url, headers))
        payload = self.payloads[url]
        if isinstance(payload, BaseException):
            raise payload
        return payload

    async def probe(self, url, timeout=10.0):
        self.probed.append(url)
        return url in self.reachable
