"""
Hosted-converter redirect: hands the track to a third-party web converter
instead of producing bytes locally.
"""

import logging
from typing import List, Optional, Sequence, Tuple

from ytmp3_cli.core.cancellation import CancelToken
from ytmp3_cli.exceptions import SourceNotFoundError
from ytmp3_cli.media.downloader import Downloader
from ytmp3_cli.models.quality import QualityTier
from ytmp3_cli.models.track import RedirectTarget, StrategyKind, TrackRequest

from .base import AcquisitionStrategy

log = logging.getLogger(__name__)


class HostedConverterStrategy(AcquisitionStrategy):
    """
    Probes each configured converter in order and redirects to the first one
    that answers a HEAD request with HTTP 200.
    """

    kind = StrategyKind.REDIRECT

    def __init__(
        self,
        services: Sequence[Tuple[str, str]],
        downloader: Optional[Downloader] = None,
        probe_timeout: float = 10.0,
    ):
        self.services: List[Tuple[str, str]] = list(services)
        self.downloader = downloader or Downloader()
        self.probe_timeout = probe_timeout

    @classmethod
    def from_config(cls, config, *, scratch, downloader):
        return cls(
            config.converter_service_pairs(),
            downloader=downloader,
            probe_timeout=config.probe_timeout,
        )

    async def acquire(
        self,
        request: TrackRequest,
        tier: QualityTier,
        cancel: Optional[CancelToken] = None,
    ) -> RedirectTarget:
        self.require_id(request)

        for service, template in self.services:
            if cancel:
                cancel.raise_if_cancelled()
            url = template.format(video_id=request.external_id)
            probe = self.downloader.probe(url, timeout=self.probe_timeout)
            reachable = await cancel.race(probe) if cancel else await probe
            if reachable:
                log.debug(f"Redirecting {request.external_id} to {service}")
                return RedirectTarget(url=url, service=service)
            log.debug(f"Converter {service} is not reachable")

        raise SourceNotFoundError(
            f"No converter service is reachable for {request.external_id}.",
            detail=f"Probed: {', '.join(name for name, _ in self.services) or 'none'}",
        )

    def __repr__(self) -> str:
        return f"HostedConverterStrategy(services={[s for s, _ in self.services]})"
