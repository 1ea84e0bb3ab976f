"""
Acquisition Layer.

Each strategy is one self-contained way of obtaining raw audio for a track.
The `AcquisitionChain` tries them in configured priority order.
"""

from .base import AcquisitionStrategy, StrategyResult
from .binary import ExternalBinaryStrategy
from .chain import STRATEGY_REGISTRY, AcquisitionChain
from .library import LibraryExtractionStrategy
from .redirect import HostedConverterStrategy

__all__ = [
    "STRATEGY_REGISTRY",
    "AcquisitionChain",
    "AcquisitionStrategy",
    "ExternalBinaryStrategy",
    "HostedConverterStrategy",
    "LibraryExtractionStrategy",
    "StrategyResult",
]
