"""
The quality ladder: an ordered set of tiers a strategy is asked to satisfy.
"""

from dataclasses import dataclass
from typing import Dict, List, Sequence

from ytmp3_cli.exceptions import InvalidQualityError


@dataclass(frozen=True)
class QualityTier:
    """A single rung of the ladder."""

    ordinal: int
    name: str
    bitrate_kbps: int
    min_source_kbps: int

    @property
    def short(self) -> str:
        return f"{self.bitrate_kbps}k"


# Mirrors the platform's audio quality codes, lowest first.
DEFAULT_TIERS = (
    QualityTier(1, "Low (32 kbps)", 32, 0),
    QualityTier(2, "Standard (64 kbps)", 64, 48),
    QualityTier(3, "High (128 kbps)", 128, 96),
    QualityTier(4, "Best (192 kbps)", 192, 128),
)


class QualityLadder:
    """Strictly ordered sequence of quality tiers with ascending bitrates."""

    def __init__(self, tiers: Sequence[QualityTier] = DEFAULT_TIERS):
        if not tiers:
            raise InvalidQualityError("A quality ladder needs at least one tier.")
        ordered = sorted(tiers, key=lambda t: t.ordinal)
        for lower, upper in zip(ordered, ordered[1:]):
            if upper.bitrate_kbps <= lower.bitrate_kbps:
                raise InvalidQualityError(
                    "Quality tiers must have strictly ascending bitrates."
                )
        self._tiers: Dict[int, QualityTier] = {t.ordinal: t for t in ordered}

    @property
    def lowest(self) -> QualityTier:
        return self._tiers[min(self._tiers)]

    @property
    def highest(self) -> QualityTier:
        return self._tiers[max(self._tiers)]

    @property
    def ordinals(self) -> List[int]:
        return sorted(self._tiers)

    def tier(self, ordinal: int) -> QualityTier:
        """Looks up a tier by ordinal, raising on unknown values."""
        try:
            return self._tiers[ordinal]
        except KeyError:
            raise InvalidQualityError(
                f"Unknown quality tier {ordinal}. Valid tiers: {self.ordinals}."
            ) from None

    def attempt_tiers(self, requested: int) -> List[QualityTier]:
        """
        Returns the tiers a strategy should try, in order: the requested tier,
        then the lowest tier once if the request was above it.
        """
        first = self.tier(requested)
        if first == self.lowest:
            return [first]
        return [first, self.lowest]

    def __iter__(self):
        return iter(self._tiers[o] for o in self.ordinals)

    def __len__(self) -> int:
        return len(self._tiers)


DEFAULT_LADDER = QualityLadder()
