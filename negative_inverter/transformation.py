"""Black/white point estimation and tone curve construction."""
from __future__ import annotations

import dataclasses
import logging
from typing import List, Tuple

from .mapping import DEFAULT_SIGMOID_GAIN, LinearMapping, SigmoidMapping, ToneMapping
from .statistics import Palette

LOGGER = logging.getLogger("negative_inverter")

CHANNEL_NAMES = ("red", "green", "blue")


@dataclasses.dataclass(frozen=True)
class ToneRange:
    """Sampled black point (``low``) and white point (``high``) of one channel.

    ``low <= high`` is expected but not enforced; see :mod:`.mapping` for how
    degenerate and inverted ranges are handled.
    """

    low: int
    high: int

    @property
    def is_degenerate(self) -> bool:
        return self.low == self.high

    @property
    def is_inverted(self) -> bool:
        return self.low > self.high


@dataclasses.dataclass(frozen=True)
class ToneTransformation:
    """Per-channel tone ranges plus the steepness consumed by the S-curve."""

    red: ToneRange
    green: ToneRange
    blue: ToneRange
    steepness: float

    @classmethod
    def build(cls, palette: Palette, low_cut: float, high_cut: float) -> "ToneTransformation":
        """Read the ``low_cut`` and ``high_cut`` percentiles of every channel.

        Args:
            palette: Fully accumulated statistics of the metering region.
            low_cut: Fractional rank that becomes the black point (e.g. ``0.01``).
            high_cut: Fractional rank that becomes the white point (e.g. ``0.99``).

        Raises:
            EmptyStatistics: If the palette holds no samples.
        """
        ranges = [
            ToneRange(low=stats.percentile(low_cut), high=stats.percentile(high_cut))
            for stats in palette.channels
        ]
        transformation = cls(ranges[0], ranges[1], ranges[2], low_cut - high_cut)
        LOGGER.debug("Tone ranges: %s", transformation)
        return transformation

    @property
    def ranges(self) -> Tuple[ToneRange, ToneRange, ToneRange]:
        return self.red, self.green, self.blue

    def degenerate_channels(self) -> List[str]:
        return [
            name
            for name, tone_range in zip(CHANNEL_NAMES, self.ranges)
            if tone_range.is_degenerate or tone_range.is_inverted
        ]

    def to_linear(self) -> LinearMapping:
        return LinearMapping(self.ranges)

    def to_sigmoid(self, gain: float = DEFAULT_SIGMOID_GAIN) -> SigmoidMapping:
        return SigmoidMapping(self.ranges, self.steepness, gain)

    def to_mapping(self, curve: str, *, gain: float = DEFAULT_SIGMOID_GAIN) -> ToneMapping:
        if curve == "linear":
            return self.to_linear()
        if curve == "sigmoid":
            return self.to_sigmoid(gain)
        raise ValueError(f"Unknown tone curve: {curve!r}")


__all__ = ["CHANNEL_NAMES", "ToneRange", "ToneTransformation"]
