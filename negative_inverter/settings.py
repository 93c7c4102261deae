"""Conversion parameters and the presets the command line starts from."""
from __future__ import annotations

import dataclasses
from typing import Dict

from .mapping import DEFAULT_SIGMOID_GAIN, TONE_CURVES
from .statistics import STATISTICS_METHODS


@dataclasses.dataclass
class ConversionSettings:
    """Holds the metering and tone curve parameters for a conversion run."""

    sample_fraction: float = 0.8
    lowlights: float = 0.01
    highlights: float = 0.99
    tone_curve: str = "linear"
    center_weighted: bool = False
    statistics: str = "exact"
    sigmoid_gain: float = DEFAULT_SIGMOID_GAIN

    def __post_init__(self) -> None:
        self._validate()

    def _validate(self) -> None:
        if not 0.0 < self.sample_fraction <= 1.0:
            raise ValueError(f"sample_fraction must be in (0, 1], got {self.sample_fraction}")
        if not 0.0 <= self.lowlights <= 1.0:
            raise ValueError(f"lowlights must be between 0 and 1, got {self.lowlights}")
        if not 0.0 <= self.highlights <= 1.0:
            raise ValueError(f"highlights must be between 0 and 1, got {self.highlights}")
        if self.lowlights >= self.highlights:
            raise ValueError(
                f"lowlights ({self.lowlights}) must be lower than highlights ({self.highlights})"
            )
        if self.tone_curve not in TONE_CURVES:
            raise ValueError(f"tone_curve must be one of {TONE_CURVES}, got {self.tone_curve!r}")
        if self.statistics not in STATISTICS_METHODS:
            raise ValueError(
                f"statistics must be one of {STATISTICS_METHODS}, got {self.statistics!r}"
            )
        if self.sigmoid_gain <= 0:
            raise ValueError(f"sigmoid_gain must be positive, got {self.sigmoid_gain}")


CONVERSION_PRESETS: Dict[str, ConversionSettings] = {
    "standard": ConversionSettings(),
    "s-curve": ConversionSettings(tone_curve="sigmoid"),
    "center-weighted": ConversionSettings(sample_fraction=0.6, center_weighted=True),
}

DEFAULT_PRESET_NAME = "standard"


__all__ = ["CONVERSION_PRESETS", "ConversionSettings", "DEFAULT_PRESET_NAME"]
