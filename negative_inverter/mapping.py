"""Tone curves that invert a negative and stretch it to the full output range.

Both curves work channel by channel. For a sampled window ``[low, high]`` the
position of a value inside the window is reversed, so ``high`` (dense negative,
bright highlight on the scan) becomes black and ``low`` becomes white:

    t = clip((high - v) / (high - low), 0, 1)

:class:`LinearMapping` scales ``t`` straight to the output range.
:class:`SigmoidMapping` passes it through a logistic curve rescaled to hit
exactly 0 and 1 at the window edges, which softens the roll-off into shadows
and highlights while keeping values outside the window clamped.

Degenerate windows never divide by zero: ``low == high`` produces a flat black
channel and ``low > high`` falls back to a plain inversion of the full range.
"""
from __future__ import annotations

import dataclasses
import logging
from typing import TYPE_CHECKING, Tuple, Union

import numpy as np

from .statistics import CHANNEL_MAX

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .transformation import ToneRange

LOGGER = logging.getLogger("negative_inverter")

DEFAULT_SIGMOID_GAIN = 8.0
_MIN_STEEPNESS = 1e-6
_SPAN_EPSILON = float(np.finfo(np.float64).eps)


def _window_position(values: np.ndarray, tone_range: "ToneRange") -> np.ndarray:
    """Reversed, clamped position of ``values`` inside the channel window."""

    working = np.asarray(values, dtype=np.float64)
    low = float(tone_range.low)
    high = float(tone_range.high)
    if high == low:
        return np.zeros_like(working)
    if high < low:
        low, high = 0.0, float(CHANNEL_MAX)
    return np.clip((high - working) / (high - low), 0.0, 1.0)


def _logistic(x):
    return 0.5 * (1.0 + np.tanh(0.5 * x))


def _to_channel(t: np.ndarray) -> np.ndarray:
    return np.round(np.clip(t, 0.0, 1.0) * CHANNEL_MAX).astype(np.uint16)


def _apply_curves(image: np.ndarray, curve, channels: int) -> np.ndarray:
    source = np.asarray(image)
    if source.ndim != 3 or source.shape[2] < channels:
        raise ValueError(f"expected an H x W x {channels} image, got shape {source.shape}")
    LOGGER.debug("Mapping %sx%s image through %s curves", source.shape[1], source.shape[0], channels)
    output = np.empty(source.shape[:2] + (channels,), dtype=np.uint16)
    for index in range(channels):
        output[:, :, index] = curve(index, source[:, :, index])
    return output


@dataclasses.dataclass(frozen=True)
class LinearMapping:
    """Straight inversion and stretch of each channel window."""

    ranges: Tuple["ToneRange", "ToneRange", "ToneRange"]

    name = "linear"

    def curve(self, channel: int, values) -> np.ndarray:
        return _to_channel(_window_position(values, self.ranges[channel]))

    def map_value(self, channel: int, value: int) -> int:
        return int(self.curve(channel, np.asarray([value]))[0])

    def apply(self, image: np.ndarray) -> np.ndarray:
        """Return a new ``uint16`` image with every pixel mapped; ``image`` is untouched."""

        return _apply_curves(image, self.curve, len(self.ranges))


@dataclasses.dataclass(frozen=True)
class SigmoidMapping:
    """Logistic S-curve over each channel window.

    The slope is ``gain / |steepness|``; ``steepness`` is the (negative)
    difference between the low and high percentile cut-offs, so a wider
    metering window yields a gentler curve.
    """

    ranges: Tuple["ToneRange", "ToneRange", "ToneRange"]
    steepness: float
    gain: float = DEFAULT_SIGMOID_GAIN

    name = "sigmoid"

    @property
    def slope(self) -> float:
        magnitude = abs(self.steepness)
        if magnitude < _MIN_STEEPNESS:
            return self.gain
        return self.gain / magnitude

    def curve(self, channel: int, values) -> np.ndarray:
        u = _window_position(values, self.ranges[channel])
        tone_range = self.ranges[channel]
        if tone_range.low == tone_range.high:
            return _to_channel(u)
        k = self.slope
        lower = _logistic(-0.5 * k)
        upper = _logistic(0.5 * k)
        if upper - lower < _SPAN_EPSILON:
            # A vanishing slope flattens the logistic into a straight line.
            return _to_channel(u)
        logistic = _logistic(k * (u - 0.5))
        return _to_channel((logistic - lower) / (upper - lower))

    def map_value(self, channel: int, value: int) -> int:
        return int(self.curve(channel, np.asarray([value]))[0])

    def apply(self, image: np.ndarray) -> np.ndarray:
        """Return a new ``uint16`` image with every pixel mapped; ``image`` is untouched."""

        return _apply_curves(image, self.curve, len(self.ranges))


ToneMapping = Union[LinearMapping, SigmoidMapping]

TONE_CURVES = ("linear", "sigmoid")


__all__ = [
    "DEFAULT_SIGMOID_GAIN",
    "LinearMapping",
    "SigmoidMapping",
    "TONE_CURVES",
    "ToneMapping",
]
