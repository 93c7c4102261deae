"""Per-channel sample statistics used to locate black and white points."""
from __future__ import annotations

import math
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np

from .errors import EmptyStatistics

CHANNEL_MAX = 65535
HISTOGRAM_BUCKETS = CHANNEL_MAX + 1

STATISTICS_METHODS = ("exact", "histogram")


def _nearest_rank(p: float, count: int) -> int:
    if not 0.0 <= p <= 1.0:
        raise ValueError(f"percentile must be between 0 and 1, got {p}")
    rank = int(math.floor(p * (count - 1) + 0.5))
    return min(max(rank, 0), count - 1)


def _as_samples(values) -> np.ndarray:
    samples = np.asarray(values).reshape(-1)
    if samples.size and (samples.min() < 0 or samples.max() > CHANNEL_MAX):
        raise ValueError(f"channel samples must lie in [0, {CHANNEL_MAX}]")
    return samples.astype(np.uint16, copy=False)


class ChannelStatistics:
    """Exact multiset of channel samples answering nearest-rank percentiles.

    Samples are kept in insertion order until the first query, sorted once and
    cached. Accumulating more samples afterwards drops the cached order.
    """

    def __init__(self) -> None:
        self._chunks: List[np.ndarray] = []
        self._pending: List[int] = []
        self._count = 0
        self._sorted: Optional[np.ndarray] = None

    def __len__(self) -> int:
        return self._count

    def add(self, value: int) -> None:
        if not 0 <= value <= CHANNEL_MAX:
            raise ValueError(f"channel sample must lie in [0, {CHANNEL_MAX}], got {value}")
        self._pending.append(int(value))
        self._count += 1
        self._sorted = None

    def extend(self, values) -> None:
        samples = _as_samples(values)
        if samples.size == 0:
            return
        self._chunks.append(samples.copy())
        self._count += int(samples.size)
        self._sorted = None

    def _ordered(self) -> np.ndarray:
        if self._sorted is None:
            parts = list(self._chunks)
            if self._pending:
                parts.append(np.asarray(self._pending, dtype=np.uint16))
            merged = np.concatenate(parts) if parts else np.empty(0, dtype=np.uint16)
            self._sorted = np.sort(merged, kind="stable")
            self._chunks = [self._sorted]
            self._pending = []
        return self._sorted

    def percentile(self, p: float) -> int:
        """Return the sample at fractional rank ``p`` (``0`` = min, ``1`` = max)."""

        if self._count == 0:
            raise EmptyStatistics("cannot compute a percentile without samples")
        ordered = self._ordered()
        return int(ordered[_nearest_rank(p, self._count)])


class HistogramChannelStatistics:
    """Fixed-size histogram alternative to :class:`ChannelStatistics`.

    Memory stays constant regardless of the sample count; percentiles are read
    from the cumulative counts and match the exact strategy for integer input.
    """

    def __init__(self) -> None:
        self._counts = np.zeros(HISTOGRAM_BUCKETS, dtype=np.int64)
        self._count = 0
        self._cumulative: Optional[np.ndarray] = None

    def __len__(self) -> int:
        return self._count

    def add(self, value: int) -> None:
        if not 0 <= value <= CHANNEL_MAX:
            raise ValueError(f"channel sample must lie in [0, {CHANNEL_MAX}], got {value}")
        self._counts[int(value)] += 1
        self._count += 1
        self._cumulative = None

    def extend(self, values) -> None:
        samples = _as_samples(values)
        if samples.size == 0:
            return
        self._counts += np.bincount(samples, minlength=HISTOGRAM_BUCKETS)
        self._count += int(samples.size)
        self._cumulative = None

    def percentile(self, p: float) -> int:
        if self._count == 0:
            raise EmptyStatistics("cannot compute a percentile without samples")
        rank = _nearest_rank(p, self._count)
        if self._cumulative is None:
            self._cumulative = np.cumsum(self._counts)
        return int(np.searchsorted(self._cumulative, rank, side="right"))


Statistics = Union[ChannelStatistics, HistogramChannelStatistics]


def new_statistics(method: str = "exact") -> Statistics:
    if method == "exact":
        return ChannelStatistics()
    if method == "histogram":
        return HistogramChannelStatistics()
    raise ValueError(f"Unknown statistics method: {method!r} (choose from {STATISTICS_METHODS})")


class Palette:
    """Red, green and blue statistics accumulated from the same pixels."""

    def __init__(self, method: str = "exact") -> None:
        self.method = method
        self.red = new_statistics(method)
        self.green = new_statistics(method)
        self.blue = new_statistics(method)

    @property
    def channels(self) -> Tuple[Statistics, Statistics, Statistics]:
        return self.red, self.green, self.blue

    def __len__(self) -> int:
        return len(self.red)

    def add(self, pixel: Sequence[int]) -> None:
        """Accumulate one pixel; components beyond the third (alpha) are ignored."""

        if len(pixel) < 3:
            raise ValueError(f"pixel needs three channels, got {len(pixel)}")
        self.red.add(pixel[0])
        self.green.add(pixel[1])
        self.blue.add(pixel[2])

    def extend(self, block: np.ndarray) -> None:
        """Accumulate every pixel of an ``H x W x C`` array with ``C >= 3``."""

        block = np.asarray(block)
        if block.ndim != 3 or block.shape[-1] < 3:
            raise ValueError(f"expected an array of RGB pixels, got shape {block.shape}")
        pixels = block.reshape(-1, block.shape[-1])
        for index, stats in enumerate(self.channels):
            stats.extend(pixels[:, index])


__all__ = [
    "CHANNEL_MAX",
    "ChannelStatistics",
    "HISTOGRAM_BUCKETS",
    "HistogramChannelStatistics",
    "Palette",
    "STATISTICS_METHODS",
    "new_statistics",
]
