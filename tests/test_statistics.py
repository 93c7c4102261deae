from __future__ import annotations

import sys
from pathlib import Path

import pytest
from hypothesis import given, strategies as st

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))

np = pytest.importorskip("numpy")

from negative_inverter.errors import EmptyStatistics  # noqa: E402  # pylint: disable=wrong-import-position
from negative_inverter.statistics import (  # noqa: E402  # pylint: disable=wrong-import-position
    ChannelStatistics,
    HistogramChannelStatistics,
    Palette,
    new_statistics,
)

STRATEGIES = [ChannelStatistics, HistogramChannelStatistics]


@pytest.mark.parametrize("factory", STRATEGIES)
def test_percentile_on_empty_statistics_raises(factory):
    stats = factory()

    with pytest.raises(EmptyStatistics):
        stats.percentile(0.5)


@pytest.mark.parametrize("factory", STRATEGIES)
def test_median_of_uniform_samples(factory):
    rng = np.random.default_rng(7)
    stats = factory()
    stats.extend(rng.integers(0, 65536, size=20000))

    assert stats.percentile(0.5) == pytest.approx(32768, abs=1200)


@pytest.mark.parametrize("factory", STRATEGIES)
def test_extremes_are_min_and_max(factory):
    stats = factory()
    stats.extend(np.array([500, 20, 7000, 300], dtype=np.uint16))

    assert stats.percentile(0.0) == 20
    assert stats.percentile(1.0) == 7000
    assert len(stats) == 4


@pytest.mark.parametrize("factory", STRATEGIES)
def test_nearest_rank_selection(factory):
    stats = factory()
    for value in (40, 10, 30, 20, 50):
        stats.add(value)

    assert stats.percentile(0.25) == 20
    assert stats.percentile(0.5) == 30
    assert stats.percentile(0.74) == 40


@pytest.mark.parametrize("factory", STRATEGIES)
def test_repeated_queries_are_stable(factory):
    stats = factory()
    stats.extend(np.arange(100, dtype=np.uint16)[::-1])

    first = [stats.percentile(p) for p in (0.01, 0.5, 0.99)]
    second = [stats.percentile(p) for p in (0.01, 0.5, 0.99)]

    assert first == second == [1, 50, 98]


def test_adding_after_query_refreshes_order():
    stats = ChannelStatistics()
    stats.extend([10, 20])
    assert stats.percentile(1.0) == 20

    stats.add(90)

    assert stats.percentile(1.0) == 90
    assert len(stats) == 3


@pytest.mark.parametrize("factory", STRATEGIES)
@pytest.mark.parametrize("p", [-0.1, 1.1])
def test_percentile_outside_unit_interval_rejected(factory, p):
    stats = factory()
    stats.add(1)

    with pytest.raises(ValueError):
        stats.percentile(p)


@pytest.mark.parametrize("factory", STRATEGIES)
def test_out_of_domain_samples_rejected(factory):
    stats = factory()

    with pytest.raises(ValueError):
        stats.add(70000)
    with pytest.raises(ValueError):
        stats.extend([-1, 3])


def test_unknown_statistics_method():
    with pytest.raises(ValueError):
        new_statistics("median-of-medians")


@given(
    samples=st.lists(st.integers(min_value=0, max_value=65535), min_size=1, max_size=200),
    cuts=st.lists(st.floats(min_value=0.0, max_value=1.0), min_size=2, max_size=6),
)
def test_percentile_is_monotonic_and_strategies_agree(samples, cuts):
    exact = ChannelStatistics()
    histogram = HistogramChannelStatistics()
    exact.extend(samples)
    histogram.extend(samples)

    ordered_cuts = sorted(cuts)
    exact_values = [exact.percentile(p) for p in ordered_cuts]
    histogram_values = [histogram.percentile(p) for p in ordered_cuts]

    assert exact_values == sorted(exact_values)
    assert exact_values == histogram_values
    assert exact.percentile(0.0) <= exact.percentile(0.5) <= exact.percentile(1.0)


def test_palette_add_splits_channels_and_ignores_alpha():
    palette = Palette()
    palette.add((100, 200, 300, 65535))
    palette.add((50, 250, 350))

    assert len(palette) == 2
    assert palette.red.percentile(0.0) == 50
    assert palette.green.percentile(1.0) == 250
    assert palette.blue.percentile(1.0) == 350


def test_palette_extend_accumulates_block():
    block = np.zeros((2, 3, 3), dtype=np.uint16)
    block[..., 0] = 10
    block[..., 1] = np.arange(6, dtype=np.uint16).reshape(2, 3)
    block[..., 2] = 65535

    palette = Palette("histogram")
    palette.extend(block)

    assert len(palette) == 6
    assert palette.red.percentile(0.5) == 10
    assert palette.green.percentile(1.0) == 5
    assert palette.blue.percentile(0.0) == 65535


def test_palette_rejects_non_rgb_input():
    palette = Palette()

    with pytest.raises(ValueError):
        palette.add((1, 2))
    with pytest.raises(ValueError):
        palette.extend(np.zeros((4, 4), dtype=np.uint16))


@pytest.mark.parametrize("shape", [(4, 4), (16, 3), (2, 2, 2, 3)])
def test_palette_extend_requires_image_block(shape):
    palette = Palette()

    with pytest.raises(ValueError):
        palette.extend(np.zeros(shape, dtype=np.uint16))
    assert len(palette) == 0
