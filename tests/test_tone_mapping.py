from __future__ import annotations

import logging
import sys
from pathlib import Path

import pytest
from hypothesis import given, strategies as st

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))

np = pytest.importorskip("numpy")

import negative_inverter as ninv  # noqa: E402  # pylint: disable=wrong-import-position,consider-using-from-import
from negative_inverter.mapping import LinearMapping, SigmoidMapping  # noqa: E402  # pylint: disable=wrong-import-position
from negative_inverter.transformation import ToneRange, ToneTransformation  # noqa: E402  # pylint: disable=wrong-import-position

MAX = ninv.CHANNEL_MAX
FULL = ToneRange(0, MAX)


def _uniform(tone_range: ToneRange):
    return (tone_range, tone_range, tone_range)


def _gradient_image() -> np.ndarray:
    values = np.linspace(0, MAX, 64 * 3).round().astype(np.uint16)
    return values.reshape(8, 8, 3)


def test_build_reads_percentiles_per_channel():
    palette = ninv.Palette()
    for value in range(101):
        palette.add((value * 10, value * 20, 5000 + value))

    transformation = ToneTransformation.build(palette, 0.01, 0.99)

    assert transformation.red == ToneRange(10, 990)
    assert transformation.green == ToneRange(20, 1980)
    assert transformation.blue == ToneRange(5001, 5099)
    assert transformation.steepness == pytest.approx(-0.98)


def test_build_on_empty_palette_raises():
    with pytest.raises(ninv.EmptyStatistics):
        ToneTransformation.build(ninv.Palette(), 0.01, 0.99)


def test_transformation_selects_mapping_variant():
    transformation = ToneTransformation(FULL, FULL, FULL, -0.98)

    linear = transformation.to_linear()
    sigmoid = transformation.to_sigmoid(gain=4.0)

    assert isinstance(linear, LinearMapping)
    assert isinstance(sigmoid, SigmoidMapping)
    assert sigmoid.steepness == pytest.approx(-0.98)
    assert sigmoid.gain == 4.0
    assert isinstance(transformation.to_mapping("sigmoid"), SigmoidMapping)
    with pytest.raises(ValueError):
        transformation.to_mapping("cubic")


def test_full_range_linear_mapping_is_pure_inversion():
    mapping = LinearMapping(_uniform(FULL))
    image = _gradient_image()

    inverted = mapping.apply(image)

    np.testing.assert_array_equal(inverted.astype(np.int64), MAX - image.astype(np.int64))
    np.testing.assert_array_equal(mapping.apply(inverted), image)


@pytest.mark.parametrize("value", [0, 1, 12345, 40000, MAX])
def test_full_range_map_value_inverts(value: int):
    assert LinearMapping(_uniform(FULL)).map_value(0, value) == MAX - value


def test_linear_mapping_clamps_outside_window():
    mapping = LinearMapping(_uniform(ToneRange(1000, 50000)))
    values = np.array([0, 999, 1000, 50000, 50001, MAX], dtype=np.uint16)

    mapped = mapping.curve(0, values)

    assert mapped.tolist() == [MAX, MAX, MAX, 0, 0, 0]


def test_linear_mapping_interpolates_inside_window():
    mapping = LinearMapping(_uniform(ToneRange(1000, 3000)))

    assert mapping.map_value(1, 2000) == round(0.5 * MAX)
    assert mapping.map_value(2, 1500) == round(0.75 * MAX)


@pytest.mark.parametrize("mapping_type", ["linear", "sigmoid"])
def test_degenerate_range_produces_flat_output(mapping_type: str):
    transformation = ToneTransformation(ToneRange(500, 500), FULL, FULL, -0.98)
    mapping = transformation.to_mapping(mapping_type)
    image = _gradient_image()

    result = mapping.apply(image)

    assert np.all(result[:, :, 0] == 0)
    assert not np.all(result[:, :, 1] == 0)
    assert transformation.degenerate_channels() == ["red"]


def test_inverted_range_falls_back_to_plain_inversion():
    mapping = LinearMapping(_uniform(ToneRange(60000, 1000)))

    assert mapping.map_value(0, 1000) == MAX - 1000
    assert mapping.map_value(0, 60000) == MAX - 60000


def test_apply_returns_new_buffer_and_leaves_source_untouched():
    image = _gradient_image()
    snapshot = image.copy()

    result = LinearMapping(_uniform(ToneRange(100, 60000))).apply(image)

    assert result is not image
    assert result.shape == image.shape
    assert result.dtype == np.uint16
    np.testing.assert_array_equal(image, snapshot)


def test_apply_ignores_alpha_plane():
    image = np.zeros((2, 2, 4), dtype=np.uint16)

    result = LinearMapping(_uniform(FULL)).apply(image)

    assert result.shape == (2, 2, 3)
    assert np.all(result == MAX)


def test_apply_rejects_two_dimensional_input():
    with pytest.raises(ValueError):
        LinearMapping(_uniform(FULL)).apply(np.zeros((4, 4), dtype=np.uint16))


def test_sigmoid_hits_window_edges_exactly():
    mapping = SigmoidMapping(_uniform(ToneRange(2000, 40000)), steepness=-0.98)

    assert mapping.map_value(0, 2000) == MAX
    assert mapping.map_value(0, 40000) == 0
    assert mapping.map_value(0, 0) == MAX
    assert mapping.map_value(0, MAX) == 0
    assert mapping.map_value(0, 21000) == pytest.approx(MAX / 2, abs=1)


def test_sigmoid_rolls_off_gentler_than_linear_near_edges():
    tone_range = ToneRange(0, 10000)
    linear = LinearMapping(_uniform(tone_range))
    sigmoid = SigmoidMapping(_uniform(tone_range), steepness=-0.98)

    # Near the black point the S-curve stays closer to black than the straight line.
    assert sigmoid.map_value(0, 9500) < linear.map_value(0, 9500)
    # Near the white point it stays closer to white.
    assert sigmoid.map_value(0, 500) > linear.map_value(0, 500)


def test_wider_window_gives_lower_slope():
    narrow = SigmoidMapping(_uniform(FULL), steepness=-0.5)
    wide = SigmoidMapping(_uniform(FULL), steepness=-0.98)

    assert wide.slope < narrow.slope
    assert SigmoidMapping(_uniform(FULL), steepness=0.0).slope == narrow.gain


@given(
    low=st.integers(min_value=0, max_value=60000),
    width=st.integers(min_value=1, max_value=5535),
    steepness=st.floats(min_value=-1.0, max_value=-0.01),
)
def test_sigmoid_is_monotonically_decreasing(low, width, steepness):
    mapping = SigmoidMapping(_uniform(ToneRange(low, low + width)), steepness=steepness)
    values = np.arange(0, MAX + 1, 97).astype(np.uint16)

    mapped = mapping.curve(0, values).astype(np.int64)

    assert np.all(np.diff(mapped) <= 0)
    assert mapped.min() >= 0 and mapped.max() <= MAX


def test_end_to_end_single_channel_frame():
    values = np.linspace(10, 90, 16).round().astype(np.uint16).reshape(4, 4)
    image = np.repeat(values[:, :, None], 3, axis=2)
    settings = ninv.ConversionSettings(sample_fraction=1.0, lowlights=0.0, highlights=1.0)

    positive = ninv.convert_array(image, settings)

    assert positive[0, 0, 0] == MAX
    assert positive[3, 3, 0] == 0
    expected = np.round((90.0 - values) / 80.0 * MAX).astype(np.uint16)
    for channel in range(3):
        np.testing.assert_array_equal(positive[:, :, channel], expected)


def test_flat_frame_logs_degenerate_warning(caplog: pytest.LogCaptureFixture):
    image = np.full((6, 6, 3), 1234, dtype=np.uint16)

    with caplog.at_level(logging.WARNING, logger="negative_inverter"):
        positive = ninv.convert_array(image, ninv.ConversionSettings())

    assert np.all(positive == 0)
    assert "Degenerate tone range" in caplog.text


@pytest.mark.parametrize("gain", [1e-300, 1e-20])
def test_vanishing_sigmoid_gain_degrades_to_linear(gain: float):
    tone_range = ToneRange(1000, 3000)
    sigmoid = SigmoidMapping(_uniform(tone_range), steepness=-0.98, gain=gain)
    linear = LinearMapping(_uniform(tone_range))
    values = np.arange(0, 4001, 50).astype(np.uint16)

    with np.errstate(all="raise"):
        mapped = sigmoid.curve(0, values)

    np.testing.assert_array_equal(mapped, linear.curve(0, values))
