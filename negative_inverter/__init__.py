"""Film negative inversion toolkit.

Converts scanned colour negatives and camera RAW captures of negatives into
positive images. A centre region of each frame is metered per channel, the
low/high percentiles become black and white points, and a linear or sigmoid
tone curve inverts and stretches every pixel to the full 16-bit range.

Module Organization
-------------------

region
    Metering rectangle selection (aspect-preserving or centre-weighted square).

statistics
    Per-channel sample statistics and the RGB :class:`Palette`.

transformation
    Tone ranges (black/white points) and curve construction.

mapping
    Linear and sigmoid tone mappings applied to whole images.

settings
    Validated conversion parameters and presets.

io_utils
    Decoding (Pillow, tifffile, rawpy) and encoding (TIFF, JPEG).

pipeline
    Single-image orchestration shared by the CLI and integrations.

cli
    Command-line interface with sequential batch processing.

Example Usage
-------------

    from negative_inverter import ConversionSettings, process_single_image

    process_single_image(
        Path("roll01/frame07.tif"),
        Path("positives/frame07.tiff"),
        ConversionSettings(tone_curve="sigmoid", center_weighted=True),
        output_format="tiff",
    )
"""
from __future__ import annotations

import logging

from .cli import BatchReport, ConversionResult, build_settings, default_output_folder, main, parse_args, run_pipeline
from .errors import (
    DecodeFailure,
    DecoderUnavailable,
    EmptyStatistics,
    EncodeFailure,
    NegativeInverterError,
)
from .io_utils import (
    ImageChannels,
    ProcessingCapabilities,
    ProcessingContext,
    array_to_channels,
    channels_to_output_array,
    image_to_channels,
    load_image,
    save_image,
)
from .mapping import DEFAULT_SIGMOID_GAIN, LinearMapping, SigmoidMapping, ToneMapping
from .pipeline import (
    build_transformation,
    collect_images,
    convert_array,
    convert_image,
    ensure_output_path,
    process_single_image,
    sample_palette,
)
from .region import Rectangle, sample_bounds
from .settings import CONVERSION_PRESETS, DEFAULT_PRESET_NAME, ConversionSettings
from .statistics import CHANNEL_MAX, ChannelStatistics, HistogramChannelStatistics, Palette
from .transformation import ToneRange, ToneTransformation

LOGGER = logging.getLogger("negative_inverter")

__all__ = [
    "BatchReport",
    "CHANNEL_MAX",
    "CONVERSION_PRESETS",
    "ChannelStatistics",
    "ConversionResult",
    "ConversionSettings",
    "DEFAULT_PRESET_NAME",
    "DEFAULT_SIGMOID_GAIN",
    "DecodeFailure",
    "DecoderUnavailable",
    "EmptyStatistics",
    "EncodeFailure",
    "HistogramChannelStatistics",
    "ImageChannels",
    "LinearMapping",
    "NegativeInverterError",
    "Palette",
    "ProcessingCapabilities",
    "ProcessingContext",
    "Rectangle",
    "SigmoidMapping",
    "ToneMapping",
    "ToneRange",
    "ToneTransformation",
    "array_to_channels",
    "build_settings",
    "build_transformation",
    "channels_to_output_array",
    "collect_images",
    "convert_array",
    "convert_image",
    "default_output_folder",
    "ensure_output_path",
    "image_to_channels",
    "load_image",
    "main",
    "parse_args",
    "process_single_image",
    "run_pipeline",
    "sample_bounds",
    "sample_palette",
    "save_image",
]
