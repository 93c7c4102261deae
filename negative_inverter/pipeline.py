"""Core processing helpers shared between the CLI and integrations."""
from __future__ import annotations

import dataclasses
import logging
from pathlib import Path
from typing import Iterable, Iterator, Optional

import numpy as np

from .errors import EncodeFailure
from .io_utils import (
    DEFAULT_JPEG_QUALITY,
    OUTPUT_FORMATS,
    SUPPORTED_EXTENSIONS,
    ImageChannels,
    ProcessingCapabilities,
    ProcessingContext,
    channels_to_output_array,
    load_image,
    save_image,
)
from .region import Rectangle, sample_bounds
from .settings import ConversionSettings
from .statistics import Palette
from .transformation import ToneTransformation

try:  # Optional progress bar for batch runs
    from tqdm import tqdm as _tqdm  # type: ignore
except Exception:  # pragma: no cover - optional dependency
    _tqdm = None

LOGGER = logging.getLogger("negative_inverter")
WORKER_LOGGER = LOGGER.getChild("worker")


def _tqdm_progress(
    iterable: Iterable[object], *, total: Optional[int], description: Optional[str]
) -> Iterable[object]:
    """Wrap *iterable* with :mod:`tqdm` if available."""

    if _tqdm is None:  # pragma: no cover - tqdm missing
        return iterable
    return _tqdm(iterable, total=total, desc=description, unit="image")


_PROGRESS_WRAPPER = _tqdm_progress if _tqdm is not None else None


def _wrap_with_progress(
    iterable: Iterable[Path],
    *,
    total: Optional[int],
    description: str,
    enabled: bool,
) -> Iterable[Path]:
    """Return an iterable wrapped with a progress helper when available."""

    if not enabled:
        return iterable

    helper = _PROGRESS_WRAPPER
    if helper is None:
        LOGGER.debug("Progress helper not available; install tqdm for progress reporting.")
        return iterable
    return helper(iterable, total=total, description=description)


def collect_images(folder: Path, recursive: bool) -> Iterator[Path]:
    candidates = folder.rglob("*") if recursive else folder.glob("*")
    for path in candidates:
        if path.is_file() and path.suffix.lower() in SUPPORTED_EXTENSIONS:
            yield path


def ensure_output_path(
    input_root: Path,
    output_root: Path,
    source: Path,
    suffix: str,
    recursive: bool,
    output_format: str = "tiff",
    *,
    create: bool = True,
) -> Path:
    relative = source.relative_to(input_root) if recursive else Path(source.name)
    destination = output_root / relative
    if create:
        destination.parent.mkdir(parents=True, exist_ok=True)
    return destination.with_name(destination.stem + suffix + OUTPUT_FORMATS[output_format])


def sample_palette(channels: np.ndarray, region: Rectangle, *, method: str = "exact") -> Palette:
    """Accumulate the per-channel statistics of ``region``."""

    rows, cols = region.slices()
    palette = Palette(method)
    palette.extend(np.asarray(channels)[rows, cols, :3])
    LOGGER.debug("Sampled %s pixel(s) from %s", len(palette), region)
    return palette


def build_transformation(channels: np.ndarray, settings: ConversionSettings) -> ToneTransformation:
    """Meter ``channels`` and derive the tone ranges for ``settings``.

    Raises:
        EmptyStatistics: If the metering region holds no pixels.
    """
    height, width = channels.shape[:2]
    region = sample_bounds(width, height, settings.sample_fraction, settings.center_weighted)
    palette = sample_palette(channels, region, method=settings.statistics)
    transformation = ToneTransformation.build(palette, settings.lowlights, settings.highlights)
    degenerate = transformation.degenerate_channels()
    if degenerate:
        LOGGER.warning(
            "Degenerate tone range for %s channel(s); falling back to a flat or unstretched curve",
            ", ".join(degenerate),
        )
    return transformation


def convert_array(channels: np.ndarray, settings: ConversionSettings) -> np.ndarray:
    """Invert and normalise an ``H x W x 3`` ``uint16`` negative into a new positive."""

    transformation = build_transformation(channels, settings)
    mapping = transformation.to_mapping(settings.tone_curve, gain=settings.sigmoid_gain)
    LOGGER.debug("Applying %s mapping", mapping.name)
    return mapping.apply(channels)


def convert_image(image: ImageChannels, settings: ConversionSettings) -> ImageChannels:
    return dataclasses.replace(image, array=convert_array(image.array, settings))


def _process_image_worker(
    source: Path,
    destination: Path,
    settings: ConversionSettings,
    *,
    output_format: str,
    compression: str,
    jpeg_quality: int,
    dry_run: bool,
    capabilities: Optional[ProcessingCapabilities],
) -> bool:
    """Core implementation for converting a single image.

    Returns ``True`` when an output file was written.
    """

    WORKER_LOGGER.info("Processing %s -> %s", source, destination)
    if destination.exists() and not dry_run and not destination.is_file():
        raise EncodeFailure(f"Destination path exists but is not a file: {destination}")

    image = load_image(source, capabilities)
    positive = convert_image(image, settings)
    output = channels_to_output_array(
        positive.array, positive.base_channels, positive.alpha, output_format
    )
    if dry_run:
        WORKER_LOGGER.info("Dry run enabled, skipping save for %s", destination)
        return False
    try:
        with ProcessingContext(destination) as staged_path:
            save_image(
                staged_path,
                output,
                output_format,
                compression=compression,
                quality=jpeg_quality,
            )
    except OSError as exc:
        raise EncodeFailure(f"Failed to move output into place at {destination}: {exc}") from exc
    WORKER_LOGGER.info("Successfully processed and saved: %s", destination)
    return True


def process_single_image(
    source: Path,
    destination: Path,
    settings: ConversionSettings,
    *,
    output_format: str = "tiff",
    compression: str = "deflate",
    jpeg_quality: int = DEFAULT_JPEG_QUALITY,
    dry_run: bool = False,
    capabilities: Optional[ProcessingCapabilities] = None,
) -> bool:
    """Convert ``source`` and write the positive to ``destination``.

    Raises:
        DecodeFailure: If the source cannot be decoded.
        EmptyStatistics: If the metering region is empty.
        EncodeFailure: If the output cannot be written.
    """

    if output_format not in OUTPUT_FORMATS:
        raise ValueError(f"Unsupported output format: {output_format!r}")
    return _process_image_worker(
        source,
        destination,
        settings,
        output_format=output_format,
        compression=compression,
        jpeg_quality=jpeg_quality,
        dry_run=dry_run,
        capabilities=capabilities,
    )


__all__ = [
    "_PROGRESS_WRAPPER",
    "_wrap_with_progress",
    "build_transformation",
    "collect_images",
    "convert_array",
    "convert_image",
    "ensure_output_path",
    "process_single_image",
    "sample_palette",
]
