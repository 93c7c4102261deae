"""Image sources and sinks around the conversion engine.

Every decoded source is normalised to a ``H x W x 3`` ``uint16`` array so the
engine always meters and maps at 16-bit precision, whatever the native depth
of the scan. Converted images are written back as 16-bit TIFF or 8-bit JPEG.

Key Components
--------------

ProcessingCapabilities
    Detects the optional 16-bit TIFF writer (tifffile) and RAW decoder (rawpy).

FloatDynamicRange
    Normalisation parameters for floating-point sources outside ``[0, 1]``.

ImageChannels
    Normalised channel data plus the alpha plane and source layout.

ProcessingContext
    Context manager for atomic file writes with staged temporary files.

Functions
---------

load_image
    Decode RAW, TIFF or any Pillow-readable file into :class:`ImageChannels`.

channels_to_output_array
    Convert engine output to the sample type of the requested format.

save_image
    Encode a converted image as TIFF or JPEG.
"""
from __future__ import annotations

import contextlib
import dataclasses
import logging
import math
import os
import uuid
from pathlib import Path
from typing import Any, Optional, Tuple

import numpy as np
from PIL import Image

from .errors import DecodeFailure, DecoderUnavailable, EncodeFailure
from .statistics import CHANNEL_MAX

try:  # Optional high-fidelity TIFF reader/writer
    import tifffile  # type: ignore
except (ImportError, ModuleNotFoundError):  # pragma: no cover - optional dependency
    tifffile = None

try:  # Optional codec pack used by tifffile for certain compressions
    import imagecodecs  # type: ignore  # pylint: disable=import-error
except (ImportError, ModuleNotFoundError):  # pragma: no cover - optional dependency
    imagecodecs = None

try:  # Optional LibRaw bindings for camera RAW files
    import rawpy  # type: ignore
except (ImportError, ModuleNotFoundError):  # pragma: no cover - optional dependency
    rawpy = None

LOGGER = logging.getLogger("negative_inverter")

RAW_EXTENSIONS = {".cr2", ".nef", ".raf", ".arw", ".dng"}
TIFF_EXTENSIONS = {".tif", ".tiff"}
RASTER_EXTENSIONS = TIFF_EXTENSIONS | {".png", ".jpg", ".jpeg"}
SUPPORTED_EXTENSIONS = RASTER_EXTENSIONS | RAW_EXTENSIONS

OUTPUT_FORMATS = {"tiff": ".tiff", "jpeg": ".jpeg"}
DEFAULT_JPEG_QUALITY = 95


class ProcessingCapabilities:
    """Detects optional codecs that widen what the converter can read and write.

    Attributes:
        bit_depth: Deepest TIFF output available (16 with tifffile, else 8).
        raw_capable: Whether camera RAW files can be decoded.
    """

    _SENTINEL = object()

    def __init__(
        self,
        tifffile_module: Any | None | object = _SENTINEL,
        rawpy_module: Any | None | object = _SENTINEL,
    ) -> None:
        self._tifffile = tifffile if tifffile_module is self._SENTINEL else tifffile_module
        self._rawpy = rawpy if rawpy_module is self._SENTINEL else rawpy_module
        self.bit_depth = 16 if getattr(self._tifffile, "imwrite", None) else 8
        self.raw_capable = bool(getattr(self._rawpy, "imread", None))

    def assert_can_decode(self, path: Path) -> None:
        """Raise :class:`DecoderUnavailable` when ``path`` needs a missing decoder."""

        if Path(path).suffix.lower() in RAW_EXTENSIONS and not self.raw_capable:
            raise DecoderUnavailable(
                f"Cannot decode {path}: camera RAW files require the optional 'rawpy' dependency"
            )


@dataclasses.dataclass
class ProcessingContext:
    """Context manager for atomic file writes using staged temporary files.

    Writes to a temporary file next to the destination and moves it into place
    on success. The staged file is removed on failure, leaving any previous
    destination untouched.
    """

    destination: Path
    suffix: str = ".tmp"

    def __post_init__(self) -> None:
        self._staged_path: Optional[Path] = None

    def _temp_path(self) -> Path:
        name = f".{self.destination.name}{self.suffix}-{uuid.uuid4().hex}"
        return self.destination.parent / name

    def __enter__(self) -> Path:
        self.destination.parent.mkdir(parents=True, exist_ok=True)
        self._staged_path = self._temp_path()
        return self._staged_path

    def __exit__(self, exc_type, exc, tb) -> bool:
        if self._staged_path is None:
            return False

        staged = self._staged_path
        self._staged_path = None

        if exc_type is None:
            try:
                os.replace(staged, self.destination)
            except Exception:
                with contextlib.suppress(Exception):
                    staged.unlink()
                raise
        else:
            with contextlib.suppress(FileNotFoundError):
                staged.unlink()
        return False


@dataclasses.dataclass(frozen=True)
class FloatDynamicRange:
    """Per-channel offset and scale mapping a float image onto ``[0, 1]``."""

    offset: np.ndarray
    scale_recip: np.ndarray

    @classmethod
    def from_array(cls, arr: np.ndarray) -> Optional["FloatDynamicRange"]:
        """Analyse an ``H x W x C`` array; ``None`` when it has no finite values."""

        if arr.size == 0:
            return None
        channels = arr.shape[-1]
        flattened = arr.reshape(-1, channels)

        offsets = np.zeros(channels, dtype=np.float64)
        recips = np.ones(channels, dtype=np.float64)
        saw_finite = False
        for idx in range(channels):
            channel = flattened[:, idx]
            finite = channel[np.isfinite(channel)]
            if finite.size == 0:
                continue
            saw_finite = True
            min_val = float(np.min(finite))
            diff = float(np.max(finite)) - min_val
            offsets[idx] = min_val
            if diff > 0.0 and math.isfinite(diff):
                recips[idx] = 1.0 / diff

        if not saw_finite:
            return None
        return cls(offset=offsets, scale_recip=recips)

    def normalise(self, arr: np.ndarray) -> np.ndarray:
        working = np.asarray(arr, dtype=np.float64)
        return (working - self.offset.reshape((1, 1, -1))) * self.scale_recip.reshape((1, 1, -1))


@dataclasses.dataclass(frozen=True)
class ImageChannels:
    """A source image normalised to the engine's 16-bit channel domain.

    Attributes:
        array: ``H x W x 3`` ``uint16`` colour data.
        dtype: Sample dtype of the decoded source.
        alpha: Optional ``H x W`` ``uint16`` alpha plane.
        base_channels: Colour channels in the source (1 for grayscale).
    """

    array: np.ndarray
    dtype: np.dtype
    alpha: Optional[np.ndarray]
    base_channels: int

    @property
    def width(self) -> int:
        return int(self.array.shape[1])

    @property
    def height(self) -> int:
        return int(self.array.shape[0])

    def get_pixel(self, x: int, y: int) -> Tuple[int, int, int]:
        red, green, blue = self.array[y, x, :3]
        return int(red), int(green), int(blue)


def _to_channel_domain(data: np.ndarray) -> np.ndarray:
    """Rescale integer or float samples onto ``[0, CHANNEL_MAX]``."""

    if data.dtype == np.uint16:
        return data
    if data.dtype == np.uint8:
        return data.astype(np.uint16) * 257
    if data.dtype == np.bool_:
        return data.astype(np.uint16) * CHANNEL_MAX
    if np.issubdtype(data.dtype, np.integer):
        # Pillow widens 16-bit grayscale to int32 ("I" mode); keep such samples as-is.
        if data.size and data.min() >= 0 and data.max() <= CHANNEL_MAX:
            return data.astype(np.uint16)
        info = np.iinfo(data.dtype)
        scaled = (data.astype(np.float64) - info.min) / float(info.max - info.min)
        return np.round(np.clip(scaled, 0.0, 1.0) * CHANNEL_MAX).astype(np.uint16)

    working = data.astype(np.float64)
    finite = working[np.isfinite(working)]
    if finite.size and (finite.min() < 0.0 or finite.max() > 1.0):
        dynamic_range = FloatDynamicRange.from_array(working)
        if dynamic_range is not None:
            working = dynamic_range.normalise(working)
    working = np.nan_to_num(working, nan=0.0, posinf=1.0, neginf=0.0)
    return np.round(np.clip(working, 0.0, 1.0) * CHANNEL_MAX).astype(np.uint16)


def array_to_channels(arr: np.ndarray) -> ImageChannels:
    """Normalise a decoded ``H x W`` or ``H x W x C`` array to :class:`ImageChannels`."""

    arr = np.asarray(arr)
    if arr.ndim == 2:
        arr = arr[:, :, None]
    if arr.ndim != 3 or arr.shape[2] not in (1, 2, 3, 4):
        raise DecodeFailure(f"Unsupported image layout with shape {arr.shape}")

    alpha: Optional[np.ndarray] = None
    channels = arr.shape[2]
    if channels == 4:
        color, alpha, base_channels = arr[:, :, :3], arr[:, :, 3:], 3
    elif channels == 2:
        color, alpha, base_channels = arr[:, :, :1], arr[:, :, 1:], 1
    else:
        color, base_channels = arr, channels

    if alpha is not None:
        alpha = _to_channel_domain(alpha)[:, :, 0]

    # Colour and alpha are normalised separately so float alpha never skews colour scaling.
    normalised = _to_channel_domain(color)
    if base_channels == 1:
        normalised = np.repeat(normalised, 3, axis=2)

    return ImageChannels(
        array=np.ascontiguousarray(normalised, dtype=np.uint16),
        dtype=np.dtype(arr.dtype),
        alpha=None if alpha is None else np.ascontiguousarray(alpha, dtype=np.uint16),
        base_channels=base_channels,
    )


def image_to_channels(image: Image.Image) -> ImageChannels:
    """Convert a Pillow image to :class:`ImageChannels`."""

    supported_modes = {"RGB", "RGBA", "I", "I;16", "I;16L", "I;16B", "F", "L", "LA", "1"}
    if image.mode not in supported_modes:
        image = image.convert("RGBA" if "A" in image.getbands() else "RGB")
    return array_to_channels(np.array(image))


def _planar_to_interleaved(arr: np.ndarray) -> np.ndarray:
    """Move a leading sample axis (planar TIFF layout) to the end."""

    if arr.ndim == 3 and arr.shape[0] in (3, 4) and arr.shape[2] not in (1, 2, 3, 4):
        return np.moveaxis(arr, 0, -1)
    return arr


def decode_raw(path: Path, rawpy_module: Any | None = None) -> ImageChannels:
    """Demosaic a camera RAW file through LibRaw into 16-bit channels."""

    module = rawpy if rawpy_module is None else rawpy_module
    if module is None:
        raise DecoderUnavailable(
            f"Cannot decode {path}: camera RAW files require the optional 'rawpy' dependency"
        )
    libraw_error = getattr(module, "LibRawError", OSError)
    try:
        with module.imread(os.fspath(path)) as raw:
            rgb = raw.postprocess(output_bps=16)
    except (OSError, ValueError, libraw_error) as exc:
        raise DecodeFailure(f"Failed to decode RAW file {path}: {exc}") from exc
    LOGGER.debug("Decoded RAW %s with shape %s", path, getattr(rgb, "shape", None))
    return array_to_channels(rgb)


def load_image(path: Path, capabilities: Optional[ProcessingCapabilities] = None) -> ImageChannels:
    """Decode ``path`` into :class:`ImageChannels`.

    Raises:
        DecodeFailure: If the file is missing, unreadable, or has an unsupported layout.
        DecoderUnavailable: If a RAW file is given but rawpy is not installed.
    """
    path = Path(path)
    if not path.is_file():
        raise DecodeFailure(f"Input file {path} does not exist")

    suffix = path.suffix.lower()
    if suffix in RAW_EXTENSIONS:
        caps = capabilities or ProcessingCapabilities()
        caps.assert_can_decode(path)
        return decode_raw(path, caps._rawpy)

    if suffix in TIFF_EXTENSIONS and tifffile is not None:
        try:
            arr = tifffile.imread(os.fspath(path), key=0)
        except (OSError, ValueError, tifffile.TiffFileError) as exc:
            raise DecodeFailure(f"Failed to decode TIFF file {path}: {exc}") from exc
        return array_to_channels(_planar_to_interleaved(arr))

    try:
        with Image.open(path) as image:
            image.load()
            return image_to_channels(image)
    except (OSError, ValueError, Image.DecompressionBombError) as exc:
        raise DecodeFailure(f"Failed to decode image {path}: {exc}") from exc


def compression_for_tifffile(compression: str) -> Optional[str]:
    """Map user-facing compression names to tifffile's names."""

    comp = compression.lower()
    mapping = {
        "tiff_lzw": "lzw",
        "lzw": "lzw",
        "tiff_adobe_deflate": "zlib",
        "adobe_deflate": "zlib",
        "tiff_deflate": "zlib",
        "deflate": "zlib",
        "zip": "zlib",
        "zlib": "zlib",
        "tiff_none": None,
        "none": None,
        "raw": None,
    }
    return mapping.get(comp, comp)


def compression_for_pillow(compression: str) -> str:
    writer = compression_for_tifffile(compression)
    if writer is None:
        return "raw"
    if writer == "zlib":
        return "tiff_adobe_deflate"
    return f"tiff_{writer}"


def channels_to_output_array(
    arr: np.ndarray,
    base_channels: int,
    alpha: Optional[np.ndarray],
    output_format: str,
) -> np.ndarray:
    """Shape engine output for the encoder.

    TIFF keeps 16-bit samples and, when the source carried alpha, an opaque
    alpha plane. JPEG is reduced to 8-bit and never carries alpha.
    """
    color = np.asarray(arr)[:, :, :base_channels]
    if output_format == "jpeg":
        eight_bit = np.round(color / 257.0).astype(np.uint8)
        if base_channels == 1:
            eight_bit = eight_bit[:, :, 0]
        return np.ascontiguousarray(eight_bit)
    if output_format != "tiff":
        raise ValueError(f"Unsupported output format: {output_format!r}")
    planes = [color.astype(np.uint16, copy=False)]
    if alpha is not None:
        planes.append(np.full(color.shape[:2] + (1,), CHANNEL_MAX, dtype=np.uint16))
    result = np.concatenate(planes, axis=2) if len(planes) > 1 else planes[0]
    if result.shape[2] == 1:
        result = result[:, :, 0]
    return np.ascontiguousarray(result)


def _save_tiff(destination: Path, arr: np.ndarray, compression: str) -> None:
    writer_compression = compression_for_tifffile(compression)
    lzw_requires_codec = writer_compression == "lzw" and imagecodecs is None

    if tifffile is not None and not lzw_requires_codec:
        channels = 1 if arr.ndim == 2 else arr.shape[2]
        tiff_kwargs: dict[str, Any] = {
            "photometric": "rgb" if channels >= 3 else "minisblack",
            "compression": writer_compression,
            "metadata": None,
        }
        if writer_compression is not None:
            tiff_kwargs["predictor"] = True
        if arr.ndim == 3:
            tiff_kwargs["planarconfig"] = "contig"
        if channels in (2, 4):
            tiff_kwargs["extrasamples"] = (2,)  # unassociated alpha
        tifffile.imwrite(os.fspath(destination), arr, **tiff_kwargs)
        return

    LOGGER.warning(
        "Falling back to Pillow for TIFF output; output will be 8-bit. Install 'tifffile' for 16-bit support."
    )
    converted = np.round(arr / 257.0).astype(np.uint8)
    Image.fromarray(converted).save(
        os.fspath(destination), format="TIFF", compression=compression_for_pillow(compression)
    )


def save_image(
    destination: Path,
    arr: np.ndarray,
    output_format: str,
    *,
    compression: str = "deflate",
    quality: int = DEFAULT_JPEG_QUALITY,
) -> None:
    """Encode ``arr`` (from :func:`channels_to_output_array`) to ``destination``.

    Raises:
        EncodeFailure: If the encoder rejects the data or the file cannot be written.
    """
    try:
        if output_format == "jpeg":
            Image.fromarray(arr).save(os.fspath(destination), format="JPEG", quality=quality)
        elif output_format == "tiff":
            _save_tiff(destination, arr, compression)
        else:
            raise ValueError(f"Unsupported output format: {output_format!r}")
    except (OSError, ValueError, KeyError, TypeError) as exc:
        raise EncodeFailure(f"Failed to write {destination}: {exc}") from exc


__all__ = [
    "DEFAULT_JPEG_QUALITY",
    "FloatDynamicRange",
    "ImageChannels",
    "OUTPUT_FORMATS",
    "ProcessingCapabilities",
    "ProcessingContext",
    "RAW_EXTENSIONS",
    "SUPPORTED_EXTENSIONS",
    "TIFF_EXTENSIONS",
    "array_to_channels",
    "channels_to_output_array",
    "compression_for_pillow",
    "compression_for_tifffile",
    "decode_raw",
    "image_to_channels",
    "load_image",
    "save_image",
]
