"""Exception hierarchy shared by the conversion engine and the batch driver."""
from __future__ import annotations


class NegativeInverterError(RuntimeError):
    """Base class for failures that abort the conversion of a single file."""


class DecodeFailure(NegativeInverterError):
    """Raised when a source image cannot be read or decoded."""


class DecoderUnavailable(DecodeFailure):
    """Raised when the decoder required for a source format is not installed."""


class EncodeFailure(NegativeInverterError):
    """Raised when the converted image cannot be written to its destination."""


class EmptyStatistics(NegativeInverterError, ValueError):
    """Raised when a percentile is requested from a channel with no samples."""


__all__ = [
    "DecodeFailure",
    "DecoderUnavailable",
    "EmptyStatistics",
    "EncodeFailure",
    "NegativeInverterError",
]
