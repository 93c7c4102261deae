"""Selection of the image area used to meter black and white points.

Two policies are supported:

- **aspect-preserving** (default): a uniform border of ``(1 - fraction) / 2``
  of each dimension is removed, so the sample keeps the frame's aspect ratio.
- **center-weighted**: the shorter image edge scaled by ``fraction`` becomes
  the side of a square centred in the frame. Useful when the negative does
  not fill the scan and the mount or film rebate would skew the palette.
"""
from __future__ import annotations

import dataclasses
import logging
from typing import Tuple

LOGGER = logging.getLogger("negative_inverter")


@dataclasses.dataclass(frozen=True)
class Rectangle:
    """Half-open pixel rectangle ``[left, right) x [top, bottom)``."""

    left: int
    top: int
    right: int
    bottom: int

    @property
    def width(self) -> int:
        return max(0, self.right - self.left)

    @property
    def height(self) -> int:
        return max(0, self.bottom - self.top)

    @property
    def area(self) -> int:
        return self.width * self.height

    @property
    def is_empty(self) -> bool:
        return self.area == 0

    def slices(self) -> Tuple[slice, slice]:
        """Return ``(rows, columns)`` slices for indexing an ``H x W`` array."""

        return slice(self.top, self.bottom), slice(self.left, self.right)

    def contains(self, other: "Rectangle") -> bool:
        return (
            self.left <= other.left
            and self.top <= other.top
            and other.right <= self.right
            and other.bottom <= self.bottom
        )


def _clip(value: int, minimum: int, maximum: int) -> int:
    return max(minimum, min(maximum, value))


def sample_bounds(
    width: int,
    height: int,
    fraction: float,
    center_weighted: bool = False,
) -> Rectangle:
    """Compute the metering rectangle for an image of ``width`` x ``height``.

    Args:
        width: Image width in pixels.
        height: Image height in pixels.
        fraction: Portion of the frame to keep, expected in ``(0, 1]``. Values
            outside that interval are not rejected here; they produce an empty
            or full-frame rectangle.
        center_weighted: Use a centred square instead of the aspect-preserving
            crop.

    Returns:
        Rectangle clipped to the image bounds. For valid fractions and a
        non-empty image it always has a positive area.
    """
    if center_weighted:
        short_edge = min(width, height)
        side = int(float(short_edge) * fraction)
        if fraction > 0 and short_edge > 0:
            side = _clip(side, 1, short_edge)
        else:
            side = max(0, min(side, short_edge))
        border_x = (width - side) // 2
        border_y = (height - side) // 2
        region = Rectangle(border_x, border_y, border_x + side, border_y + side)
    else:
        border = (1.0 - fraction) / 2.0
        inset_x = int(float(width) * border)
        inset_y = int(float(height) * border)
        if fraction > 0:
            # keep at least one pixel on each axis when float rounding eats the sample
            inset_x = min(inset_x, max(0, (width - 1) // 2))
            inset_y = min(inset_y, max(0, (height - 1) // 2))
        left = _clip(inset_x, 0, width)
        top = _clip(inset_y, 0, height)
        right = _clip(width - inset_x, left, width)
        bottom = _clip(height - inset_y, top, height)
        region = Rectangle(left, top, right, bottom)

    LOGGER.debug(
        "Sample region for %sx%s (fraction=%s, center_weighted=%s): %s",
        width,
        height,
        fraction,
        center_weighted,
        region,
    )
    return region


__all__ = ["Rectangle", "sample_bounds"]
