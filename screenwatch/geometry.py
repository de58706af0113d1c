"""
Geometry primitives for detection boxes and screen regions.

Boxes live in pixel space. Regions are fractional rectangles relative to the
full frame and are converted to boxes once the frame size is known.
"""

import math
from dataclasses import dataclass
from typing import Tuple

# Absorbs float error such as 0.1 * 640 == 64.00000000000001
_EPS = 1e-9


@dataclass(frozen=True)
class Box:
    """Axis-aligned integer box anchored at its top-left corner."""

    x: int
    y: int
    width: int
    height: int

    def __post_init__(self):
        if self.width < 0 or self.height < 0:
            raise ValueError(
                f"Box size must be non-negative, got {self.width}x{self.height}"
            )

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    @property
    def area(self) -> int:
        return max(0, self.width) * max(0, self.height)

    @property
    def center(self) -> Tuple[int, int]:
        return self.x + self.width // 2, self.y + self.height // 2

    def translate(self, dx: int, dy: int) -> "Box":
        return Box(self.x + dx, self.y + dy, self.width, self.height)


def iou(a: Box, b: Box) -> float:
    """Intersection-over-union of two boxes.

    Returns 0.0 when the boxes do not intersect or when either area is empty,
    so the division below never sees a zero denominator.
    """
    if a.area <= 0 or b.area <= 0:
        return 0.0

    inter_w = min(a.right, b.right) - max(a.x, b.x)
    inter_h = min(a.bottom, b.bottom) - max(a.y, b.y)
    if inter_w <= 0 or inter_h <= 0:
        return 0.0

    intersection = inter_w * inter_h
    union = a.area + b.area - intersection
    if union <= 0:
        return 0.0
    return intersection / union


def clamp_point(x: int, y: int, width: int, height: int) -> Tuple[int, int]:
    """Clamp a point into ``[0, width-1] x [0, height-1]``."""
    return (
        min(max(x, 0), max(width - 1, 0)),
        min(max(y, 0), max(height - 1, 0)),
    )


@dataclass(frozen=True)
class Region:
    """Fractional rectangle relative to the full frame.

    ``x`` and ``y`` are in [0, 1], ``width`` and ``height`` in (0, 1].
    """

    x: float
    y: float
    width: float
    height: float

    def __post_init__(self):
        if not (0.0 <= self.x <= 1.0 and 0.0 <= self.y <= 1.0):
            raise ValueError(f"Region origin must be within [0,1], got ({self.x}, {self.y})")
        if not (0.0 < self.width <= 1.0 and 0.0 < self.height <= 1.0):
            raise ValueError(
                f"Region size must be within (0,1], got {self.width}x{self.height}"
            )

    @classmethod
    def full(cls) -> "Region":
        return cls(0.0, 0.0, 1.0, 1.0)

    def to_pixels(self, frame_width: int, frame_height: int) -> Box:
        """Convert to a pixel box inside a frame of the given size.

        The origin is floored and the extent ceiled, then the box is clamped so
        that it is at least 1x1 and never leaves the frame.
        """
        if frame_width <= 0 or frame_height <= 0:
            raise ValueError(f"Frame size must be positive, got {frame_width}x{frame_height}")

        rx = min(int(math.floor(self.x * frame_width + _EPS)), frame_width - 1)
        ry = min(int(math.floor(self.y * frame_height + _EPS)), frame_height - 1)
        rw = max(1, int(math.ceil(self.width * frame_width - _EPS)))
        rh = max(1, int(math.ceil(self.height * frame_height - _EPS)))
        rw = min(rw, frame_width - rx)
        rh = min(rh, frame_height - ry)
        return Box(rx, ry, rw, rh)
