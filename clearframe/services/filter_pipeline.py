"""
Filter pipeline construction - viewport rectangles to an FFmpeg delogo chain.

Steps:
1. Derive the viewport -> native video scale per axis
2. Map each rectangle to video pixels (half-up rounding)
3. Clamp each mapped region so it lies fully inside the frame
4. Emit one delogo operation per region, in selection order

The chain is applied sequentially: each delogo sees the frame as left by
the previous one, so for overlapping regions the later selection wins.
"""

import math
from dataclasses import dataclass
from typing import Iterable, Sequence

from clearframe.services.region_capture import Rectangle


@dataclass(frozen=True)
class Dimensions:
    """Width and height of a frame or viewport in pixels."""

    width: float
    height: float

    @property
    def is_positive(self) -> bool:
        return self.width > 0 and self.height > 0


@dataclass(frozen=True)
class VideoRegion:
    """A rectangle in native video pixels."""

    x: int
    y: int
    w: int
    h: int


def round_half_up(value: float) -> int:
    """Round to the nearest integer, ties towards +infinity."""
    return int(math.floor(value + 0.5))


@dataclass(frozen=True)
class CoordinateTransform:
    """Per-axis scale from viewport pixels to native video pixels."""

    scale_x: float
    scale_y: float

    @classmethod
    def between(cls, native: Dimensions, rendered: Dimensions) -> "CoordinateTransform":
        if not native.is_positive or not rendered.is_positive:
            raise ValueError(
                f"Dimensions must be positive (native={native}, rendered={rendered})"
            )
        return cls(
            scale_x=native.width / rendered.width,
            scale_y=native.height / rendered.height,
        )

    def map_rectangle(self, rect: Rectangle) -> VideoRegion:
        return VideoRegion(
            x=round_half_up(rect.x * self.scale_x),
            y=round_half_up(rect.y * self.scale_y),
            w=round_half_up(rect.width * self.scale_x),
            h=round_half_up(rect.height * self.scale_y),
        )


def clamp_region(region: VideoRegion, native: Dimensions) -> VideoRegion:
    """
    Shrink/shift a region so it lies inside the frame.

    The top-left is clamped first, then width/height are limited to what
    remains from there. Every region keeps at least 1x1 pixels.
    """
    frame_w = int(native.width)
    frame_h = int(native.height)

    x = max(0, min(region.x, frame_w - 1))
    y = max(0, min(region.y, frame_h - 1))
    w = max(1, min(region.w, frame_w - x))
    h = max(1, min(region.h, frame_h - y))
    return VideoRegion(x=x, y=y, w=w, h=h)


@dataclass(frozen=True)
class DelogoOperation:
    """A single spatial-interpolation removal over one video region."""

    region: VideoRegion

    def to_filter(self) -> str:
        r = self.region
        return f"delogo=x={r.x}:y={r.y}:w={r.w}:h={r.h}"


def build_pipeline(
    regions: Sequence[Rectangle],
    native: Dimensions,
    rendered: Dimensions,
) -> list[DelogoOperation]:
    """Map, clamp and wrap each viewport rectangle, preserving order."""
    transform = CoordinateTransform.between(native, rendered)
    return [
        DelogoOperation(clamp_region(transform.map_rectangle(rect), native))
        for rect in regions
    ]


def compose_filter_chain(operations: Iterable[DelogoOperation]) -> str:
    """Join operations into a -vf filter chain string."""
    return ",".join(op.to_filter() for op in operations)


def build_exec_args(input_name: str, filter_chain: str, output_name: str) -> list[str]:
    """FFmpeg arguments: filter the video, copy the audio untouched."""
    return [
        "-i", input_name,
        "-vf", filter_chain,
        "-c:a", "copy",
        output_name,
    ]
