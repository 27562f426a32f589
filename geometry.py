"""
geometry.py - where does the watermark go?

The five named positions are resolved once, over a tiny expression algebra:
- NumericAlgebra produces pixel offsets for Pillow (clamped to >= 0)
- SymbolicAlgebra produces ffmpeg expressions, because ffmpeg only knows the
  scaled overlay size when it evaluates the filter graph
"""

from __future__ import annotations

import math
from typing import NamedTuple, Tuple, Union

from watermark_config import Anchor, Position

Number = Union[int, float]


class Dimensions(NamedTuple):
    width: int
    height: int


# Aliases used by the renderers to keep intent readable.
CanvasDimensions = Dimensions
OverlayDimensions = Dimensions


class Vocabulary(NamedTuple):
    """ffmpeg variable names for the canvas and overlay sizes in a given filter."""

    canvas_width: str
    canvas_height: str
    overlay_width: str
    overlay_height: str


# overlay filter: main_w/main_h are W/H, overlay_w/overlay_h are w/h
OVERLAY_VOCABULARY = Vocabulary("W", "H", "w", "h")
# drawtext filter: video size is w/h, rendered text size is text_w/text_h
DRAWTEXT_VOCABULARY = Vocabulary("w", "h", "text_w", "text_h")


def round_half_up(value: Number) -> int:
    return int(math.floor(value + 0.5))


class NumericAlgebra:
    def start(self, canvas: int, overlay: int, margin: int) -> int:
        # a margin wider than the free space would push the far edge off-canvas
        return max(0, min(margin, canvas - overlay))

    def end(self, canvas: int, overlay: int, margin: int) -> int:
        return max(0, canvas - overlay - margin)

    def center(self, canvas: int, overlay: int, margin: int) -> int:
        return max(0, round_half_up((canvas - overlay) / 2))


class SymbolicAlgebra:
    def start(self, canvas: str, overlay: str, margin: int) -> str:
        return str(margin)

    def end(self, canvas: str, overlay: str, margin: int) -> str:
        return f"{canvas}-{overlay}-{margin}"

    def center(self, canvas: str, overlay: str, margin: int) -> str:
        return f"({canvas}-{overlay})/2"


NUMERIC = NumericAlgebra()
SYMBOLIC = SymbolicAlgebra()


def _place(anchor: Anchor, canvas, overlay, margin: int, algebra):
    if anchor is Anchor.START:
        return algebra.start(canvas, overlay, margin)
    if anchor is Anchor.END:
        return algebra.end(canvas, overlay, margin)
    return algebra.center(canvas, overlay, margin)


def _resolve(position, canvas_size, overlay_size, margin, algebra):
    position = Position.parse(position)
    margin = max(0, int(margin))
    x = _place(position.horizontal, canvas_size[0], overlay_size[0], margin, algebra)
    y = _place(position.vertical, canvas_size[1], overlay_size[1], margin, algebra)
    return x, y


def resolve_offset(
    canvas: Dimensions,
    overlay: Dimensions,
    position: Union[str, Position],
    margin: int,
) -> Tuple[int, int]:
    """Pixel offset of the overlay's top-left corner on the canvas.

    Offsets never go negative: an overlay larger than the space left by the
    margin is pinned to the edge instead.
    """
    return _resolve(position, tuple(canvas), tuple(overlay), margin, NUMERIC)


def symbolic_offset(
    position: Union[str, Position],
    margin: int,
    vocabulary: Vocabulary = OVERLAY_VOCABULARY,
) -> Tuple[str, str]:
    canvas = (vocabulary.canvas_width, vocabulary.canvas_height)
    overlay = (vocabulary.overlay_width, vocabulary.overlay_height)
    return _resolve(position, canvas, overlay, margin, SYMBOLIC)
