import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from geometry import (
    DRAWTEXT_VOCABULARY,
    Dimensions,
    resolve_offset,
    round_half_up,
    symbolic_offset,
)
from watermark_config import Position, ValidationError


@pytest.mark.parametrize("position, expected", [
    ("top-left", (20, 20)),
    ("top-right", (780, 20)),
    ("bottom-left", (20, 680)),
    ("bottom-right", (780, 680)),
    ("center", (400, 350)),
])
def test_resolve_offset_named_positions(position, expected):
    assert resolve_offset(Dimensions(1000, 800), Dimensions(200, 100), position, 20) == expected


def test_center_on_even_dimensions_is_exact():
    assert resolve_offset(Dimensions(800, 600), Dimensions(200, 100), Position.CENTER, 24) == (300, 250)


def test_center_rounds_half_up():
    assert resolve_offset(Dimensions(101, 11), Dimensions(0, 0), "center", 0) == (51, 6)
    assert round_half_up(2.5) == 3
    assert round_half_up(3.5) == 4


def test_offset_clamps_to_zero_when_overlay_does_not_fit():
    assert resolve_offset(Dimensions(1000, 800), Dimensions(990, 790), "bottom-right", 24) == (0, 0)
    assert resolve_offset(Dimensions(100, 100), Dimensions(300, 300), "center", 0) == (0, 0)


@pytest.mark.parametrize("position", [p.value for p in Position])
@pytest.mark.parametrize("canvas, overlay, margin", [
    ((1920, 1080), (384, 120), 24),
    ((640, 480), (600, 470), 30),
    ((501, 333), (17, 5), 0),
])
def test_offset_keeps_overlay_inside_canvas(position, canvas, overlay, margin):
    x, y = resolve_offset(Dimensions(*canvas), Dimensions(*overlay), position, margin)
    assert 0 <= x <= canvas[0] - overlay[0]
    assert 0 <= y <= canvas[1] - overlay[1]


def test_resolve_offset_is_pure():
    args = (Dimensions(1280, 720), Dimensions(256, 64), "top-right", 12)
    assert resolve_offset(*args) == resolve_offset(*args)


def test_negative_margin_is_treated_as_zero():
    assert resolve_offset(Dimensions(100, 100), Dimensions(10, 10), "top-left", -5) == (0, 0)
    assert symbolic_offset("bottom-right", -5) == ("W-w-0", "H-h-0")


def test_symbolic_offset_for_overlay_filter():
    assert symbolic_offset("top-left", 24) == ("24", "24")
    assert symbolic_offset("top-right", 24) == ("W-w-24", "24")
    assert symbolic_offset("bottom-left", 24) == ("24", "H-h-24")
    assert symbolic_offset("bottom-right", 24) == ("W-w-24", "H-h-24")
    assert symbolic_offset("center", 24) == ("(W-w)/2", "(H-h)/2")


def test_symbolic_offset_for_drawtext_filter():
    assert symbolic_offset("top-right", 10, DRAWTEXT_VOCABULARY) == ("w-text_w-10", "10")
    assert symbolic_offset("center", 10, DRAWTEXT_VOCABULARY) == ("(w-text_w)/2", "(h-text_h)/2")


def test_unknown_position_is_rejected():
    with pytest.raises(ValidationError):
        resolve_offset(Dimensions(10, 10), Dimensions(1, 1), "middle", 0)
