"""
overlay_builder.py - builds the watermark payload for a given canvas width.

Images get a Pillow RGBA overlay (resized logo or synthesized text label).
Videos get an ffmpeg filter-graph string expressing the same intent; the
overlay size there is only known to ffmpeg, so placement is symbolic.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from PIL import Image, ImageDraw, ImageFont, UnidentifiedImageError

from geometry import (
    DRAWTEXT_VOCABULARY,
    OVERLAY_VOCABULARY,
    round_half_up,
    symbolic_offset,
)
from logging_config import get_logger
from watermark_config import ImageRef, ReadError, TextLabel, WatermarkSpec

logger = get_logger(__name__)

# Average glyph width as a fraction of the font size. Not real text shaping.
APPROX_CHAR_WIDTH_FACTOR = 0.6
MIN_FONT_SIZE = 10
TEXT_PADDING_FACTOR = 0.35
TEXT_STROKE_FACTOR = 0.08
DEFAULT_FONT = "DejaVuSans.ttf"

# drawtext styling for video text (must stay readable over motion)
VIDEO_SHADOW = "black@0.8"
VIDEO_SHADOW_OFFSET = 2
VIDEO_BOX_COLOR = "black@0.5"
VIDEO_BOX_BORDER = 5
VIDEO_TEXT_HEIGHT_FACTOR = 1.5


# ---------- Sizing heuristics ----------

def target_width(canvas_width: int, scale: float) -> int:
    """Overlay width in pixels; never below one pixel."""
    return max(1, round_half_up(canvas_width * scale))


def text_font_size(target_text_width: float, text: str) -> int:
    return max(
        MIN_FONT_SIZE,
        round_half_up(target_text_width / max(1, len(text) * APPROX_CHAR_WIDTH_FACTOR)),
    )


def text_padding(font_size: int) -> int:
    return round_half_up(font_size * TEXT_PADDING_FACTOR)


def text_stroke_width(font_size: int) -> int:
    return max(1, round_half_up(font_size * TEXT_STROKE_FACTOR))


def _fmt(value: float) -> str:
    return f"{value:g}"


def _clamp01(value: float) -> float:
    return max(0.0, min(1.0, float(value)))


# ---------- Raster overlays (image path) ----------

def load_font(size: int, font_file: Optional[str] = None):
    candidates = [font_file] if font_file else []
    candidates.append(DEFAULT_FONT)
    for candidate in candidates:
        try:
            return ImageFont.truetype(str(candidate), size)
        except OSError:
            logger.debug("Font %s unavailable, trying next candidate", candidate)
    return ImageFont.load_default(size=size)


def build_logo_overlay(ref: ImageRef, width: int) -> Image.Image:
    """Resize the logo to `width`, keeping its aspect ratio, as RGBA."""
    try:
        with Image.open(ref.path) as logo:
            logo.load()
            rgba = logo.convert("RGBA")
    except (OSError, UnidentifiedImageError) as exc:
        raise ReadError(f"Could not read watermark image {ref.path}: {exc}") from exc
    if not rgba.width or not rgba.height:
        raise ReadError(f"Watermark image {ref.path} has no dimensions")
    height = max(1, round_half_up(rgba.height * width / rgba.width))
    return rgba.resize((width, height), Image.LANCZOS)


def build_text_overlay(label: TextLabel, target_text_width: float, font_file: Optional[str] = None) -> Image.Image:
    """Render the label on a transparent box sized from the width heuristic."""
    text = label.content
    font_size = text_font_size(target_text_width, text)
    pad = text_padding(font_size)
    size = (round_half_up(target_text_width) + pad * 2, font_size + pad * 2)

    overlay = Image.new("RGBA", size, (0, 0, 0, 0))
    draw = ImageDraw.Draw(overlay)
    draw.text(
        (pad, pad),
        text,
        font=load_font(font_size, font_file),
        fill=(255, 255, 255, 255),
        stroke_width=text_stroke_width(font_size),
        stroke_fill=(0, 0, 0, 102),
    )
    return overlay


def build(spec: WatermarkSpec, canvas_width: int, font_file: Optional[str] = None) -> Image.Image:
    if isinstance(spec.source, ImageRef):
        return build_logo_overlay(spec.source, target_width(canvas_width, spec.scale))
    return build_text_overlay(spec.source, max(1.0, canvas_width * spec.scale), font_file)


def apply_opacity(overlay: Image.Image, opacity: float) -> Image.Image:
    opacity = _clamp01(opacity)
    faded = overlay.convert("RGBA")
    if opacity >= 1.0:
        return faded
    alpha = faded.getchannel("A").point(lambda a: round_half_up(a * opacity))
    faded.putalpha(alpha)
    return faded


# ---------- Filter graphs (video path) ----------

# ffmpeg unescapes a filter argument twice: once when the graph is split into
# filters, once when the filter splits its key=value options.
OPTION_SPECIALS = "\\':"
GRAPH_SPECIALS = "\\'[],;"


def _backslash_escape(value: str, specials: str) -> str:
    return "".join("\\" + ch if ch in specials else ch for ch in value)


def escape_filter_value(value) -> str:
    """Escape an option value so it reaches the filter verbatim inside -filter_complex."""
    return _backslash_escape(_backslash_escape(str(value), OPTION_SPECIALS), GRAPH_SPECIALS)


def escape_drawtext(text: str) -> str:
    # drawtext expands "%{...}" and treats "\x" as a literal x
    expanded = str(text).replace("\\", "\\\\").replace("%", "\\%")
    return escape_filter_value(expanded)


def logo_filter_graph(canvas_width: int, spec: WatermarkSpec) -> str:
    """Two-input graph: [0:v] is the video, [1:v] the logo."""
    x, y = symbolic_offset(spec.position, spec.margin, OVERLAY_VOCABULARY)
    logo_chain = (
        f"[1:v]scale={target_width(canvas_width, spec.scale)}:-1:flags=lanczos,format=rgba,"
        f"colorchannelmixer=aa={_fmt(_clamp01(spec.opacity))}[wm]"
    )
    overlay = f"[0:v][wm]overlay={x}:{y}:eval=init:format=auto[v]"
    return f"{logo_chain};{overlay}"


def text_filter_graph(canvas_width: int, spec: WatermarkSpec, font_file: Optional[str] = None) -> str:
    text = spec.source.content
    font_size = text_font_size(max(1.0, canvas_width * spec.scale), text)
    x, y = symbolic_offset(spec.position, spec.margin, DRAWTEXT_VOCABULARY)
    if spec.position.is_bottom:
        # text_h tracks glyph extents, so anchor on the font size instead
        y = f"{DRAWTEXT_VOCABULARY.canvas_height}-{_fmt(font_size * VIDEO_TEXT_HEIGHT_FACTOR)}-{max(0, spec.margin)}"

    opacity = _clamp01(spec.opacity)
    parts = [
        f"drawtext=text={escape_drawtext(text)}",
        f"fontfile={escape_filter_value(Path(font_file).as_posix())}" if font_file else None,
        f"fontsize={font_size}",
        f"fontcolor=white@{_fmt(opacity)}",
        f"shadowcolor={VIDEO_SHADOW}",
        f"shadowx={VIDEO_SHADOW_OFFSET}",
        f"shadowy={VIDEO_SHADOW_OFFSET}",
        f"borderw={max(2, round_half_up(font_size * 0.1))}",
        f"bordercolor=black@{min(1.0, opacity + 0.2):.2f}",
        f"x={x}",
        f"y={y}",
        "box=1",
        f"boxcolor={VIDEO_BOX_COLOR}",
        f"boxborderw={VIDEO_BOX_BORDER}",
    ]
    return "[0:v]" + ":".join(p for p in parts if p) + "[v]"


def video_filter_graph(canvas_width: int, spec: WatermarkSpec, font_file: Optional[str] = None) -> str:
    if isinstance(spec.source, ImageRef):
        return logo_filter_graph(canvas_width, spec)
    return text_filter_graph(canvas_width, spec, font_file)
