"""
image_renderer.py - watermark a still image with Pillow.

The output keeps the input's format (re-encoded, never converted), its EXIF
block, ICC profile and DPI. Orientation is left exactly as stored. Animated
inputs (GIF, animated WebP) are flattened to their first frame.
"""

from __future__ import annotations

from pathlib import Path
from typing import Dict, Tuple

from PIL import Image, UnidentifiedImageError
from pillow_heif import register_heif_opener

import overlay_builder
from geometry import Dimensions, resolve_offset
from logging_config import get_logger
from media_dispatcher import extension, output_path_for
from watermark_config import ReadError, RenderSettings, WatermarkSpec, WriteError

logger = get_logger(__name__)

# HEIC/HEIF open and save support
register_heif_opener()

FORMAT_BY_EXTENSION: Dict[str, str] = {
    ".jpg": "JPEG",
    ".jpeg": "JPEG",
    ".png": "PNG",
    ".webp": "WEBP",
    ".tiff": "TIFF",
    ".tif": "TIFF",
    ".avif": "AVIF",
    ".heic": "HEIF",
    ".heif": "HEIF",
    ".gif": "GIF",
}
LOSSY_FORMATS = {"JPEG", "WEBP", "AVIF", "HEIF"}
ALPHA_FORMATS = {"PNG", "WEBP", "AVIF", "TIFF", "GIF", "HEIF"}
FALLBACK_FORMAT = "JPEG"


def can_write(fmt: str) -> bool:
    """True if the active Pillow build has an encoder for `fmt`."""
    Image.init()
    return fmt in Image.SAVE


def choose_format(ext: str) -> str:
    fmt = FORMAT_BY_EXTENSION.get(ext.lower())
    if fmt is None:
        raise ValueError(f"Not an image extension: {ext}")
    if not can_write(fmt):
        logger.warning("No %s encoder available; writing %s data instead", fmt, FALLBACK_FORMAT)
        return FALLBACK_FORMAT
    return fmt


def save_options(fmt: str, quality: int, info: dict) -> dict:
    options: dict = {"format": fmt}
    if info.get("exif"):
        options["exif"] = info["exif"]
    if info.get("icc_profile"):
        options["icc_profile"] = info["icc_profile"]
    if info.get("dpi") and fmt in {"JPEG", "PNG", "TIFF"}:
        options["dpi"] = info["dpi"]

    if fmt == "JPEG":
        options.update(quality=quality, optimize=True)
    elif fmt in LOSSY_FORMATS:
        options["quality"] = quality
    elif fmt == "TIFF":
        options["compression"] = "tiff_lzw"
    elif fmt == "PNG":
        options["optimize"] = True
    return options


def _has_alpha(image: Image.Image) -> bool:
    return image.mode in ("RGBA", "LA", "PA", "RGBa", "La") or "transparency" in image.info


def output_mode(source_mode: str, has_alpha: bool, fmt: str) -> str:
    if has_alpha and fmt in ALPHA_FORMATS:
        return "RGBA"
    if source_mode == "CMYK" and fmt in {"JPEG", "TIFF"}:
        return "CMYK"
    if source_mode == "L" and fmt in {"JPEG", "PNG", "TIFF", "GIF"}:
        return "L"
    return "RGB"


def read_canvas(input_path: Path) -> Tuple[Image.Image, dict, Dimensions, bool]:
    """Load the first frame as RGBA plus the metadata needed to write it back."""
    try:
        with Image.open(input_path) as source:
            if getattr(source, "is_animated", False):
                logger.debug("%s is animated; using the first frame only", input_path.name)
                source.seek(0)
            source.load()
            info = dict(source.info)
            mode = source.mode
            alpha = _has_alpha(source)
            base = source.convert("RGBA")
    except (OSError, UnidentifiedImageError, ValueError, Image.DecompressionBombError) as exc:
        raise ReadError(f"Could not read dimensions for {input_path}: {exc}") from exc
    if not base.width or not base.height:
        raise ReadError(f"Could not read dimensions for {input_path}")
    info["_mode"] = mode
    return base, info, Dimensions(base.width, base.height), alpha


def composite(base: Image.Image, overlay: Image.Image, offset: Tuple[int, int], opacity: float) -> Image.Image:
    layer = Image.new("RGBA", base.size, (0, 0, 0, 0))
    layer.paste(overlay_builder.apply_opacity(overlay, opacity), offset)
    return Image.alpha_composite(base, layer)


def render_image(input_path, spec: WatermarkSpec, settings: RenderSettings) -> Path:
    input_path = Path(input_path)
    base, info, canvas, alpha = read_canvas(input_path)

    overlay = overlay_builder.build(spec, canvas.width, settings.font_file)
    offset = resolve_offset(canvas, Dimensions(*overlay.size), spec.position, spec.margin)
    logger.debug(
        "%s: canvas %dx%d, overlay %dx%d at %s",
        input_path.name, canvas.width, canvas.height, overlay.width, overlay.height, offset,
    )
    composed = composite(base, overlay, offset, spec.opacity)

    fmt = choose_format(extension(input_path))
    composed = composed.convert(output_mode(info.pop("_mode"), alpha, fmt))

    out_path = output_path_for(input_path, settings.output_dir, settings.suffix)
    try:
        out_path.parent.mkdir(parents=True, exist_ok=True)
        composed.save(out_path, **save_options(fmt, settings.quality, info))
    except OSError as exc:
        raise WriteError(f"Could not write {out_path}: {exc}") from exc
    logger.info("Saved -> %s", out_path)
    return out_path
