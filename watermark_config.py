"""
watermark_config.py - immutable configuration for a watermark run.

The CLI parses flags once and bundles them into two frozen objects:
- WatermarkSpec: what to draw (logo or text), where, how big, how opaque
- RenderSettings: how to write it (output folder, codecs, quality, binaries)

Both are passed explicitly to the renderers and the batch orchestrator.
Defaults for the engine-related settings can come from a `.env` file next to
this module or from the process environment.
"""

from __future__ import annotations

import math
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Union

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent
load_dotenv(BASE_DIR / ".env")


# ---------- Errors ----------

class WatermarkError(Exception):
    """Base class for every failure the CLI reports with exit code 1."""


class ValidationError(WatermarkError):
    """Options are inconsistent or out of range. Raised before any file I/O."""


class ReadError(WatermarkError):
    """A medium (or the logo) could not be read or has no usable dimensions."""


class WriteError(WatermarkError):
    """The output folder or an output file could not be written."""


class EngineError(WatermarkError):
    """ffmpeg/ffprobe is missing, exited non-zero, timed out or was cancelled."""

    def __init__(self, message: str, diagnostics: str = ""):
        super().__init__(message)
        self.diagnostics = diagnostics


# ---------- Positions ----------

class Anchor(str, Enum):
    START = "start"
    CENTER = "center"
    END = "end"


class Position(str, Enum):
    TOP_LEFT = "top-left"
    TOP_RIGHT = "top-right"
    BOTTOM_LEFT = "bottom-left"
    BOTTOM_RIGHT = "bottom-right"
    CENTER = "center"

    @classmethod
    def parse(cls, value: Union[str, "Position"]) -> "Position":
        if isinstance(value, Position):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            choices = ", ".join(p.value for p in cls)
            raise ValidationError(f"--position must be one of: {choices} (got {value!r})") from None

    @property
    def horizontal(self) -> Anchor:
        if self is Position.CENTER:
            return Anchor.CENTER
        return Anchor.END if self.value.endswith("right") else Anchor.START

    @property
    def vertical(self) -> Anchor:
        if self is Position.CENTER:
            return Anchor.CENTER
        return Anchor.END if self.value.startswith("bottom") else Anchor.START

    @property
    def is_bottom(self) -> bool:
        return self.vertical is Anchor.END


POSITION_CHOICES = [p.value for p in Position]
PRESET_CHOICES = [
    "ultrafast", "superfast", "veryfast", "faster", "fast",
    "medium", "slow", "slower", "veryslow",
]


# ---------- Watermark sources ----------

@dataclass(frozen=True)
class ImageRef:
    path: Path


@dataclass(frozen=True)
class TextLabel:
    content: str


WatermarkSource = Union[ImageRef, TextLabel]


@dataclass(frozen=True)
class WatermarkSpec:
    source: WatermarkSource
    position: Position = Position.BOTTOM_RIGHT
    scale: float = 0.2
    opacity: float = 0.4
    margin: int = 24

    def __post_init__(self):
        if not isinstance(self.source, (ImageRef, TextLabel)):
            raise ValidationError("You must provide either --wmImg or --wmText.")
        if isinstance(self.source, TextLabel) and not self.source.content.strip():
            raise ValidationError("--wmText must not be empty.")
        if not _finite(self.scale) or self.scale <= 0 or self.scale > 1.0:
            raise ValidationError("--scale must be in (0, 1].")
        if not _finite(self.opacity) or self.opacity < 0 or self.opacity > 1.0:
            raise ValidationError("--opacity must be in [0, 1].")
        if isinstance(self.margin, bool) or not isinstance(self.margin, int) or self.margin < 0:
            raise ValidationError("--margin must be a non-negative integer.")
        object.__setattr__(self, "position", Position.parse(self.position))

    @classmethod
    def from_options(
        cls,
        wm_img: Optional[str] = None,
        wm_text: Optional[str] = None,
        position: Union[str, Position] = Position.BOTTOM_RIGHT,
        scale: float = 0.2,
        opacity: float = 0.4,
        margin: int = 24,
    ) -> "WatermarkSpec":
        """Build a spec from raw option values; exactly one source is allowed."""
        if wm_img and wm_text:
            raise ValidationError("Provide only one of --wmImg or --wmText, not both.")
        if wm_img:
            source: Optional[WatermarkSource] = ImageRef(Path(wm_img))
        elif wm_text is not None and wm_text != "":
            source = TextLabel(wm_text)
        else:
            raise ValidationError("You must provide either --wmImg or --wmText.")
        return cls(source=source, position=Position.parse(position), scale=scale, opacity=opacity, margin=margin)

    @property
    def is_text(self) -> bool:
        return isinstance(self.source, TextLabel)


def _finite(value) -> bool:
    try:
        return math.isfinite(float(value))
    except (TypeError, ValueError):
        return False


# ---------- Render settings ----------

def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an integer (got {raw!r})") from None


def _env_float(name: str) -> Optional[float]:
    raw = os.getenv(name, "").strip()
    if not raw:
        return None
    try:
        return float(raw)
    except ValueError:
        raise ValidationError(f"{name} must be a number of seconds (got {raw!r})") from None


def env_defaults() -> dict:
    """Defaults for RenderSettings read from the environment (.env included)."""
    return {
        "output_dir": Path(os.getenv("WATERMARK_OUTPUT_DIR", "./watermarked")),
        "ffmpeg_path": os.getenv("WATERMARK_FFMPEG_PATH", "ffmpeg"),
        "ffprobe_path": os.getenv("WATERMARK_FFPROBE_PATH", "ffprobe"),
        "font_file": os.getenv("WATERMARK_FONT_FILE") or None,
        "vcodec": os.getenv("WATERMARK_VCODEC", "libx264"),
        "crf": _env_int("WATERMARK_CRF", 20),
        "preset": os.getenv("WATERMARK_PRESET", "medium"),
        "timeout": _env_float("WATERMARK_TIMEOUT"),
    }


@dataclass(frozen=True)
class RenderSettings:
    output_dir: Path = Path("./watermarked")
    suffix: str = "_wm"
    quality: int = 90
    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"
    font_file: Optional[str] = None
    vcodec: str = "libx264"
    crf: int = 20
    preset: str = "medium"
    verbose: bool = False
    timeout: Optional[float] = None
    fail_fast: bool = False
    dry_run: bool = False

    def __post_init__(self):
        object.__setattr__(self, "output_dir", Path(self.output_dir))
        if not 1 <= int(self.quality) <= 100:
            raise ValidationError(f"--quality must be between 1 and 100 (got {self.quality})")
        if not 0 <= int(self.crf) <= 63:
            raise ValidationError(f"--crf must be between 0 and 63 (got {self.crf})")
        if self.preset not in PRESET_CHOICES:
            raise ValidationError(f"--preset must be one of: {', '.join(PRESET_CHOICES)} (got {self.preset!r})")
        if self.timeout is not None and self.timeout <= 0:
            raise ValidationError(f"--timeout must be a positive number of seconds (got {self.timeout})")
