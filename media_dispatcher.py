"""
media_dispatcher.py - classify inputs by extension and plan render jobs.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterable, Iterator, Union

IMAGE_EXTENSIONS = frozenset({
    ".jpg", ".jpeg", ".png", ".webp", ".tiff", ".tif", ".avif", ".heic", ".heif", ".gif",
})
VIDEO_EXTENSIONS = frozenset({".mp4", ".mov", ".m4v", ".mkv", ".webm", ".avi"})


class MediaKind(str, Enum):
    IMAGE = "image"
    VIDEO = "video"
    UNSUPPORTED = "unsupported"


@dataclass(frozen=True)
class RenderJob:
    input_path: Path
    output_path: Path
    kind: MediaKind


def extension(path: Union[str, Path]) -> str:
    return Path(path).suffix.lower()


def classify(path: Union[str, Path]) -> MediaKind:
    ext = extension(path)
    if ext in IMAGE_EXTENSIONS:
        return MediaKind.IMAGE
    if ext in VIDEO_EXTENSIONS:
        return MediaKind.VIDEO
    return MediaKind.UNSUPPORTED


def output_path_for(input_path: Union[str, Path], output_dir: Union[str, Path], suffix: str) -> Path:
    """`{output_dir}/{stem}{suffix}{ext}`; the extension keeps its original case."""
    input_path = Path(input_path)
    return Path(output_dir) / f"{input_path.stem}{suffix}{input_path.suffix}"


def plan_job(input_path: Union[str, Path], output_dir: Union[str, Path], suffix: str) -> RenderJob:
    input_path = Path(input_path)
    return RenderJob(input_path, output_path_for(input_path, output_dir, suffix), classify(input_path))


def plan_jobs(paths: Iterable[Union[str, Path]], output_dir: Union[str, Path], suffix: str) -> Iterator[RenderJob]:
    for path in paths:
        yield plan_job(path, output_dir, suffix)


def list_directory(directory: Union[str, Path]):
    """Immediate children that are files, sorted by name (not recursive)."""
    return sorted((p for p in Path(directory).iterdir() if p.is_file()), key=lambda p: p.name)
