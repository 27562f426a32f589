"""
video_renderer.py - watermark a video by driving ffmpeg/ffprobe.

- ffprobe supplies the frame size (required) and the duration (optional)
- overlay_builder supplies the filter graph
- ffmpeg re-encodes the video stream and copies audio untouched
- progress is parsed from ffmpeg's stderr ("time=HH:MM:SS.ff")

The encode is exposed as a generator of EncodeProgress events so callers can
show progress however they like; render_video() feeds a tqdm bar.
"""

from __future__ import annotations

import json
import math
import re
import shlex
import shutil
import subprocess
import threading
import time
from collections import deque
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Optional

from tqdm import tqdm

import overlay_builder
from geometry import Dimensions
from logging_config import get_logger
from media_dispatcher import output_path_for
from watermark_config import EngineError, ImageRef, ReadError, RenderSettings, WatermarkSpec

logger = get_logger(__name__)

_TIME_RE = re.compile(r"time=(\d+):(\d+):(\d+(?:\.\d+)?)")
DIAGNOSTIC_TAIL_LINES = 40
WATCHDOG_POLL_SECONDS = 0.2


@dataclass(frozen=True)
class EncodeProgress:
    elapsed_seconds: float
    percent: Optional[float]
    line: str


# ---------- Binaries ----------

def ensure_available(binary: str) -> str:
    """Return the runnable path for `binary` or raise EngineError."""
    if Path(binary).is_file():
        return str(binary)
    found = shutil.which(binary)
    if not found:
        raise EngineError(f"Command '{binary}' not found. Make sure it's installed and in your PATH.")
    return found


def _run_probe(ffprobe: str, args: List[str]) -> subprocess.CompletedProcess:
    cmd = [ensure_available(ffprobe)] + args
    logger.debug("Running ffprobe: %s", " ".join(shlex.quote(c) for c in cmd))
    try:
        return subprocess.run(cmd, capture_output=True, text=True)
    except OSError as exc:
        raise EngineError(f"Could not run {ffprobe}: {exc}") from exc


# ---------- Probing ----------

def probe_dimensions(path, ffprobe: str = "ffprobe") -> Dimensions:
    proc = _run_probe(ffprobe, [
        "-v", "error",
        "-select_streams", "v:0",
        "-show_entries", "stream=width,height",
        "-of", "json",
        str(path),
    ])
    if proc.returncode != 0:
        raise ReadError(f"ffprobe couldn't read video dimensions for {path}: {proc.stderr.strip()}")
    try:
        streams = json.loads(proc.stdout or "{}").get("streams") or []
        width = int(streams[0].get("width") or 0) if streams else 0
        height = int(streams[0].get("height") or 0) if streams else 0
    except (ValueError, TypeError, AttributeError) as exc:
        raise ReadError(f"ffprobe returned unreadable output for {path}: {exc}") from exc
    if not width or not height:
        raise ReadError(f"ffprobe couldn't read video dimensions for {path}")
    logger.debug("Video dimensions: %dx%d", width, height)
    return Dimensions(width, height)


def probe_duration(path, ffprobe: str = "ffprobe") -> Optional[float]:
    """Duration in seconds, or None when ffprobe cannot tell."""
    try:
        proc = _run_probe(ffprobe, [
            "-v", "error",
            "-show_entries", "format=duration",
            "-of", "default=noprint_wrappers=1:nokey=1",
            str(path),
        ])
    except EngineError:
        return None
    if proc.returncode != 0:
        return None
    try:
        duration = float((proc.stdout or "").strip())
    except ValueError:
        return None
    if not math.isfinite(duration) or duration <= 0:
        return None
    return duration


# ---------- Progress ----------

def parse_progress_time(line: str) -> Optional[float]:
    m = _TIME_RE.search(line)
    if not m:
        return None
    hours, minutes, seconds = m.groups()
    return int(hours) * 3600 + int(minutes) * 60 + float(seconds)


def progress_percent(elapsed: float, duration: Optional[float]) -> Optional[float]:
    if not duration:
        return None
    return min(100.0, elapsed / duration * 100.0)


# ---------- Command ----------

def build_ffmpeg_command(
    input_path: Path,
    output_path: Path,
    spec: WatermarkSpec,
    settings: RenderSettings,
    canvas: Dimensions,
) -> List[str]:
    cmd = [settings.ffmpeg_path, "-y", "-i", str(input_path)]
    if isinstance(spec.source, ImageRef):
        cmd += ["-i", str(spec.source.path)]
    cmd += [
        "-filter_complex", overlay_builder.video_filter_graph(canvas.width, spec, settings.font_file),
        "-map", "[v]",
        "-map", "0:a?",
        "-c:v", settings.vcodec,
        "-preset", settings.preset,
        "-crf", str(settings.crf),
        "-c:a", "copy",
        str(output_path),
    ]
    return cmd


def _watchdog(proc: subprocess.Popen, finished: threading.Event, cancel_event: Optional[threading.Event],
              timeout: Optional[float], state: dict) -> None:
    deadline = time.monotonic() + timeout if timeout else None
    while not finished.wait(WATCHDOG_POLL_SECONDS):
        if cancel_event is not None and cancel_event.is_set():
            state["reason"] = "cancelled"
        elif deadline is not None and time.monotonic() >= deadline:
            state["reason"] = f"timed out after {timeout:g}s"
        else:
            continue
        if proc.poll() is None:
            proc.kill()
        return


def iter_encode(
    cmd: List[str],
    duration: Optional[float] = None,
    timeout: Optional[float] = None,
    cancel_event: Optional[threading.Event] = None,
) -> Iterator[EncodeProgress]:
    """Run ffmpeg and yield one EncodeProgress per diagnostic line.

    Raises EngineError when ffmpeg is missing, exits non-zero, exceeds
    `timeout` seconds or `cancel_event` gets set.
    """
    binary = ensure_available(cmd[0])
    if cancel_event is not None and cancel_event.is_set():
        raise EngineError(f"{cmd[0]} cancelled before start")
    try:
        proc = subprocess.Popen(
            [binary] + list(cmd[1:]),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.PIPE,
            text=True,
            errors="replace",
        )
    except OSError as exc:
        raise EngineError(f"Could not run {cmd[0]}: {exc}") from exc

    tail: deque = deque(maxlen=DIAGNOSTIC_TAIL_LINES)
    finished = threading.Event()
    state: dict = {}
    watchdog = None
    if timeout or cancel_event is not None:
        watchdog = threading.Thread(
            target=_watchdog, args=(proc, finished, cancel_event, timeout, state), daemon=True
        )
        watchdog.start()

    elapsed = 0.0
    try:
        for raw in proc.stderr:
            line = raw.rstrip()
            if not line:
                continue
            tail.append(line)
            seconds = parse_progress_time(line)
            if seconds is not None:
                elapsed = seconds
            yield EncodeProgress(elapsed, progress_percent(elapsed, duration), line)
        returncode = proc.wait()
    finally:
        finished.set()
        if proc.poll() is None:
            proc.kill()
            proc.wait()
        proc.stderr.close()
        if watchdog is not None:
            watchdog.join()

    diagnostics = "\n".join(tail)
    if state.get("reason"):
        raise EngineError(f"{cmd[0]} {state['reason']}\n{diagnostics}", diagnostics)
    if returncode != 0:
        raise EngineError(f"{cmd[0]} exited with code {returncode}\n{diagnostics}", diagnostics)


# ---------- Render ----------

def render_video(
    input_path,
    spec: WatermarkSpec,
    settings: RenderSettings,
    cancel_event: Optional[threading.Event] = None,
) -> Path:
    input_path = Path(input_path)
    ensure_available(settings.ffmpeg_path)
    canvas = probe_dimensions(input_path, settings.ffprobe_path)
    duration = probe_duration(input_path, settings.ffprobe_path)

    out_path = output_path_for(input_path, settings.output_dir, settings.suffix)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    cmd = build_ffmpeg_command(input_path, out_path, spec, settings, canvas)

    logger.info("Processing video... (%s)", f"{duration:.1f}s" if duration else "unknown length")
    logger.debug("ffmpeg command: %s", " ".join(shlex.quote(c) for c in cmd))
    logger.debug("Filter complex: %s", cmd[cmd.index("-filter_complex") + 1])

    total = 100.0 if duration else None
    unit = "%" if duration else "s"
    with tqdm(total=total, unit=unit, desc=input_path.name, leave=False,
              disable=settings.verbose) as bar:
        for event in iter_encode(cmd, duration, settings.timeout, cancel_event):
            if settings.verbose:
                logger.debug("ffmpeg: %s", event.line)
            current = event.percent if event.percent is not None else event.elapsed_seconds
            if current > bar.n:
                bar.update(current - bar.n)
        if total is not None and bar.n < total:
            bar.update(total - bar.n)

    logger.info("Saved -> %s", out_path)
    return out_path
