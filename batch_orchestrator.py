"""
batch_orchestrator.py - feed a file or a folder of media through the renderers.

Jobs run strictly one after another. In a folder run each job's failure is
recorded in its JobResult and the loop moves on; `fail_fast` stops at the
first failure instead. A single-file run always propagates its error.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional

from image_renderer import render_image
from logging_config import get_logger
from media_dispatcher import MediaKind, RenderJob, list_directory, plan_job
from video_renderer import render_video
from watermark_config import (
    RenderSettings,
    ValidationError,
    WatermarkError,
    WatermarkSpec,
    WriteError,
)

logger = get_logger(__name__)

SUCCEEDED = "succeeded"
FAILED = "failed"
SKIPPED = "skipped"
PLANNED = "planned"


@dataclass
class JobResult:
    job: RenderJob
    status: str
    output_path: Optional[Path] = None
    error: Optional[str] = None


@dataclass
class BatchSummary:
    output_dir: Path
    results: List[JobResult] = field(default_factory=list)

    def _count(self, status: str) -> int:
        return sum(1 for r in self.results if r.status == status)

    @property
    def processed(self) -> int:
        return self._count(SUCCEEDED)

    @property
    def failed(self) -> int:
        return self._count(FAILED)

    @property
    def skipped(self) -> int:
        return self._count(SKIPPED)

    @property
    def planned(self) -> int:
        return self._count(PLANNED)

    @property
    def ok(self) -> bool:
        return self.failed == 0

    def to_dict(self) -> dict:
        return {
            "output_dir": str(self.output_dir),
            "processed": self.processed,
            "failed": self.failed,
            "skipped": self.skipped,
            "planned": self.planned,
            "results": [
                {
                    "input": str(r.job.input_path),
                    "output": str(r.output_path) if r.output_path else None,
                    "kind": r.job.kind.value,
                    "status": r.status,
                    "error": r.error,
                }
                for r in self.results
            ],
        }


Renderer = Callable[..., Path]


def default_renderers() -> Dict[MediaKind, Renderer]:
    return {MediaKind.IMAGE: render_image, MediaKind.VIDEO: render_video}


def _skip(job: RenderJob) -> JobResult:
    message = f"Skipping unsupported file: {job.input_path}"
    logger.warning(message)
    return JobResult(job, SKIPPED, error=message)


def process_one(
    job: RenderJob,
    spec: WatermarkSpec,
    settings: RenderSettings,
    renderers: Optional[Dict[MediaKind, Renderer]] = None,
    cancel_event: Optional[threading.Event] = None,
) -> JobResult:
    """Render one job. Errors propagate; the caller decides whether to isolate them."""
    if job.kind is MediaKind.UNSUPPORTED:
        return _skip(job)
    renderers = renderers or default_renderers()
    if settings.dry_run:
        logger.info("   would write -> %s", job.output_path)
        return JobResult(job, PLANNED, job.output_path)
    if job.kind is MediaKind.VIDEO:
        out = renderers[job.kind](job.input_path, spec, settings, cancel_event=cancel_event)
    else:
        out = renderers[job.kind](job.input_path, spec, settings)
    return JobResult(job, SUCCEEDED, Path(out))


def run(
    input_path,
    spec: WatermarkSpec,
    settings: RenderSettings,
    renderers: Optional[Dict[MediaKind, Renderer]] = None,
    cancel_event: Optional[threading.Event] = None,
) -> BatchSummary:
    input_path = Path(input_path)
    if not input_path.exists():
        raise ValidationError(f"Input path does not exist: {input_path}")

    summary = BatchSummary(settings.output_dir)
    if not settings.dry_run:
        try:
            settings.output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise WriteError(f"Could not create output folder {settings.output_dir}: {exc}") from exc

    if not input_path.is_dir():
        job = plan_job(input_path, settings.output_dir, settings.suffix)
        logger.info("%s: %s", job.kind.value, input_path.name)
        summary.results.append(process_one(job, spec, settings, renderers, cancel_event))
        return summary

    jobs = [plan_job(p, settings.output_dir, settings.suffix) for p in list_directory(input_path)]
    for job in jobs:
        if job.kind is MediaKind.UNSUPPORTED:
            summary.results.append(_skip(job))
    queue = [job for job in jobs if job.kind is not MediaKind.UNSUPPORTED]
    if not queue:
        logger.info("No supported images/videos found in folder: %s", input_path)
        return summary

    for idx, job in enumerate(queue, start=1):
        if cancel_event is not None and cancel_event.is_set():
            logger.warning("Cancelled; %d file(s) left unprocessed", len(queue) - idx + 1)
            break
        logger.info("[%d/%d] %s: %s", idx, len(queue), job.kind.value, job.input_path.name)
        try:
            summary.results.append(process_one(job, spec, settings, renderers, cancel_event))
        except (WatermarkError, OSError) as exc:
            if settings.fail_fast:
                raise
            logger.error("Failed %s: %s", job.input_path.name, exc)
            summary.results.append(JobResult(job, FAILED, error=str(exc)))
    return summary
