#!/usr/bin/env python3
"""
Watermark images & videos with an image or text.

- Images: Pillow (keeps EXIF/ICC, same format re-encoded)
- Videos: ffmpeg/ffprobe (re-encodes video, copies audio)
- Positions: top-left, top-right, bottom-left, bottom-right, center
- Scale is relative to the base media width, opacity is 0..1

Examples:
    watermark --input ./images --out ./out --wmImg ./logo.png --position bottom-right --scale 0.2 --opacity 0.5 --margin 24
    watermark --input ./video.mp4 --out ./out --wmText "(c) Emre" --position bottom-left --scale 0.25 --opacity 0.35

Exit codes: 0 on success (an empty folder included), 1 on any validation,
read or engine failure, or when a file of a folder run failed.
"""

import argparse
import json
import sys
from pathlib import Path

from batch_orchestrator import BatchSummary, run
from logging_config import set_verbose
from watermark_config import (
    POSITION_CHOICES,
    PRESET_CHOICES,
    RenderSettings,
    WatermarkError,
    WatermarkSpec,
    env_defaults,
)


class _Parser(argparse.ArgumentParser):
    """argparse exits with 2 on bad flags; this tool reports every failure as 1."""

    def error(self, message):
        self.print_usage(sys.stderr)
        self.exit(1, f"Error: {message}\n")


def build_parser(defaults: dict) -> argparse.ArgumentParser:
    parser = _Parser(
        prog="watermark",
        description="Overlay a text or image watermark onto photos and videos",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("-i", "--input", required=True,
                        help="Path to an image/video file or a folder of media")
    parser.add_argument("-o", "--out", default=str(defaults["output_dir"]),
                        help="Output folder, created if missing (default: ./watermarked)")
    parser.add_argument("--wmImg", dest="wm_img",
                        help="Path to a watermark image (PNG with transparency recommended)")
    parser.add_argument("--wmText", dest="wm_text", help="Watermark text")
    parser.add_argument("-p", "--position", choices=POSITION_CHOICES, default="bottom-right",
                        help="Where to place the watermark (default: bottom-right)")
    parser.add_argument("-s", "--scale", type=float, default=0.2,
                        help="Watermark width as a fraction of the base width, 0 < s <= 1 (default: 0.2)")
    parser.add_argument("-a", "--opacity", type=float, default=0.4,
                        help="Watermark opacity 0..1 (default: 0.4)")
    parser.add_argument("-m", "--margin", type=int, default=24,
                        help="Margin in pixels from the edges (default: 24)")
    parser.add_argument("--suffix", default="_wm", help="Suffix appended to output filenames (default: _wm)")
    parser.add_argument("--quality", type=int, default=90,
                        help="Quality for JPEG/WebP/AVIF/HEIF images (default: 90)")

    video = parser.add_argument_group("video options")
    video.add_argument("--ffmpegPath", dest="ffmpeg_path", default=defaults["ffmpeg_path"],
                       help="Path to the ffmpeg binary (default: ffmpeg on PATH)")
    video.add_argument("--ffprobePath", dest="ffprobe_path", default=defaults["ffprobe_path"],
                       help="Path to the ffprobe binary (default: ffprobe on PATH)")
    video.add_argument("--fontFile", dest="font_file", default=defaults["font_file"],
                       help="Path to a .ttf/.otf font for text watermarks")
    video.add_argument("--vcodec", default=defaults["vcodec"],
                       help="Video codec, e.g. libx264, libx265, libvpx-vp9 (default: libx264)")
    video.add_argument("--crf", type=int, default=defaults["crf"],
                       help="CRF for video quality, lower is better; typical 18-24 (default: 20)")
    video.add_argument("--preset", choices=PRESET_CHOICES, default=defaults["preset"],
                       help="ffmpeg encode preset (default: medium)")
    video.add_argument("--timeout", type=float, default=defaults["timeout"],
                       help="Abort a video encode after this many seconds (default: no limit)")

    parser.add_argument("--fail-fast", action="store_true",
                        help="Stop a folder run at the first failed file")
    parser.add_argument("--dry-run", action="store_true",
                        help="List the files that would be written without processing them")
    parser.add_argument("--report", help="Write a JSON summary of the run to this path")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Show more detailed output for debugging")
    return parser


def options_from_args(args: argparse.Namespace):
    """Turn parsed flags into the immutable (WatermarkSpec, RenderSettings) pair."""
    spec = WatermarkSpec.from_options(
        wm_img=args.wm_img,
        wm_text=args.wm_text,
        position=args.position,
        scale=args.scale,
        opacity=args.opacity,
        margin=args.margin,
    )
    settings = RenderSettings(
        output_dir=Path(args.out),
        suffix=args.suffix,
        quality=args.quality,
        ffmpeg_path=args.ffmpeg_path,
        ffprobe_path=args.ffprobe_path,
        font_file=args.font_file,
        vcodec=args.vcodec,
        crf=args.crf,
        preset=args.preset,
        verbose=args.verbose,
        timeout=args.timeout,
        fail_fast=args.fail_fast,
        dry_run=args.dry_run,
    )
    return spec, settings


def print_summary(summary: BatchSummary, dry_run: bool = False) -> None:
    if dry_run:
        print(f"\nDry run: {summary.planned} file(s) would be written to {summary.output_dir}")
        for result in summary.results:
            if result.output_path:
                print(f"  {result.job.input_path} -> {result.output_path}")
        return

    print(f"\nDone. Processed {summary.processed} item(s) -> {summary.output_dir}")
    if summary.skipped:
        print(f"Skipped (unsupported): {summary.skipped}")
    if summary.failed:
        print(f"Failed: {summary.failed}")
        for result in summary.results:
            if result.error and result.status == "failed":
                print(f"  {result.job.input_path.name}: {result.error.splitlines()[0]}")


def write_report(summary: BatchSummary, report_path) -> Path:
    report_path = Path(report_path)
    report_path.parent.mkdir(parents=True, exist_ok=True)
    with report_path.open("w", encoding="utf-8") as handle:
        json.dump(summary.to_dict(), handle, ensure_ascii=False, indent=2)
    return report_path


def main(argv=None) -> int:
    try:
        parser = build_parser(env_defaults())
    except WatermarkError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    try:
        args = parser.parse_args(argv)
    except SystemExit as exc:
        return exc.code if isinstance(exc.code, int) else 1
    set_verbose(args.verbose)

    try:
        spec, settings = options_from_args(args)
        summary = run(args.input, spec, settings)
        print_summary(summary, settings.dry_run)
        if args.report:
            print(f"Report saved to: {write_report(summary, args.report)}")
    except (WatermarkError, OSError) as exc:
        print(f"\nError: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nError: interrupted", file=sys.stderr)
        return 1

    return 0 if summary.ok else 1


if __name__ == "__main__":
    sys.exit(main())
