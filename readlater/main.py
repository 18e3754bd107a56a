"""Command-line entrypoint: run one URL through the reader pipeline."""
from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import List, Optional

from readlater.config.display import (
    DEFAULT_DISPLAY_SETTINGS,
    FONT_FAMILIES,
    TEXT_ALIGNMENTS,
    DisplaySettings,
    DisplaySettingsError,
)
from readlater.config.settings import AppSettings, SettingsError, load_settings
from readlater.ingestion.errors import ReaderError
from readlater.ingestion.pipeline import build_pipeline
from readlater.telemetry import configure_logging


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="readlater", description="Fetch an article and print it as JSON.")
    parser.add_argument("url", help="Article URL (http or https)")
    parser.add_argument("--raw", action="store_true", help="Print the pre-sanitized page and metadata only")
    parser.add_argument("--settings", type=Path, default=None, help="Path to a settings YAML file")
    parser.add_argument("--font-size", type=int, default=DEFAULT_DISPLAY_SETTINGS.font_size)
    parser.add_argument("--font-family", choices=FONT_FAMILIES, default=DEFAULT_DISPLAY_SETTINGS.font_family)
    parser.add_argument("--line-height", type=float, default=DEFAULT_DISPLAY_SETTINGS.line_height)
    parser.add_argument("--text-align", choices=TEXT_ALIGNMENTS, default=DEFAULT_DISPLAY_SETTINGS.text_align)
    parser.add_argument("--no-images", action="store_true", help="Hide images and their captions")
    parser.add_argument("--no-videos", action="store_true", help="Hide embedded videos")
    return parser


def _load_app_settings(path: Optional[Path]) -> AppSettings:
    try:
        return load_settings(path)
    except SettingsError:
        if path is not None:
            raise
        return AppSettings()


def main(argv: Optional[List[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    configure_logging()

    try:
        display = DisplaySettings(
            font_size=args.font_size,
            font_family=args.font_family,
            line_height=args.line_height,
            text_align=args.text_align,
            show_images=not args.no_images,
            show_videos=not args.no_videos,
        )
        display.validate()
        pipeline = build_pipeline(_load_app_settings(args.settings))
        if args.raw:
            payload = pipeline.parse(args.url).to_payload()
        else:
            payload = pipeline.read(args.url, display).to_payload()
    except (ReaderError, DisplaySettingsError, SettingsError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    json.dump(payload, sys.stdout, ensure_ascii=False, indent=2)
    sys.stdout.write("\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
