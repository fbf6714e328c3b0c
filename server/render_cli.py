#!/usr/bin/env python3
"""Render ANSI-colored text to JSON runs or a PNG image."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from ansi_parser import parse_runs
from canvas import DEFAULT_BACKGROUND, render_png
from metrics import MonospaceMetrics, PillowFontMetrics
from palette import parse_rgb, rgb_hex

logger = logging.getLogger("render_cli")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Lay out ANSI-colored text as positioned runs")
    parser.add_argument("input", nargs="?", default="-", help="Input file, or - for stdin")
    parser.add_argument("--png", default="", help="Write a PNG here instead of printing JSON")
    parser.add_argument("--font", default="", help="TrueType font path (default: Pillow built-in)")
    parser.add_argument("--font-size", type=int, default=16)
    parser.add_argument("--char-width", type=float, default=0.0, help="Use a fixed cell grid of this width")
    parser.add_argument("--line-height", type=float, default=16.0, help="Line height for --char-width")
    parser.add_argument("--origin-x", type=float, default=0.0, help="Layout origin x (JSON output only)")
    parser.add_argument("--origin-y", type=float, default=0.0, help="Layout origin y (JSON output only)")
    parser.add_argument("--bg", default=rgb_hex(DEFAULT_BACKGROUND), help="PNG background as #rrggbb")
    parser.add_argument("--padding", type=int, default=8)
    parser.add_argument("--log-level", default="WARNING")
    return parser.parse_args(argv)


def read_input(path: str) -> bytes:
    if path == "-":
        return sys.stdin.buffer.read()
    return Path(path).read_bytes()


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        data = read_input(args.input)
    except OSError as exc:
        print(f"render_cli: cannot read {args.input}: {exc}", file=sys.stderr)
        return 2

    try:
        font_metrics = (
            PillowFontMetrics.from_path(args.font, args.font_size)
            if args.font
            else PillowFontMetrics.default(args.font_size)
        )
        background = parse_rgb(args.bg)
        metrics = (
            MonospaceMetrics(args.char_width, args.line_height)
            if args.char_width > 0
            else font_metrics
        )
    except ValueError as exc:
        print(f"render_cli: {exc}", file=sys.stderr)
        return 2

    if args.png:
        png = render_png(data, metrics, font_metrics.font, padding=args.padding, background=background)
        Path(args.png).write_bytes(png)
        logger.info("Wrote %d bytes to %s", len(png), args.png)
        return 0

    result = parse_runs(data, metrics, origin=(args.origin_x, args.origin_y))
    json.dump(result, sys.stdout, separators=(",", ":"))
    sys.stdout.write("\n")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
