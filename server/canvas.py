"""Rasterize laid-out runs with Pillow."""

from __future__ import annotations

import io
import math

from PIL import Image, ImageDraw, ImageFont

from ansi_parser import Buffer, Run, TextMetrics, layout_runs
from palette import RGB

DEFAULT_BACKGROUND: RGB = (26, 26, 26)


class ImageSink:
    """Emission sink that draws each run onto a Pillow image."""

    def __init__(
        self,
        draw: ImageDraw.ImageDraw,
        font: ImageFont.ImageFont | ImageFont.FreeTypeFont,
        offset: tuple[float, float] = (0.0, 0.0),
    ) -> None:
        self.draw = draw
        self.font = font
        self.offset = offset

    def __call__(self, run: Run) -> None:
        text = "".join(ch for ch in run.text if ch >= " ")
        if not text:
            return
        x = run.x + self.offset[0]
        y = run.y + self.offset[1]
        self.draw.text((x, y), text, font=self.font, fill=run.color)
        if run.bold:
            # faux bold: overstrike one pixel to the right
            self.draw.text((x + 1, y), text, font=self.font, fill=run.color)


def render_image(
    data: Buffer,
    metrics: TextMetrics,
    font: ImageFont.ImageFont | ImageFont.FreeTypeFont,
    *,
    padding: int = 8,
    background: RGB = DEFAULT_BACKGROUND,
) -> Image.Image:
    """Lay out *data* from the origin and draw it on a canvas sized to fit."""
    runs, pen = layout_runs(data, metrics)
    right = max((run.x + run.width for run in runs), default=0.0)
    bottom = max((run.y for run in runs), default=0.0) + metrics.line_height
    bottom = max(bottom, pen.y)
    width = int(math.ceil(right)) + 2 * padding + 1
    height = int(math.ceil(bottom)) + 2 * padding
    image = Image.new("RGB", (max(1, width), max(1, height)), background)
    sink = ImageSink(ImageDraw.Draw(image), font, offset=(padding, padding))
    for run in runs:
        sink(run)
    return image


def render_png(
    data: Buffer,
    metrics: TextMetrics,
    font: ImageFont.ImageFont | ImageFont.FreeTypeFont,
    **kwargs,
) -> bytes:
    buf = io.BytesIO()
    render_image(data, metrics, font, **kwargs).save(buf, format="PNG")
    return buf.getvalue()
