"""Text measurement capabilities for the layout engine.

Both classes satisfy ``ansi_parser.TextMetrics``: ``measure(span)`` returns a
width in pen units and ``line_height`` is the vertical advance per line.
"""

from __future__ import annotations

from PIL import ImageFont
from wcwidth import wcwidth


def _decode(span: bytes | memoryview) -> str:
    return str(span, "utf-8", "replace")


def display_cells(text: str) -> int:
    """Count terminal cells; control and combining characters take none."""
    cells = 0
    for ch in text:
        w = wcwidth(ch)
        if w > 0:
            cells += w
    return cells


class MonospaceMetrics:
    """Fixed cell grid: every display cell is ``char_width`` wide."""

    def __init__(self, char_width: float = 8.0, line_height: float = 16.0) -> None:
        if char_width <= 0 or line_height <= 0:
            raise ValueError("char_width and line_height must be positive")
        self.char_width = float(char_width)
        self.line_height = float(line_height)

    def measure(self, span: bytes | memoryview) -> float:
        return display_cells(_decode(span)) * self.char_width


class PillowFontMetrics:
    """Measures with a Pillow font, matching what ``canvas.ImageSink`` draws."""

    def __init__(self, font: ImageFont.ImageFont | ImageFont.FreeTypeFont, line_gap: int = 0) -> None:
        self.font = font
        if hasattr(font, "getmetrics"):
            ascent, descent = font.getmetrics()
            height = ascent + descent
        else:
            # bitmap fonts carry no metrics
            bbox = font.getbbox("Ay")
            height = bbox[3] - bbox[1]
        self.line_height = float(max(1, height + line_gap))

    @classmethod
    def from_path(cls, path: str, size: int = 16, line_gap: int = 0) -> "PillowFontMetrics":
        try:
            font = ImageFont.truetype(path, size)
        except OSError as exc:
            raise ValueError(f"Cannot load font {path!r}: {exc}") from exc
        return cls(font, line_gap=line_gap)

    @classmethod
    def default(cls, size: int = 16, line_gap: int = 0) -> "PillowFontMetrics":
        return cls(ImageFont.load_default(size=size), line_gap=line_gap)

    def measure(self, span: bytes | memoryview) -> float:
        text = _decode(span)
        # A lone ESC stays inside runs as inert text; keep it zero-width.
        text = "".join(ch for ch in text if ch >= " ")
        if not text:
            return 0.0
        return float(self.font.getlength(text))
