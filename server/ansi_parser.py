"""ANSI SGR escape sequence parser and line layout.

Walks a byte buffer once, left to right, and hands positioned, styled runs
to a caller-supplied sink:

    pen = render_ansi_text(b"\\x1b[31merror\\x1b[0m ok\\n", metrics, runs.append)

Runs serialize to compact dicts:
  {"t": "error", "x": 0.0, "y": 0.0, "w": 40.0, "fg": "#dc5050"}

Every call is independent: style and pen exist only for the duration of it.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Callable, Protocol, Union

from palette import ANSI_COLORS, DEFAULT_COLOR, RGB, color_256, rgb_hex, truecolor

logger = logging.getLogger(__name__)

Buffer = Union[bytes, bytearray, memoryview, str]

_ESC = 0x1B
_CSI = 0x5B  # '['
_SEMI = 0x3B
_SGR_FINAL = 0x6D  # 'm'
_NL = 0x0A
_CR = 0x0D
_TAB = 0x09
_BS = 0x08

_TAB_COLUMNS = 8
_REFERENCE_CHAR = b"A"
# Parameters saturate here; every color band ends at 255.
_MAX_PARAM = 65535


class TextMetrics(Protocol):
    """Measurement capability supplied by the caller."""

    line_height: float

    def measure(self, span: bytes | memoryview) -> float:
        ...


class Style:
    __slots__ = ("color", "bold")

    def __init__(self) -> None:
        self.color: RGB = DEFAULT_COLOR
        self.bold: bool = False

    def reset(self) -> None:
        self.color = DEFAULT_COLOR
        self.bold = False


@dataclass
class Pen:
    x: float
    y: float


@dataclass(frozen=True)
class Run:
    """A span of literal text sharing one style, placed at (x, y).

    ``data`` is the caller's buffer; the run only records offsets into it.
    """

    data: bytes | bytearray | memoryview = field(repr=False)
    start: int
    end: int
    color: RGB
    bold: bool
    x: float
    y: float
    width: float

    @property
    def span(self) -> memoryview:
        return memoryview(self.data)[self.start:self.end]

    @property
    def text(self) -> str:
        return str(self.span, "utf-8", "replace")

    def to_dict(self) -> dict[str, Any]:
        """Build a compact run dict, omitting bold when unset."""
        run: dict[str, Any] = {
            "t": self.text,
            "x": self.x,
            "y": self.y,
            "w": self.width,
            "fg": rgb_hex(self.color),
        }
        if self.bold:
            run["b"] = True
        return run


def _apply_sgr(style: Style, codes: list[int]) -> None:
    """Apply SGR parameter codes to the current style, in order."""
    i = 0
    n = len(codes)
    while i < n:
        p = codes[i]
        if p == 0:
            style.reset()
        elif p == 1:
            style.bold = True
        elif p == 22:
            style.bold = False
        elif 30 <= p <= 37:
            style.color = ANSI_COLORS[p - 30]
        elif 90 <= p <= 97:
            style.color = ANSI_COLORS[p - 90 + 8]
        elif p == 38 and i + 1 < n:  # extended fg
            kind = codes[i + 1]
            if kind == 5:
                if i + 2 < n:
                    rgb = color_256(codes[i + 2])
                    if rgb is not None:
                        style.color = rgb
                i += 2
            elif kind == 2:
                if i + 4 < n:
                    rgb = truecolor(codes[i + 2], codes[i + 3], codes[i + 4])
                    if rgb is not None:
                        style.color = rgb
                i += 4
            else:
                i += 1
        i += 1


def _scan_sequence(data: Any, i: int, n: int) -> tuple[int, list[int] | None]:
    """Scan a CSI body starting just past ``ESC [``.

    Returns the offset where literal scanning resumes and the SGR codes, or
    None when the sequence is not a complete SGR sequence. Non-SGR sequences
    are consumed through their final byte. A control byte inside the body
    abandons the sequence so the byte is laid out normally.
    """
    codes: list[int] = []
    value = 0
    sgr = True
    while i < n:
        b = data[i]
        if 0x30 <= b <= 0x39:
            value = min(value * 10 + (b - 0x30), _MAX_PARAM)
        elif b == _SEMI:
            codes.append(value)
            value = 0
        elif 0x20 <= b <= 0x3F:
            # private parameter or intermediate byte
            sgr = False
        elif 0x40 <= b <= 0x7E:
            if b == _SGR_FINAL and sgr:
                codes.append(value)
                return i + 1, codes
            logger.debug("Discarding non-SGR sequence ending in %r at offset %d", chr(b), i)
            return i + 1, None
        else:
            logger.debug("Abandoning escape sequence at offset %d (byte 0x%02x)", i, b)
            return i, None
        i += 1
    logger.debug("Escape sequence truncated at end of buffer")
    return n, None


class _LineLayout:
    """Pen and style for a single render call."""

    __slots__ = ("data", "view", "metrics", "emit", "style", "start_x", "pen", "_char_width")

    def __init__(
        self,
        data: bytes | bytearray | memoryview,
        metrics: TextMetrics,
        emit: Callable[[Run], Any],
        origin: tuple[float, float],
    ) -> None:
        self.data = data
        self.view = memoryview(data)
        self.metrics = metrics
        self.emit = emit
        self.style = Style()
        self.start_x = float(origin[0])
        self.pen = Pen(float(origin[0]), float(origin[1]))
        self._char_width: float | None = None

    def char_width(self) -> float:
        if self._char_width is None:
            self._char_width = self.metrics.measure(_REFERENCE_CHAR)
        return self._char_width

    def write(self, start: int, end: int) -> None:
        """Lay out a literal span, splitting it at control bytes."""
        data = self.data
        seg = start
        for i in range(start, end):
            b = data[i]
            if b >= 0x20 or b == _ESC:
                continue
            self._emit(seg, i)
            seg = i + 1
            self._control(b)
        self._emit(seg, end)

    def _emit(self, start: int, end: int) -> None:
        if end <= start:
            return
        width = self.metrics.measure(self.view[start:end])
        pen = self.pen
        self.emit(Run(
            data=self.data,
            start=start,
            end=end,
            color=self.style.color,
            bold=self.style.bold,
            x=pen.x,
            y=pen.y,
            width=width,
        ))
        pen.x += width

    def _control(self, b: int) -> None:
        pen = self.pen
        if b == _NL:
            pen.x = self.start_x
            pen.y += self.metrics.line_height
        elif b == _CR:
            pen.x = self.start_x
        elif b == _TAB:
            tab_width = self.char_width() * _TAB_COLUMNS
            if tab_width > 0:
                column = pen.x - self.start_x
                pen.x = self.start_x + (math.floor(column / tab_width) + 1) * tab_width
        elif b == _BS:
            pen.x = max(self.start_x, pen.x - self.char_width())
        # Any other control byte is zero-width.

    def finish(self) -> None:
        """Place the pen for whatever the caller lays out next.

        A trailing newline moves down one more line unless it closes a
        ``\\r\\n`` pair; a trailing carriage return only resets x.
        """
        data = self.data
        n = len(data)
        if n == 0:
            return
        last = data[n - 1]
        if last == _NL:
            self.pen.x = self.start_x
            if n == 1 or data[n - 2] != _CR:
                self.pen.y += self.metrics.line_height
        elif last == _CR:
            self.pen.x = self.start_x


def render_ansi_text(
    data: Buffer,
    metrics: TextMetrics,
    emit: Callable[[Run], Any],
    origin: tuple[float, float] = (0.0, 0.0),
) -> Pen:
    """Parse *data* and emit one Run per styled literal span.

    Returns the final pen position so the caller can continue layout there.
    Malformed or truncated escape sequences are dropped, never raised.
    """
    if isinstance(data, str):
        data = data.encode("utf-8")
    layout = _LineLayout(data, metrics, emit, origin)
    n = len(data)
    i = 0
    seg = 0
    while i < n:
        if data[i] == _ESC and i + 1 < n and data[i + 1] == _CSI:
            layout.write(seg, i)
            i, codes = _scan_sequence(data, i + 2, n)
            if codes is not None:
                _apply_sgr(layout.style, codes)
            seg = i
        else:
            i += 1
    layout.write(seg, n)
    layout.finish()
    return layout.pen


def layout_runs(
    data: Buffer,
    metrics: TextMetrics,
    origin: tuple[float, float] = (0.0, 0.0),
) -> tuple[list[Run], Pen]:
    runs: list[Run] = []
    pen = render_ansi_text(data, metrics, runs.append, origin)
    return runs, pen


def parse_runs(
    data: Buffer,
    metrics: TextMetrics,
    origin: tuple[float, float] = (0.0, 0.0),
) -> dict[str, Any]:
    """Lay out *data* and return JSON-ready runs plus the final pen."""
    runs, pen = layout_runs(data, metrics, origin)
    return {
        "runs": [run.to_dict() for run in runs],
        "pen": {"x": pen.x, "y": pen.y},
    }
