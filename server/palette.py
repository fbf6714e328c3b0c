"""Color helpers for SGR foreground codes.

Colors are plain ``(r, g, b)`` tuples with implicit full opacity.
"""

from __future__ import annotations

RGB = tuple[int, int, int]

# Base (30-37) and bright (90-97) foregrounds, brightened for dark backgrounds.
ANSI_COLORS: tuple[RGB, ...] = (
    (40, 40, 40),
    (220, 80, 80),
    (80, 220, 80),
    (220, 220, 80),
    (80, 80, 220),
    (220, 80, 220),
    (80, 220, 220),
    (220, 220, 220),
    (160, 160, 160),
    (255, 120, 120),
    (120, 255, 120),
    (255, 255, 120),
    (120, 120, 255),
    (255, 120, 255),
    (120, 255, 255),
    (255, 255, 255),
)

DEFAULT_COLOR: RGB = (255, 255, 255)

_CUBE_STEP = 51
_GRAY_BASE = 8
_GRAY_STEP = 10


def color_256(n: int) -> RGB | None:
    """Resolve a 256-color palette index, or None if it is out of range."""
    if 0 <= n <= 15:
        return ANSI_COLORS[n]
    if 16 <= n <= 231:
        n -= 16
        r = (n // 36) * _CUBE_STEP
        g = ((n % 36) // 6) * _CUBE_STEP
        b = (n % 6) * _CUBE_STEP
        return (r, g, b)
    if 232 <= n <= 255:
        v = _GRAY_BASE + (n - 232) * _GRAY_STEP
        return (v, v, v)
    return None


def truecolor(r: int, g: int, b: int) -> RGB | None:
    if max(r, g, b) > 255:
        return None
    return (r, g, b)


def rgb_hex(rgb: RGB) -> str:
    r, g, b = rgb
    return f"#{r:02x}{g:02x}{b:02x}"


def parse_rgb(value: str) -> RGB:
    """Parse ``#rrggbb`` (leading ``#`` optional) into an RGB tuple."""
    value = value.strip()
    if value.startswith("#"):
        value = value[1:]
    if len(value) != 6:
        raise ValueError(f"Expected hex RGB like #1a1a1a, got {value!r}")
    try:
        return (int(value[0:2], 16), int(value[2:4], 16), int(value[4:6], 16))
    except ValueError:
        raise ValueError(f"Invalid hex RGB: {value!r}") from None
