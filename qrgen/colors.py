"""Color parsing and QR bitmap color remapping."""

import string
from dataclasses import dataclass

import numpy as np

from qrgen.logging import get_logger, trace, warn

log = get_logger("colors")

RGBA = tuple[int, int, int, int]

DEFAULT_FG: RGBA = (0, 0, 0, 255)
DEFAULT_BG: RGBA = (255, 255, 255, 255)

_HEX_DIGITS = frozenset(string.hexdigits)


@dataclass(frozen=True)
class ColorResult:
    """Either a parsed color or a marker telling the caller to use its default."""

    color: RGBA | None
    default: RGBA

    @property
    def is_default(self) -> bool:
        return self.color is None

    def resolve(self) -> RGBA:
        return self.default if self.color is None else self.color


def parse_hex_color(value: str | None, default: RGBA) -> ColorResult:
    """Parse ``#RRGGBB`` into an opaque RGBA color.

    Anything that is not exactly ``#`` plus six hex digits yields a
    default-marked result instead of raising.
    """
    if value is None:
        return ColorResult(None, default)
    if len(value) != 7 or value[0] != "#" or not all(c in _HEX_DIGITS for c in value[1:]):
        warn("color.invalid", logger=log, value=value, fallback=default)
        return ColorResult(None, default)
    r, g, b = (int(value[i:i + 2], 16) for i in (1, 3, 5))
    return ColorResult((r, g, b, 255), default)


@trace
def colorize(bitmap: np.ndarray, fg_color: str | None = None, bg_color: str | None = None) -> np.ndarray:
    """Map an on/off bitmap to an RGBA pixel buffer.

    Args:
        bitmap: 2-D bool array, True = "on" (dark) module pixel.
        fg_color: Hex color for "on" pixels, default opaque black.
        bg_color: Hex color for "off" pixels, default opaque white.

    Returns:
        uint8 array of shape (h, w, 4), fully opaque.
    """
    fg = np.array(parse_hex_color(fg_color, DEFAULT_FG).resolve(), dtype=np.uint8)
    bg = np.array(parse_hex_color(bg_color, DEFAULT_BG).resolve(), dtype=np.uint8)
    return np.where(bitmap[..., np.newaxis], fg, bg).astype(np.uint8)
