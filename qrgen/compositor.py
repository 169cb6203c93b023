"""Logo safe zone and logo compositing onto a colorized QR pixel buffer."""

from dataclasses import dataclass

import numpy as np
from PIL import Image

from qrgen.logging import audit, get_logger, trace

log = get_logger("compositor")

BACKDROP_MARGIN = 4
BACKDROP_COLOR = (255, 255, 255, 255)


# ---------------------------------------------------------------------------
# Safe zone
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SafeZone:
    """Rectangle of the QR image that a logo may cover."""

    x: int
    y: int
    width: int
    height: int

    def expanded(self, margin: int) -> "SafeZone":
        return SafeZone(self.x - margin, self.y - margin,
                        self.width + 2 * margin, self.height + 2 * margin)

    def clamp(self, width: int, height: int) -> tuple[int, int, int, int]:
        """Return ``(x0, y0, x1, y1)`` clipped to ``[0, width) x [0, height)``.

        The result may be empty (x1 <= x0 or y1 <= y0).
        """
        x0 = min(max(self.x, 0), width)
        y0 = min(max(self.y, 0), height)
        x1 = max(min(self.x + self.width, width), x0)
        y1 = max(min(self.y + self.height, height), y0)
        return x0, y0, x1, y1


def calculate_safe_zone(size: int) -> SafeZone:
    """Centered square spanning a quarter of the QR's width.

    A 25% linear (6.25% area) obstruction stays inside what QR error
    correction can repair.
    """
    side = size // 4
    offset = (size - side) // 2
    return SafeZone(offset, offset, side, side)


# ---------------------------------------------------------------------------
# Compositing
# ---------------------------------------------------------------------------

def paint_backdrop(buffer: np.ndarray, zone: SafeZone, margin: int = BACKDROP_MARGIN):
    """Fill the zone grown by ``margin`` on every side with opaque white."""
    height, width = buffer.shape[:2]
    x0, y0, x1, y1 = zone.expanded(margin).clamp(width, height)
    buffer[y0:y1, x0:x1] = BACKDROP_COLOR


def blend_logo(buffer: np.ndarray, zone: SafeZone, logo: np.ndarray) -> int:
    """Alpha-blend an RGBA ``logo`` array onto ``buffer`` at the zone origin.

    out = (1 - a) * existing + a * logo per RGB channel, rounded half up,
    with the result forced opaque. Fully transparent logo pixels are left
    alone, as are targets outside the buffer.

    Returns:
        Number of buffer pixels written.
    """
    height, width = buffer.shape[:2]
    placed = SafeZone(zone.x, zone.y, logo.shape[1], logo.shape[0])
    x0, y0, x1, y1 = placed.clamp(width, height)
    if x1 <= x0 or y1 <= y0:
        return 0

    src = logo[y0 - placed.y:y1 - placed.y, x0 - placed.x:x1 - placed.x]
    dst = buffer[y0:y1, x0:x1]

    alpha = src[..., 3:4].astype(np.float64) / 255.0
    mixed = (1.0 - alpha) * dst[..., :3] + alpha * src[..., :3]
    mixed = np.clip(np.floor(mixed + 0.5), 0, 255).astype(np.uint8)

    visible = src[..., 3] > 0
    dst[visible, :3] = mixed[visible]
    dst[visible, 3] = 255
    return int(visible.sum())


@trace
def composite_logo(buffer: np.ndarray, zone: SafeZone, logo: Image.Image,
                   margin: int = BACKDROP_MARGIN) -> None:
    """Overlay ``logo`` into ``zone`` of ``buffer``, mutating it in place.

    The logo is resized to exactly fill the zone, a white backdrop is painted
    around it so it never touches colored modules, then the logo is
    alpha-blended on top. Geometry overflowing the buffer is clipped.
    """
    paint_backdrop(buffer, zone, margin)
    if zone.width <= 0 or zone.height <= 0:
        return

    fitted = logo.convert("RGBA")
    if fitted.size != (zone.width, zone.height):
        fitted = fitted.resize((zone.width, zone.height), Image.Resampling.LANCZOS)
    written = blend_logo(buffer, zone, np.asarray(fitted, dtype=np.uint8))

    audit("logo.composited", logger=log,
          zone=(zone.x, zone.y, zone.width, zone.height), margin=margin,
          pixels_blended=written)
