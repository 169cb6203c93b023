"""QR bitmap generation: text -> monochrome size x size bitmap."""

import numpy as np
import qrcode
import qrcode.constants

from qrgen.exceptions import InvalidRequestError
from qrgen.logging import audit, get_logger, trace

log = get_logger("generator")

# Highest level, so a centered logo stays within the correctable budget.
ERROR_CORRECTION = qrcode.constants.ERROR_CORRECT_H
QUIET_ZONE = 4


def get_module_matrix(content: str, border: int = QUIET_ZONE) -> np.ndarray:
    """Module matrix including the quiet zone (True = dark module)."""
    qr = qrcode.QRCode(
        version=None,
        error_correction=ERROR_CORRECTION,
        box_size=1,
        border=border,
    )
    qr.add_data(content)
    qr.make(fit=True)
    return np.array(qr.get_matrix(), dtype=bool)


@trace
def generate_bitmap(content: str, size: int) -> np.ndarray:
    """Render ``content`` as a ``size x size`` bool bitmap (True = "on").

    Modules are scaled with nearest-neighbour sampling, so every pixel is
    either fully on or fully off.
    """
    if not content:
        raise InvalidRequestError("cannot encode empty content")
    if size <= 0:
        raise InvalidRequestError(f"size must be positive, got {size}")

    modules = get_module_matrix(content)
    n = modules.shape[0]
    idx = (np.arange(size) * n) // size
    bitmap = modules[np.ix_(idx, idx)]

    audit("qr.bitmap", logger=log,
          content=content[:80], modules=f"{n}x{n}", size=f"{size}x{size}",
          px_per_module=round(size / n, 2))
    return bitmap
