"""PNG serialization of a composed pixel buffer."""

import io

import numpy as np
from PIL import Image

from qrgen.exceptions import EncodingError
from qrgen.logging import audit, get_logger, trace

log = get_logger("encoder")

CONTENT_TYPE = "image/png"


@trace
def encode_png(buffer: np.ndarray) -> bytes:
    """Serialize an RGBA ``(h, w, 4)`` uint8 buffer to PNG bytes.

    Raises:
        EncodingError: The buffer is malformed or Pillow failed to write it.
    """
    if buffer.ndim != 3 or buffer.shape[2] != 4 or buffer.dtype != np.uint8:
        raise EncodingError(f"expected (h, w, 4) uint8 buffer, got {buffer.shape} {buffer.dtype}")

    out = io.BytesIO()
    try:
        Image.fromarray(buffer).save(out, format="PNG")
    except (OSError, ValueError) as exc:
        raise EncodingError(f"PNG encoding failed: {exc}") from exc

    data = out.getvalue()
    audit("png.encoded", logger=log, size=f"{buffer.shape[1]}x{buffer.shape[0]}", bytes=len(data))
    return data
