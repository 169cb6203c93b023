"""Scan verification: decode a rendered QR image to check it is still readable."""

import io
import time
from dataclasses import dataclass

import cv2
import numpy as np
from PIL import Image

from qrgen.logging import audit, get_logger, trace

log = get_logger("verify")


@dataclass
class ScanResult:
    """Result of a single scan attempt."""
    success: bool
    decoded_data: str | None = None
    decode_time_ms: float = 0.0
    error: str | None = None


def load_image(data: bytes) -> Image.Image:
    with Image.open(io.BytesIO(data)) as img:
        return img.convert("RGB")


@trace
def scan_opencv(image: Image.Image) -> ScanResult:
    """Decode with OpenCV's built-in QR detector."""
    start = time.perf_counter()
    gray = cv2.cvtColor(np.array(image.convert("RGB")), cv2.COLOR_RGB2GRAY)
    try:
        data, _, _ = cv2.QRCodeDetector().detectAndDecode(gray)
    except cv2.error as e:
        elapsed = (time.perf_counter() - start) * 1000
        audit("scan.error", logger=log, error=str(e), time_ms=round(elapsed, 1))
        return ScanResult(success=False, decode_time_ms=elapsed, error=str(e))

    elapsed = (time.perf_counter() - start) * 1000
    if not data:
        audit("scan.verified", logger=log, success=False, time_ms=round(elapsed, 1))
        return ScanResult(success=False, decode_time_ms=elapsed, error="No QR code detected")

    audit("scan.verified", logger=log, success=True, time_ms=round(elapsed, 1), data=data[:80])
    return ScanResult(success=True, decoded_data=data, decode_time_ms=elapsed)


def verify_png(data: bytes, expected_data: str | None = None) -> ScanResult:
    """Scan encoded PNG bytes.

    Args:
        data: PNG payload as produced by the encoder.
        expected_data: If given, a successful decode of anything else counts as failure.
    """
    result = scan_opencv(load_image(data))
    if result.success and expected_data is not None and result.decoded_data != expected_data:
        result.success = False
        result.error = f"Data mismatch: got '{result.decoded_data}', expected '{expected_data}'"
    return result
