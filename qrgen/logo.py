"""Logo retrieval: fetch a remote image and scale it to the logo footprint.

Every failure here is soft. A logo that cannot be fetched or decoded is
reported as ``None`` and the QR code is rendered without it.
"""

import io

import requests
from PIL import Image, UnidentifiedImageError

from qrgen.logging import audit, get_logger, trace, warn

log = get_logger("logo")

DEFAULT_TIMEOUT = 10.0
DEFAULT_MAX_BYTES = 5 * 1024 * 1024
LOGO_FRACTION = 4  # logo spans size // LOGO_FRACTION
CHUNK_SIZE = 64 * 1024


class _TooLarge(Exception):
    pass


def logo_footprint(size: int) -> int:
    return size // LOGO_FRACTION


def _read_limited(response, max_bytes: int) -> bytes:
    """Read a streamed body, giving up once it grows past ``max_bytes``."""
    declared = response.headers.get("Content-Length")
    if declared is not None and declared.isdigit() and int(declared) > max_bytes:
        raise _TooLarge(f"Content-Length {declared} exceeds {max_bytes} bytes")

    body = bytearray()
    for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
        body.extend(chunk)
        if len(body) > max_bytes:
            raise _TooLarge(f"body exceeds {max_bytes} bytes")
    return bytes(body)


@trace
def fetch_logo(
    url: str,
    size: int,
    session: requests.Session | None = None,
    timeout: float = DEFAULT_TIMEOUT,
    max_bytes: int = DEFAULT_MAX_BYTES,
) -> Image.Image | None:
    """Download ``url`` and return it as an RGBA image of ``size // 4`` square.

    Single attempt, no retries. Returns None on network errors, non-2xx
    responses, bodies over ``max_bytes``, undecodable payloads, or a
    zero-pixel footprint.
    """
    target = logo_footprint(size)
    if target <= 0:
        warn("logo.fetch_failed", logger=log, url=url, reason=f"footprint is 0px at size {size}")
        return None

    http = session or requests
    try:
        response = http.get(url, timeout=timeout, stream=True)
    except requests.RequestException as exc:
        warn("logo.fetch_failed", logger=log, url=url, reason=f"{type(exc).__name__}: {exc}")
        return None

    try:
        response.raise_for_status()
        payload = _read_limited(response, max_bytes)
    except requests.RequestException as exc:
        warn("logo.fetch_failed", logger=log, url=url, reason=f"{type(exc).__name__}: {exc}")
        return None
    except _TooLarge as exc:
        warn("logo.fetch_failed", logger=log, url=url, reason=str(exc))
        return None
    finally:
        response.close()

    try:
        with Image.open(io.BytesIO(payload)) as img:
            logo = img.convert("RGBA")
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as exc:
        warn("logo.fetch_failed", logger=log, url=url, reason=f"undecodable: {type(exc).__name__}")
        return None

    resized = logo.resize((target, target), Image.Resampling.LANCZOS)
    audit("logo.fetched", logger=log,
          url=url, bytes=len(payload),
          source=f"{logo.size[0]}x{logo.size[1]}", target=f"{target}x{target}")
    return resized
