"""Render pipeline: fingerprint, cache lookup, compose, encode, store."""

import threading
import time
from concurrent.futures import Future

import numpy as np
import requests

from qrgen.cache import FingerprintCache, Fingerprint
from qrgen.colors import colorize
from qrgen.compositor import BACKDROP_MARGIN, calculate_safe_zone, composite_logo
from qrgen.encoder import encode_png
from qrgen.generator import generate_bitmap
from qrgen.logging import audit, get_logger
from qrgen.logo import DEFAULT_MAX_BYTES, DEFAULT_TIMEOUT, fetch_logo
from qrgen.models import RenderRequest

log = get_logger("service")


def compose(
    request: RenderRequest,
    session: requests.Session | None = None,
    logo_timeout: float = DEFAULT_TIMEOUT,
    margin: int = BACKDROP_MARGIN,
    logo_max_bytes: int = DEFAULT_MAX_BYTES,
) -> np.ndarray:
    """Build the RGBA pixel buffer for ``request``.

    Bad colors fall back to black on white and an unusable logo is left out;
    neither aborts the render.
    """
    bitmap = generate_bitmap(request.content, request.size)
    buffer = colorize(bitmap, request.fg_color, request.bg_color)

    if request.logo_url:
        logo = fetch_logo(request.logo_url, request.size, session=session,
                          timeout=logo_timeout, max_bytes=logo_max_bytes)
        if logo is not None:
            composite_logo(buffer, calculate_safe_zone(request.size), logo, margin=margin)
    return buffer


class QRService:
    """Renders QR images through one shared fingerprint cache.

    Build one per process and hand it to every request handler.

    Args:
        cache: The shared cache instance.
        session: HTTP session for logo downloads, shared by every caller.
            If omitted each thread gets its own session.
        logo_timeout: Timeout in seconds for the single logo request.
        margin: White backdrop margin around the logo, in pixels.
        logo_max_bytes: Largest logo download accepted, in bytes.
        coalesce: Share one computation between concurrent misses of the
            same fingerprint instead of rendering each independently.
    """

    def __init__(
        self,
        cache: FingerprintCache,
        session: requests.Session | None = None,
        logo_timeout: float = DEFAULT_TIMEOUT,
        margin: int = BACKDROP_MARGIN,
        logo_max_bytes: int = DEFAULT_MAX_BYTES,
        coalesce: bool = False,
    ):
        self.cache = cache
        self._session = session
        self._local = threading.local()
        self.logo_timeout = logo_timeout
        self.margin = margin
        self.logo_max_bytes = logo_max_bytes
        self.coalesce = coalesce
        self._inflight: dict[Fingerprint, Future] = {}
        self._inflight_lock = threading.Lock()

    @property
    def session(self) -> requests.Session:
        if self._session is not None:
            return self._session
        session = getattr(self._local, "session", None)
        if session is None:
            session = self._local.session = requests.Session()
        return session

    def render(self, request: RenderRequest) -> bytes:
        """Return PNG bytes for ``request``, from cache when possible.

        Raises:
            EncodingError: The image could not be encoded; nothing is cached.
        """
        fingerprint = Fingerprint.from_request(request)
        cached = self.cache.lookup(fingerprint)
        if cached is not None:
            audit("cache.hit", logger=log, fp=fingerprint.digest(), bytes=len(cached))
            return cached

        audit("cache.miss", logger=log, fp=fingerprint.digest(),
              content=request.content[:80], size=request.size, logo=bool(request.logo_url))
        if not self.coalesce:
            return self._render_and_store(fingerprint, request)

        with self._inflight_lock:
            pending = self._inflight.get(fingerprint)
            owner = pending is None
            if owner:
                pending = Future()
                self._inflight[fingerprint] = pending

        if not owner:
            audit("render.coalesced", logger=log, fp=fingerprint.digest())
            return pending.result()

        try:
            data = self._render_and_store(fingerprint, request)
        except Exception as exc:
            pending.set_exception(exc)
            raise
        else:
            pending.set_result(data)
            return data
        finally:
            with self._inflight_lock:
                self._inflight.pop(fingerprint, None)

    def _render_and_store(self, fingerprint: Fingerprint, request: RenderRequest) -> bytes:
        start = time.perf_counter()
        buffer = compose(request, session=self.session,
                         logo_timeout=self.logo_timeout, margin=self.margin,
                         logo_max_bytes=self.logo_max_bytes)
        data = encode_png(buffer)
        self.cache.insert(fingerprint, data)
        audit("render.done", logger=log,
              fp=fingerprint.digest(), size=request.size, bytes=len(data),
              ms=round((time.perf_counter() - start) * 1000, 1))
        return data
