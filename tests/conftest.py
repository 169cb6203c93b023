import io
import logging

import pytest
import requests
from PIL import Image


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FakeResponse:
    def __init__(self, content: bytes = b"", status_code: int = 200, headers=None):
        self.content = content
        self.status_code = status_code
        self.headers = headers or {}
        self.chunks_read = 0
        self.closed = False

    def iter_content(self, chunk_size=1):
        for start in range(0, len(self.content), chunk_size):
            self.chunks_read += 1
            yield self.content[start:start + chunk_size]

    def close(self):
        self.closed = True

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error", response=self)


class FakeSession:
    """Stands in for requests.Session; records every GET."""

    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def get(self, url, timeout=None, stream=False):
        self.calls.append((url, timeout))
        self.streamed = stream
        if self.error is not None:
            raise self.error
        return self.response


def png_bytes(size=(64, 64), color=(255, 0, 0, 255), mode="RGBA") -> bytes:
    out = io.BytesIO()
    Image.new(mode, size, color).save(out, format="PNG")
    return out.getvalue()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def red_logo_session():
    return FakeSession(FakeResponse(png_bytes()))


@pytest.fixture(autouse=True)
def reset_qrgen_logging():
    """Undo handlers installed by setup_logging (e.g. through the CLI)."""
    yield
    root = logging.getLogger("qrgen")
    for handler in list(root.handlers):
        handler.close()
    root.handlers.clear()
    root.setLevel(logging.NOTSET)
