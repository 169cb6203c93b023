import io
import threading
import time

import numpy as np
import pytest
from PIL import Image

import qrgen.service as service_module
from qrgen.cache import Fingerprint, FingerprintCache
from qrgen.exceptions import EncodingError, InvalidRequestError
from qrgen.models import RenderRequest
from qrgen.service import QRService, compose
from tests.conftest import FakeResponse, FakeSession, png_bytes

BLACK = (0, 0, 0, 255)
WHITE = (255, 255, 255, 255)
RED = (255, 0, 0, 255)
GREEN = (0, 255, 0, 255)


def decode(data: bytes) -> np.ndarray:
    return np.asarray(Image.open(io.BytesIO(data)).convert("RGBA"))


def colors_of(pixels: np.ndarray) -> set:
    return {tuple(int(c) for c in p) for p in pixels.reshape(-1, 4)}


@pytest.fixture
def service(clock):
    return QRService(FingerprintCache(clock=clock), session=FakeSession(error=AssertionError("no network")))


def test_plain_render_is_black_on_white(service):
    data = service.render(RenderRequest("https://example.com", 256))
    pixels = decode(data)
    assert pixels.shape == (256, 256, 4)
    assert colors_of(pixels) == {BLACK, WHITE}


def test_custom_colors_only_red_and_green(service):
    data = service.render(RenderRequest("https://example.com", 256, "#FF0000", "#00FF00"))
    assert colors_of(decode(data)) == {RED, GREEN}


@pytest.mark.parametrize("fg, bg", [
    ("FF0000", "#00FF00#"),
    ("#GGGGGG", "00FF00"),
    ("#F00", ""),
])
def test_malformed_colors_fall_back_to_defaults(service, fg, bg):
    data = service.render(RenderRequest("https://example.com", 128, fg, bg))
    assert colors_of(decode(data)) == {BLACK, WHITE}


def test_empty_content_never_reaches_composition():
    with pytest.raises(InvalidRequestError):
        RenderRequest("", 256)


def test_logo_is_composited_into_center(clock, red_logo_session):
    svc = QRService(FingerprintCache(clock=clock), session=red_logo_session)
    pixels = decode(svc.render(RenderRequest("https://example.com", 256,
                                             logo_url="https://example.com/logo.png")))
    assert pixels.shape == (256, 256, 4)
    # Safe zone is (96, 96, 64, 64); a white ring of 4px surrounds it.
    assert colors_of(pixels[100:156, 100:156]) == {RED}
    assert colors_of(pixels[92:96, 92:164]) == {WHITE}
    assert (pixels[..., 3] == 255).all()
    assert len(red_logo_session.calls) == 1


def test_failed_logo_renders_plain_qr():
    session = FakeSession(FakeResponse(b"garbage"))
    with_logo = compose(RenderRequest("https://example.com", 256, logo_url="https://x/logo.png"),
                        session=session)
    plain = compose(RenderRequest("https://example.com", 256))
    assert np.array_equal(with_logo, plain)


def test_second_render_is_served_from_cache(service, monkeypatch):
    calls = []
    real_compose = service_module.compose

    def counting_compose(*args, **kwargs):
        calls.append(args[0])
        return real_compose(*args, **kwargs)

    monkeypatch.setattr(service_module, "compose", counting_compose)
    req = RenderRequest("cache me", 128)
    first = service.render(req)
    second = service.render(req)
    assert first == second
    assert len(calls) == 1
    assert service.cache.lookup(Fingerprint.from_request(req)) == first


def test_logo_request_served_cached_plain_image(service):
    # logo_url is not part of the fingerprint: the plain image cached first is returned.
    plain = service.render(RenderRequest("https://example.com", 256))
    with_logo = service.render(RenderRequest("https://example.com", 256,
                                             logo_url="https://example.com/logo.png"))
    assert with_logo == plain
    assert service.session.calls == []


def test_encoding_failure_is_fatal_and_not_cached(service, monkeypatch):
    def broken_encode(buffer):
        raise EncodingError("boom")

    monkeypatch.setattr(service_module, "encode_png", broken_encode)
    req = RenderRequest("https://example.com", 64)
    with pytest.raises(EncodingError):
        service.render(req)
    assert len(service.cache) == 0


def test_ttl_expiry_triggers_rerender(clock, monkeypatch):
    svc = QRService(FingerprintCache(clock=clock))
    calls = []
    real_compose = service_module.compose
    monkeypatch.setattr(service_module, "compose",
                        lambda *a, **kw: calls.append(1) or real_compose(*a, **kw))
    req = RenderRequest("expire", 64)
    svc.render(req)
    clock.advance(3600)
    svc.render(req)
    assert len(calls) == 2


def test_coalesced_misses_compute_once(clock, monkeypatch):
    svc = QRService(FingerprintCache(clock=clock), coalesce=True)
    release = threading.Event()
    started = threading.Event()
    calls = []
    real_compose = service_module.compose

    def slow_compose(*args, **kwargs):
        calls.append(1)
        started.set()
        release.wait(5)
        return real_compose(*args, **kwargs)

    monkeypatch.setattr(service_module, "compose", slow_compose)
    req = RenderRequest("shared", 64)
    results = []

    def worker():
        results.append(svc.render(req))

    first = threading.Thread(target=worker)
    first.start()
    assert started.wait(5)
    others = [threading.Thread(target=worker) for _ in range(3)]
    for t in others:
        t.start()
    time.sleep(0.1)
    release.set()
    for t in [first, *others]:
        t.join(5)

    assert len(calls) == 1
    assert len(results) == 4
    assert len(set(results)) == 1
    assert svc._inflight == {}


def test_coalesced_failure_reaches_waiters(clock, monkeypatch):
    svc = QRService(FingerprintCache(clock=clock), coalesce=True)

    def broken_encode(buffer):
        raise EncodingError("boom")

    monkeypatch.setattr(service_module, "encode_png", broken_encode)
    with pytest.raises(EncodingError):
        svc.render(RenderRequest("x", 32))
    assert svc._inflight == {}


def test_each_thread_gets_its_own_session(clock):
    svc = QRService(FingerprintCache(clock=clock))
    main_session = svc.session
    assert svc.session is main_session

    seen = []
    worker = threading.Thread(target=lambda: seen.append(svc.session))
    worker.start()
    worker.join(5)
    assert len(seen) == 1
    assert seen[0] is not main_session


def test_explicit_session_is_used_everywhere(clock, red_logo_session):
    svc = QRService(FingerprintCache(clock=clock), session=red_logo_session)
    seen = []
    worker = threading.Thread(target=lambda: seen.append(svc.session))
    worker.start()
    worker.join(5)
    assert seen == [red_logo_session]
    assert svc.session is red_logo_session


def test_oversized_logo_renders_plain_qr(clock):
    session = FakeSession(FakeResponse(png_bytes(), headers={"Content-Length": "10000000"}))
    svc = QRService(FingerprintCache(clock=clock), session=session, logo_max_bytes=1024)
    with_logo = svc.render(RenderRequest("https://example.com", 256, logo_url="https://x/big.png"))
    assert colors_of(decode(with_logo)) == {BLACK, WHITE}
    assert len(session.calls) == 1


def test_tiny_render_skips_logo_entirely(red_logo_session):
    with_logo = compose(RenderRequest("hi", 3, logo_url="https://example.com/logo.png"),
                        session=red_logo_session)
    assert np.array_equal(with_logo, compose(RenderRequest("hi", 3)))
    assert red_logo_session.calls == []
