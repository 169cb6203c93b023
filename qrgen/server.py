"""HTTP front end: ``/generate-qr``, ``/health`` and ``/stats``."""

from flask import Flask, Response, jsonify, request

from qrgen.config import Settings
from qrgen.encoder import CONTENT_TYPE
from qrgen.exceptions import EncodingError, InvalidRequestError
from qrgen.logging import audit, get_logger
from qrgen.models import RenderRequest
from qrgen.service import QRService

log = get_logger("server")


def create_app(service: QRService, settings: Settings | None = None) -> Flask:
    """Create the Flask app around an already-built service.

    The service, and with it the cache, is shared by every request.
    """
    settings = settings or Settings()
    app = Flask(__name__)

    @app.errorhandler(InvalidRequestError)
    def bad_request(exc):
        audit("http.rejected", logger=log, path=request.path, reason=str(exc))
        return jsonify({"error": str(exc)}), 400

    @app.errorhandler(EncodingError)
    def encoding_failed(exc):
        log.error("encoding failed for %s: %s", request.full_path, exc)
        return jsonify({"error": "failed to encode image"}), 500

    @app.route("/generate-qr")
    def generate_qr():
        params = RenderRequest.from_params(
            request.args,
            default_size=settings.default_size,
            max_size=settings.max_size,
        )
        data = service.render(params)
        return Response(data, mimetype=CONTENT_TYPE)

    @app.route("/health")
    def health():
        return jsonify({"status": "healthy"})

    @app.route("/stats")
    def stats():
        return jsonify(service.cache.stats())

    return app


def build_app(settings: Settings | None = None) -> Flask:
    """Construct settings, cache and service once, and wire up the app."""
    settings = settings or Settings()
    service = QRService(
        settings.build_cache(),
        logo_timeout=settings.logo_timeout_seconds,
        logo_max_bytes=settings.logo_max_bytes,
        margin=settings.logo_margin,
        coalesce=settings.coalesce,
    )
    return create_app(service, settings)
