"""qrgen CLI: render a QR image to disk or run the HTTP service."""

import argparse
import sys
from pathlib import Path

from qrgen.config import Settings
from qrgen.exceptions import QRGenError
from qrgen.logging import audit, get_logger, setup_logging

log = get_logger("cli")


def cmd_generate(args, settings: Settings):
    """Render one QR image and write it as PNG."""
    from qrgen.encoder import encode_png
    from qrgen.models import RenderRequest
    from qrgen.service import compose

    output = Path(args.output)
    output.parent.mkdir(parents=True, exist_ok=True)

    req = RenderRequest(
        content=args.content,
        size=args.size or settings.default_size,
        fg_color=args.fg_color,
        bg_color=args.bg_color,
        logo_url=args.logo_url,
    )
    data = encode_png(compose(req, logo_timeout=settings.logo_timeout_seconds,
                              margin=settings.logo_margin,
                              logo_max_bytes=settings.logo_max_bytes))
    output.write_bytes(data)
    print(f"Generated: {output} ({req.size}x{req.size}, {len(data)} bytes)")


def cmd_verify(args, settings: Settings):
    """Scan a rendered QR image."""
    from qrgen.verify import verify_png

    r = verify_png(Path(args.image).read_bytes(), expected_data=args.expected)
    status = "PASS" if r.success else "FAIL"
    print(f"  [opencv] {status} | {r.decode_time_ms:6.1f}ms | {r.decoded_data or r.error}")
    sys.exit(0 if r.success else 1)


def cmd_serve(args, settings: Settings):
    """Start the HTTP service."""
    from qrgen.server import build_app

    host = args.host or settings.host
    port = args.port or settings.port
    app = build_app(settings)
    print(f"Starting QR service on http://{host}:{port}")
    app.run(host=host, port=port, debug=args.debug, threaded=True)


def main(argv=None):
    parser = argparse.ArgumentParser(prog="qrgen", description="Colorized QR code renderer with logo overlay")

    parser.add_argument("-V", "--verbose", action="store_true", help="Enable DEBUG-level logging")
    parser.add_argument("--log-file", default=None, help="Write JSON logs to file")
    parser.add_argument("--json-logs", action="store_true", help="JSON log lines on the console")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # --- generate ---
    p_gen = subparsers.add_parser("generate", help="Render a QR code to a PNG file")
    p_gen.add_argument("content", help="Text or URL to encode")
    p_gen.add_argument("-o", "--output", default="output/qr.png", help="Output file path")
    p_gen.add_argument("-s", "--size", type=int, default=None, help="Image width/height in pixels")
    p_gen.add_argument("--fg-color", default=None, help="Foreground colour, '#RRGGBB'")
    p_gen.add_argument("--bg-color", default=None, help="Background colour, '#RRGGBB'")
    p_gen.add_argument("--logo-url", default=None, help="URL of a logo to place in the centre")

    # --- verify ---
    p_ver = subparsers.add_parser("verify", help="Check that a QR image scans")
    p_ver.add_argument("image", help="Path to QR code image")
    p_ver.add_argument("--expected", default=None, help="Expected decoded data (fails if mismatch)")

    # --- serve ---
    p_serve = subparsers.add_parser("serve", help="Start the HTTP service")
    p_serve.add_argument("--host", default=None, help="Bind address")
    p_serve.add_argument("--port", type=int, default=None, help="Port to listen on")
    p_serve.add_argument("--debug", action="store_true", help="Enable Flask debug mode")

    args = parser.parse_args(argv)
    settings = Settings()

    level = "DEBUG" if args.verbose else settings.log_level
    setup_logging(level=level, log_file=args.log_file or settings.log_file,
                  json_format=args.json_logs or settings.log_json)
    audit("cli.start", logger=log, command=args.command, verbose=args.verbose)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    commands = {
        "generate": cmd_generate,
        "verify": cmd_verify,
        "serve": cmd_serve,
    }
    try:
        commands[args.command](args, settings)
    except QRGenError as exc:
        print(f"error: {exc}", file=sys.stderr)
        sys.exit(2)
    audit("cli.done", logger=log, command=args.command)


if __name__ == "__main__":
    main()
