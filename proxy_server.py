"""
proxy_server.py — server-side analysis endpoint.

Implements the custom-backend contract so clients (including this bot in
TRANSPORT_MODE=backend) never hold the Gemini key:

Endpoints:
  POST /analyze   multipart field "prescription"  → {"output": "<analysis text>"}
                  or JSON {"imageBase64", "mimeType"}
  GET  /health    plain-text health check

Runs as an aiohttp web server in the same asyncio event loop as the bot.
Validation errors answer 400 {"error": ...}; upstream failures keep the
upstream status when there is one (502 / 504 otherwise).
"""
from __future__ import annotations

import base64
import binascii
import logging
from typing import Optional

from aiohttp import web

import config
from transports.base import TIMEOUT_MESSAGE, AnalysisTransport, TransportError
from transports.gemini_transport import GeminiClient, GeminiTransport
from uploads import ImageValidationError, UploadedImage, validate_image

logger = logging.getLogger(__name__)

TRANSPORT_KEY = web.AppKey("transport", AnalysisTransport)


async def _read_upload(request: web.Request) -> UploadedImage:
    """Decode either request shape into a validated UploadedImage."""
    if request.content_type.startswith("multipart/"):
        form = await request.post()
        upload = form.get("prescription")
        if not isinstance(upload, web.FileField):
            raise ImageValidationError("Missing 'prescription' file field.")
        return validate_image(upload.file.read(), upload.content_type)

    try:
        body = await request.json()
    except ValueError as exc:
        raise ImageValidationError("Request body must be JSON or multipart form data.") from exc
    if not isinstance(body, dict) or not body.get("imageBase64"):
        raise ImageValidationError("Missing 'imageBase64'.")

    encoded = str(body["imageBase64"])
    if encoded.startswith("data:") and "," in encoded:
        encoded = encoded.split(",", 1)[1]
    try:
        data = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ImageValidationError("imageBase64 is not valid base64.") from exc
    return validate_image(data, body.get("mimeType"))


def _status_for(exc: TransportError) -> int:
    if exc.status and exc.status >= 400:
        return exc.status
    if exc.message == TIMEOUT_MESSAGE:
        return 504
    return 502


async def handle_analyze(request: web.Request) -> web.Response:
    try:
        image = await _read_upload(request)
    except ImageValidationError as exc:
        return web.json_response({"error": str(exc)}, status=400)

    transport = request.app[TRANSPORT_KEY]
    try:
        result = await transport.analyse(image)
    except TransportError as exc:
        logger.warning("Proxy analysis failed: %s", exc)
        return web.json_response({"error": exc.message}, status=_status_for(exc))

    return web.json_response({"output": result.text})


async def handle_health(request: web.Request) -> web.Response:
    """Health check — returns 200 OK. Use with uptime monitors."""
    return web.Response(
        text=f"OK — {request.app[TRANSPORT_KEY].name}",
        content_type="text/plain",
    )


# ── App factory ────────────────────────────────────────────────────────────────

def build_web_app(transport: Optional[AnalysisTransport] = None) -> web.Application:
    if transport is None:
        if not config.GEMINI_API_KEY:
            raise RuntimeError("GEMINI_API_KEY is required to run the analysis proxy.")
        transport = GeminiTransport(GeminiClient.from_config())

    app = web.Application(client_max_size=config.MAX_IMAGE_BYTES * 2)
    app[TRANSPORT_KEY] = transport
    app.router.add_get("/health",   handle_health)
    app.router.add_post("/analyze", handle_analyze)
    return app


async def start_proxy() -> web.AppRunner:
    """Start the web server. Returns runner so caller can shut it down cleanly."""
    app    = build_web_app()
    runner = web.AppRunner(app, access_log=logger)
    await runner.setup()
    site = web.TCPSite(runner, config.PROXY_HOST, config.PROXY_PORT)
    await site.start()
    logger.info("🩺 Analysis proxy listening on %s:%d", config.PROXY_HOST, config.PROXY_PORT)
    return runner
