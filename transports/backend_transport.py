"""
Custom backend transport — POSTs the image to a configured REST endpoint.

Two request shapes are supported:
  multipart  → form field "prescription" holding the raw file (default)
  json       → {"imageBase64": "...", "mimeType": "image/png"}

Either way the endpoint must answer with a JSON object carrying "output".
proxy_server.py implements this contract on top of the Gemini transport.
"""
from __future__ import annotations

import logging

import aiohttp

from transports import base
from transports.base import AnalysisResult, AnalysisTransport, TransportError, result_from_output
from transports.gemini_transport import encode_image
from uploads import UploadedImage

logger = logging.getLogger(__name__)

INVALID_RESPONSE_MESSAGE = "Invalid response from server"

_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/jpg":  "jpg",
    "image/png":  "png",
    "image/webp": "webp",
    "image/gif":  "gif",
}


def build_form(image: UploadedImage) -> aiohttp.FormData:
    form = aiohttp.FormData()
    ext  = _EXTENSIONS.get(image.mime_type, "bin")
    form.add_field(
        "prescription",
        image.data,
        filename=f"prescription.{ext}",
        content_type=image.mime_type,
    )
    return form


class BackendTransport(AnalysisTransport):

    def __init__(self, endpoint: str, timeout: float = 30.0, use_json: bool = False) -> None:
        self.endpoint = endpoint
        self.timeout  = timeout
        self.use_json = use_json
        self.name     = "backend/json" if use_json else "backend/multipart"

    async def analyse(self, image: UploadedImage) -> AnalysisResult:
        if self.use_json:
            body = await base.post(
                self.endpoint,
                timeout=self.timeout,
                payload={"imageBase64": encode_image(image.data), "mimeType": image.mime_type},
                invalid_message=INVALID_RESPONSE_MESSAGE,
                label=self.name,
            )
        else:
            body = await base.post(
                self.endpoint,
                timeout=self.timeout,
                form=build_form(image),
                invalid_message=INVALID_RESPONSE_MESSAGE,
                label=self.name,
            )

        if not isinstance(body, dict) or "output" not in body:
            logger.error("[%s] Response missing 'output': %s", self.name, str(body)[:300])
            raise TransportError(INVALID_RESPONSE_MESSAGE)
        return result_from_output(body["output"])
