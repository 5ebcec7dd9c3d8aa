"""
Shared types, error mapping and HTTP helper for all analysis transports.

Every transport returns exactly one AnalysisResult or raises exactly one
TransportError whose message is safe to show to the user. The status-code
table below is shared by every outgoing call (analysis and alternatives).
"""
from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional, Union

import aiohttp

from uploads import UploadedImage

logger = logging.getLogger(__name__)

# ── User-facing messages ──────────────────────────────────────────────────────

STATUS_MESSAGES: dict[int, str] = {
    400: "Invalid request: the image data could not be processed.",
    401: "Invalid API key. Please check your configuration.",
    403: "Access denied. The API key does not have permission for this request.",
    413: "Image too large. Please upload a smaller image.",
    429: "Rate limited. Please wait a moment and try again.",
    500: "Server error. Please try again later.",
}

TIMEOUT_MESSAGE    = "Request timed out. Please try again."
CONNECTION_MESSAGE = "Connection failed. Please check your internet connection."


class TransportError(Exception):
    """A failed HTTP round-trip. str(exc) is the user-facing message."""

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status = status


class ConfigurationError(RuntimeError):
    """The selected transport mode is missing its key or endpoint."""


def message_for_status(status: int, api_message: Optional[str] = None) -> str:
    """Map a non-2xx status to a message. Known codes always win over the API's text."""
    if status in STATUS_MESSAGES:
        return STATUS_MESSAGES[status]
    if api_message:
        return api_message
    return f"Server error: {status}"


def extract_api_message(body: Any) -> Optional[str]:
    """
    Pull a human-readable message out of an error body.
    Handles Google style {"error": {"message": ...}} as well as
    {"error": "..."} and {"message": "..."}.
    """
    if not isinstance(body, dict):
        return None
    err = body.get("error")
    if isinstance(err, dict) and isinstance(err.get("message"), str):
        return err["message"].strip() or None
    if isinstance(err, str) and err.strip():
        return err.strip()
    msg = body.get("message")
    if isinstance(msg, str) and msg.strip():
        return msg.strip()
    return None


# ── Analysis result (tagged union, decided once here) ─────────────────────────

@dataclass(frozen=True)
class TextResult:
    """Free-text analysis, normally a numbered 'N) Label: Value' list."""
    text: str

    def to_json(self) -> str:
        return json.dumps(self.text, indent=2, ensure_ascii=False)


@dataclass(frozen=True)
class StructuredResult:
    """JSON object returned by a custom backend."""
    data: dict

    @property
    def text(self) -> Optional[str]:
        value = self.data.get("text")
        return value if isinstance(value, str) else None

    def to_json(self) -> str:
        return json.dumps(self.data, indent=2, ensure_ascii=False)


AnalysisResult = Union[TextResult, StructuredResult]


def result_from_output(output: Any) -> AnalysisResult:
    if isinstance(output, str):
        return TextResult(output)
    if isinstance(output, dict):
        return StructuredResult(output)
    # Lists / numbers: keep them inspectable in the raw view
    return StructuredResult({"output": output})


# ── HTTP helper ───────────────────────────────────────────────────────────────

async def _read_error_body(resp) -> Any:
    try:
        text = await resp.text()
    except Exception as exc:
        logger.debug("Could not read error body: %s", exc)
        return None
    try:
        return json.loads(text)
    except (TypeError, ValueError):
        return None


async def post(
    url: str,
    *,
    timeout: float,
    payload: Optional[dict] = None,
    form: Optional[aiohttp.FormData] = None,
    params: Optional[dict] = None,
    invalid_message: str = "Invalid response from server",
    label: str = "http",
) -> Any:
    """
    POST and return the decoded JSON body.

    Raises TransportError on timeout, connection failure, non-2xx status
    or a body that is not JSON.
    """
    try:
        async with aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=timeout),
        ) as session:
            async with session.post(url, json=payload, data=form, params=params) as resp:
                if not 200 <= resp.status < 300:
                    body = await _read_error_body(resp)
                    message = message_for_status(resp.status, extract_api_message(body))
                    logger.warning("[%s] HTTP %d: %s", label, resp.status, message)
                    raise TransportError(message, status=resp.status)
                try:
                    return await resp.json(content_type=None)
                except (aiohttp.ContentTypeError, ValueError) as exc:
                    logger.error("[%s] Non-JSON response: %s", label, exc)
                    raise TransportError(invalid_message, status=resp.status) from exc
    except asyncio.TimeoutError as exc:
        logger.warning("[%s] Timed out after %.0fs", label, timeout)
        raise TransportError(TIMEOUT_MESSAGE) from exc
    except aiohttp.ClientError as exc:
        logger.warning("[%s] Connection failed: %s", label, exc)
        raise TransportError(CONNECTION_MESSAGE) from exc


# ── Abstract base ─────────────────────────────────────────────────────────────

class AnalysisTransport(ABC):
    """Base class every analysis transport implements."""

    name: str           # e.g. "gemini/gemini-2.0-flash"

    @abstractmethod
    async def analyse(self, image: UploadedImage) -> AnalysisResult:
        """Send the image and return exactly one AnalysisResult or raise TransportError."""
        ...
