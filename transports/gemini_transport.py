"""
Gemini transport — calls the generateContent REST endpoint directly.

  POST https://<host>/v1beta/models/<model>:generateContent?key=<API_KEY>
  {"contents": [{"parts": [{"text": prompt}, {"inlineData": {"mimeType", "data"}}]}]}

The key travels as a query parameter, so it is never included in log lines.
GeminiClient is shared with alternatives.py for the text-only second call.
"""
from __future__ import annotations

import base64
import logging
import time
from typing import Any, Optional

import config
from prompts import ANALYSIS_PROMPT
from transports import base
from transports.base import AnalysisResult, AnalysisTransport, TextResult, TransportError
from uploads import UploadedImage

logger = logging.getLogger(__name__)

EMPTY_RESPONSE_MESSAGE = "Invalid or empty response from AI. Please try again."
SAFETY_BLOCK_MESSAGE = (
    "The AI declined to analyse this image because it was flagged by safety filters. "
    "Please try a clearer photo of the prescription."
)


def encode_image(data: bytes) -> str:
    """Plain base64 payload (no data-URL prefix)."""
    return base64.b64encode(data).decode("ascii")


def blocked_reason(body: Any) -> Optional[str]:
    """Return the safety block reason if the response was blocked, else None."""
    if not isinstance(body, dict):
        return None
    feedback = body.get("promptFeedback") or {}
    if isinstance(feedback, dict) and feedback.get("blockReason"):
        return str(feedback["blockReason"])
    candidates = body.get("candidates") or []
    if candidates and isinstance(candidates[0], dict):
        if candidates[0].get("finishReason") in ("SAFETY", "PROHIBITED_CONTENT", "BLOCKLIST"):
            return str(candidates[0]["finishReason"])
    return None


def extract_text(body: Any) -> str:
    """
    Return candidates[0].content.parts[0].text.
    Raises TransportError with a distinct message for safety blocks.
    """
    reason = blocked_reason(body)
    if reason:
        logger.warning("Gemini response blocked: %s", reason)
        raise TransportError(SAFETY_BLOCK_MESSAGE)
    try:
        text = body["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError):
        text = None
    if not isinstance(text, str) or not text.strip():
        raise TransportError(EMPTY_RESPONSE_MESSAGE)
    return text.strip()


class GeminiClient:

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.0-flash",
        host: str = "generativelanguage.googleapis.com",
        timeout: float = 30.0,
    ) -> None:
        self._key    = api_key
        self.model   = model
        self.host    = host
        self.timeout = timeout

    @classmethod
    def from_config(cls) -> "GeminiClient":
        return cls(
            api_key=config.GEMINI_API_KEY or "",
            model=config.GEMINI_MODEL,
            host=config.GEMINI_API_HOST,
            timeout=config.REQUEST_TIMEOUT_SECS,
        )

    @property
    def url(self) -> str:
        return f"https://{self.host}/v1beta/models/{self.model}:generateContent"

    async def generate(self, parts: list[dict], label: str = "gemini") -> str:
        """Run one generateContent call and return the first candidate's text."""
        t0 = time.monotonic()
        body = await base.post(
            self.url,
            timeout=self.timeout,
            payload={"contents": [{"parts": parts}]},
            params={"key": self._key},
            invalid_message=EMPTY_RESPONSE_MESSAGE,
            label=label,
        )
        text = extract_text(body)
        logger.info(
            "[%s] %s OK: %d chars in %dms",
            label, self.model, len(text), int((time.monotonic() - t0) * 1000),
        )
        return text


class GeminiTransport(AnalysisTransport):

    def __init__(self, client: GeminiClient, prompt: str = ANALYSIS_PROMPT) -> None:
        self._client = client
        self._prompt = prompt
        self.name = f"gemini/{client.model}"

    async def analyse(self, image: UploadedImage) -> AnalysisResult:
        parts = [
            {"text": self._prompt},
            {"inlineData": {"mimeType": image.mime_type, "data": encode_image(image.data)}},
        ]
        text = await self._client.generate(parts, label=self.name)
        return TextResult(text)
