"""
alternatives.py — medication alternatives via a second Gemini call.

fetch_alternatives() never raises: every failure (missing key, HTTP error,
empty text, bad JSON, wrong shape) comes back as AlternativesOutcome.fail()
with a user-facing message.
"""
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Optional

import config
from prompts import build_alternatives_prompt
from transports.base import TransportError
from transports.gemini_transport import GeminiClient

logger = logging.getLogger(__name__)

NO_KEY_MESSAGE       = "GEMINI_API_KEY is not set, so alternatives cannot be looked up."
EMPTY_TEXT_MESSAGE   = "The AI returned an empty response for alternatives."
INVALID_JSON_MESSAGE = "The AI response for alternatives was not valid JSON."
BAD_SHAPE_MESSAGE    = "The AI response did not contain an 'alternatives' list."

_OPEN_FENCE_RE  = re.compile(r"^```(?:json)?[ \t]*\n?", re.IGNORECASE)
_CLOSE_FENCE_RE = re.compile(r"\n?[ \t]*```$")


class AlternativesError(ValueError):
    """Alternatives payload could not be used. str(exc) is user-facing."""


@dataclass(frozen=True)
class MedicationAlternative:
    name: str
    type: str           # Generic | Brand
    price: str
    manufacturer: str
    note: str


@dataclass(frozen=True)
class AlternativesOutcome:
    """Tagged result: success=True carries data, success=False carries error."""
    success: bool
    medication: str
    data: list[MedicationAlternative] = field(default_factory=list)
    error: Optional[str] = None

    @classmethod
    def ok(cls, medication: str, data: list[MedicationAlternative]) -> "AlternativesOutcome":
        return cls(success=True, medication=medication, data=data)

    @classmethod
    def fail(cls, medication: str, error: str) -> "AlternativesOutcome":
        return cls(success=False, medication=medication, error=error)


def strip_code_fences(raw: str) -> str:
    """Remove a leading ``` / ```json line and a trailing ``` if present."""
    text = _OPEN_FENCE_RE.sub("", raw.strip())
    return _CLOSE_FENCE_RE.sub("", text).strip()


def _normalise_type(value) -> str:
    return "Brand" if str(value or "").strip().lower().startswith("brand") else "Generic"


def _text(value) -> str:
    if value is None:
        return "N/A"
    text = str(value).strip()
    return text or "N/A"


def parse_alternatives_payload(raw: str) -> list[MedicationAlternative]:
    """
    Fence-strip, decode and validate {"alternatives": [...]}.
    Raises AlternativesError. An empty list is valid.
    """
    text = strip_code_fences(raw or "")
    if not text:
        raise AlternativesError(EMPTY_TEXT_MESSAGE)
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        logger.error("Alternatives: non-JSON response: %s", raw[:300])
        raise AlternativesError(INVALID_JSON_MESSAGE) from exc

    if not isinstance(data, dict) or not isinstance(data.get("alternatives"), list):
        raise AlternativesError(BAD_SHAPE_MESSAGE)

    items: list[MedicationAlternative] = []
    for entry in data["alternatives"]:
        if not isinstance(entry, dict):
            logger.warning("Alternatives: skipping non-object entry %r", entry)
            continue
        items.append(MedicationAlternative(
            name         = _text(entry.get("name")),
            type         = _normalise_type(entry.get("type")),
            price        = _text(entry.get("price")),
            manufacturer = _text(entry.get("manufacturer")),
            note         = _text(entry.get("note")),
        ))
    return items


async def fetch_alternatives(
    medication: str,
    client: Optional[GeminiClient] = None,
) -> AlternativesOutcome:
    """Look up alternatives for one medication name."""
    if client is None:
        if not config.GEMINI_API_KEY:
            return AlternativesOutcome.fail(medication, NO_KEY_MESSAGE)
        client = GeminiClient.from_config()

    prompt = build_alternatives_prompt(
        medication, config.ALTERNATIVES_MARKET, config.ALTERNATIVES_CURRENCY,
    )
    try:
        raw = await client.generate([{"text": prompt}], label="alternatives")
        items = parse_alternatives_payload(raw)
    except (TransportError, AlternativesError) as exc:
        logger.warning("Alternatives lookup for %r failed: %s", medication, exc)
        return AlternativesOutcome.fail(medication, str(exc))

    logger.info("Alternatives for %r: %d found", medication, len(items))
    return AlternativesOutcome.ok(medication, items)
