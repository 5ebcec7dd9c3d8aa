"""
Shared pytest fixtures.

Every test runs against a known config (no .env leakage) via the autouse
`test_config` fixture. HTTP is never real: `mock_http` swaps
aiohttp.ClientSession for a fake whose post() returns a canned response.
"""
from __future__ import annotations

import json
import sys
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

# ── Make the project root importable without installing the package ────────────
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


@pytest.fixture(autouse=True)
def test_config(monkeypatch):
    """Pin every config attribute the code reads at call time."""
    import config
    monkeypatch.setattr(config, "TRANSPORT_MODE", "gemini")
    monkeypatch.setattr(config, "GEMINI_API_KEY", "test-gemini-key")
    monkeypatch.setattr(config, "GEMINI_MODEL", "gemini-2.0-flash")
    monkeypatch.setattr(config, "GEMINI_API_HOST", "generativelanguage.googleapis.com")
    monkeypatch.setattr(config, "BACKEND_URL", None)
    monkeypatch.setattr(config, "BACKEND_USE_JSON", False)
    monkeypatch.setattr(config, "REQUEST_TIMEOUT_SECS", 30.0)
    monkeypatch.setattr(config, "MAX_IMAGE_BYTES", 5 * 1024 * 1024)
    monkeypatch.setattr(
        config, "ALLOWED_MIME_TYPES",
        {"image/jpeg", "image/jpg", "image/png", "image/webp"},
    )
    monkeypatch.setattr(config, "ALTERNATIVES_MARKET", "India")
    monkeypatch.setattr(config, "ALTERNATIVES_CURRENCY", "INR")
    yield config


@pytest.fixture
def png_image():
    from uploads import UploadedImage
    return UploadedImage(data=PNG_BYTES, mime_type="image/png", preview_id="file-1")


@pytest.fixture
def mock_http(monkeypatch):
    """
    Factory fixture: mock_http(status=200, body={...}) or mock_http(error=exc).
    Returns the fake session so tests can inspect session.post.call_args.
    """
    import aiohttp

    def install(status: int = 200, body=None, text=None, error=None, json_error=None):
        resp = MagicMock()
        resp.status = status
        if json_error is not None:
            resp.json = AsyncMock(side_effect=json_error)
        else:
            resp.json = AsyncMock(return_value=body)
        resp.text = AsyncMock(return_value=text if text is not None else json.dumps(body))
        resp.__aenter__ = AsyncMock(return_value=resp)
        resp.__aexit__ = AsyncMock(return_value=False)

        session = MagicMock()
        if error is not None:
            session.post = MagicMock(side_effect=error)
        else:
            session.post = MagicMock(return_value=resp)
        session.__aenter__ = AsyncMock(return_value=session)
        session.__aexit__ = AsyncMock(return_value=False)

        monkeypatch.setattr(aiohttp, "ClientSession", MagicMock(return_value=session))
        return session

    return install


def gemini_body(text: str) -> dict:
    return {"candidates": [{"content": {"parts": [{"text": text}]}, "finishReason": "STOP"}]}


@pytest.fixture
def gemini_reply():
    """Build a generateContent response body around some text."""
    return gemini_body
