"""
Central configuration — reads from .env file.

All values are read once at import time. Tests patch the module attributes
directly (monkeypatch.setattr(config, "X", ...)) so every module that reads
config.X at call time sees the override.
"""
import os
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

# ── Telegram ──────────────────────────────────────────────────────────────────
# Only required when the bot is actually started (checked in bot.build_application)
TELEGRAM_BOT_TOKEN: str | None = os.getenv("TELEGRAM_BOT_TOKEN")

# ── Analysis transport ────────────────────────────────────────────────────────
#   gemini   → call the Gemini generateContent REST API directly (default)
#   backend  → POST the image to a custom REST endpoint that answers {"output": ...}
TRANSPORT_MODE: str = os.getenv("TRANSPORT_MODE", "gemini").strip().lower()

# Gemini REST API. GOOGLE_API_KEY is accepted as a fallback name.
GEMINI_API_KEY: str | None  = os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY") or None
GEMINI_MODEL: str           = os.getenv("GEMINI_MODEL", "gemini-2.0-flash")
GEMINI_API_HOST: str        = os.getenv("GEMINI_API_HOST", "generativelanguage.googleapis.com")

# Custom backend endpoint, e.g. https://rx.example.com/analyze
BACKEND_URL: str | None = os.getenv("BACKEND_URL", "").strip() or None
# false → multipart field "prescription", true → JSON {imageBase64, mimeType}
BACKEND_USE_JSON: bool  = os.getenv("BACKEND_USE_JSON", "false").lower() == "true"

# Client-side timeout applied to every outgoing HTTP call
REQUEST_TIMEOUT_SECS: float = float(os.getenv("REQUEST_TIMEOUT_SECS", "30"))

# ── Upload limits ─────────────────────────────────────────────────────────────
MAX_IMAGE_BYTES: int = int(os.getenv("MAX_IMAGE_BYTES", str(5 * 1024 * 1024)))
ALLOW_GIF: bool      = os.getenv("ALLOW_GIF", "false").lower() == "true"

ALLOWED_MIME_TYPES: set[str] = {
    x.strip().lower()
    for x in os.getenv(
        "ALLOWED_MIME_TYPES", "image/jpeg,image/jpg,image/png,image/webp"
    ).split(",")
    if x.strip()
}
if ALLOW_GIF:
    ALLOWED_MIME_TYPES.add("image/gif")

# ── Alternatives lookup ───────────────────────────────────────────────────────
# Regional market the alternatives prompt is restricted to
ALTERNATIVES_MARKET: str   = os.getenv("ALTERNATIVES_MARKET", "India")
ALTERNATIVES_CURRENCY: str = os.getenv("ALTERNATIVES_CURRENCY", "INR")

# ── Analysis proxy server ─────────────────────────────────────────────────────
# Serves the custom-backend contract so the Gemini key stays server-side
PROXY_ENABLED: bool = os.getenv("PROXY_ENABLED", "false").lower() == "true"
PROXY_HOST: str     = os.getenv("PROXY_HOST", "0.0.0.0")
PROXY_PORT: int     = int(os.getenv("PROXY_PORT", "8080"))

# ── Runtime ───────────────────────────────────────────────────────────────────
DATA_DIR: str = os.getenv("DATA_DIR", "data")


def configuration_error() -> Optional[str]:
    """
    Return a banner message when the selected transport mode is missing
    what it needs, or None when the analyze action can be offered.
    """
    if TRANSPORT_MODE == "backend":
        if not BACKEND_URL:
            return "BACKEND_URL is not set. Add it to your .env file to enable analysis."
        return None
    if TRANSPORT_MODE != "gemini":
        return f"Unknown TRANSPORT_MODE '{TRANSPORT_MODE}'. Use 'gemini' or 'backend'."
    if not GEMINI_API_KEY:
        return "GEMINI_API_KEY is not set. Add it to your .env file to enable analysis."
    return None
