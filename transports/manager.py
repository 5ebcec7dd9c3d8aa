"""
Transport Manager — builds the one canonical transport selected by config.

Modes (config.TRANSPORT_MODE):
  gemini   — GeminiTransport, needs GEMINI_API_KEY
  backend  — BackendTransport, needs BACKEND_URL

Only one mode is active at a time; the transport is rebuilt on every call so
that tests (and a changed .env on restart) never see a stale instance.
"""
from __future__ import annotations

import logging

import config
from transports.base import AnalysisResult, AnalysisTransport, ConfigurationError
from uploads import UploadedImage

logger = logging.getLogger(__name__)


def build_transport() -> AnalysisTransport:
    problem = config.configuration_error()
    if problem:
        raise ConfigurationError(problem)

    if config.TRANSPORT_MODE == "backend":
        from transports.backend_transport import BackendTransport
        transport = BackendTransport(
            config.BACKEND_URL,
            timeout=config.REQUEST_TIMEOUT_SECS,
            use_json=config.BACKEND_USE_JSON,
        )
    else:
        from transports.gemini_transport import GeminiClient, GeminiTransport
        transport = GeminiTransport(GeminiClient.from_config())

    logger.debug("Using transport %s", transport.name)
    return transport


async def analyse_image(image: UploadedImage) -> AnalysisResult:
    """Run the analysis on the configured transport."""
    transport = build_transport()
    result = await transport.analyse(image)
    logger.info("[%s] analysis OK (%s)", transport.name, type(result).__name__)
    return result
