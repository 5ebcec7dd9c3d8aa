"""
main.py — Single entry point.

Runs the Telegram bot and the optional analysis proxy web server
in the same asyncio event loop — no threads, no subprocesses.

Architecture:
  asyncio event loop
    ├── python-telegram-bot (polling)
    └── aiohttp web server  (POST /analyze → Gemini)
         Only started when PROXY_ENABLED=true.
"""
import asyncio
import logging
import signal
import sys
from pathlib import Path

import config

_data_dir = Path(config.DATA_DIR)
_data_dir.mkdir(parents=True, exist_ok=True)

logging.basicConfig(
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    level=logging.INFO,
    handlers=[
        logging.StreamHandler(sys.stdout),
        logging.FileHandler(str(_data_dir / "bot.log"), encoding="utf-8"),
    ],
)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("aiohttp.access").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


async def run() -> None:
    from bot import build_application

    problem = config.configuration_error()
    if problem:
        # Not fatal: the bot still starts and shows the banner to users
        logger.warning("Configuration problem: %s", problem)
    logger.info("Transport mode: %s", config.TRANSPORT_MODE)

    ptb_app = build_application()

    # ── Start analysis proxy if configured ─────────────────────────────────────
    web_runner = None
    if config.PROXY_ENABLED:
        from proxy_server import start_proxy
        try:
            web_runner = await start_proxy()
        except Exception as exc:
            logger.error("Failed to start analysis proxy: %s", exc)
            logger.warning("Continuing without the proxy.")

    stop_event = asyncio.Event()

    def _stop(*_):
        logger.info("Shutdown signal received.")
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _stop)
        except (NotImplementedError, RuntimeError):
            # Windows doesn't support add_signal_handler for all signals
            pass

    async with ptb_app:
        await ptb_app.start()
        await ptb_app.updater.start_polling(
            allowed_updates=["message", "callback_query"],
            drop_pending_updates=True,
        )
        logger.info("✅ Bot is running. Press Ctrl+C to stop.")

        try:
            await stop_event.wait()
        except (KeyboardInterrupt, SystemExit):
            pass

        logger.info("Shutting down…")
        await ptb_app.updater.stop()
        await ptb_app.stop()

    if web_runner:
        await web_runner.cleanup()
        logger.info("Analysis proxy stopped.")

    logger.info("Goodbye.")


def main() -> None:
    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
