"""Run the yield-scan runtime headless, without the HTTP server."""

from __future__ import annotations

import asyncio
import logging
import signal

from . import get_runtime, register_builtin_strategies
from ..config import settings
from ..core.portfolio import get_scanner
from ..logging_config import setup_logging

logger = logging.getLogger("agent_runtime.run")


async def _serve() -> None:
    setup_logging()
    if not settings.agent_runtime_enabled:
        raise RuntimeError("Agent runtime is disabled via configuration")

    scanner = get_scanner()
    if not scanner.status()["configured"]:
        logger.warning("No wallet or agent configured; scans will be skipped until one is")

    runtime = get_runtime()
    register_builtin_strategies()
    await runtime.ensure_started()

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    try:
        await stop_event.wait()
    finally:
        await runtime.stop()
        status = scanner.status()
        logger.info(
            "Yield scan runtime stopped after %d scans (%d skipped)",
            status["run_count"],
            status["skip_count"],
        )


if __name__ == "__main__":
    asyncio.run(_serve())
