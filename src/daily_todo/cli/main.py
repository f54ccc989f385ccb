# src/daily_todo/cli/main.py

"""
CLI entrypoint.

Initializes logging, wires the store and the session for the configured user,
then runs the console REPL until the user quits.
"""

from __future__ import annotations

import asyncio
import logging

from ..cli.bootstrap import create_session, create_stores
from ..config import get_settings
from ..logging_setup import setup_logging
from .console import run_console_loop

logger = logging.getLogger(__name__)


async def _run(settings) -> None:
    store, markers = create_stores(settings=settings)
    session = create_session(settings=settings, store=store, markers=markers)
    try:
        async with session:
            await run_console_loop(session)
    finally:
        store.close()


def main() -> None:
    settings = get_settings()

    # choose console log level from settings.log_level
    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)

    setup_logging(log_dir=settings.data_dir, console_level=console_level)

    logger.info("Starting %s for user=%s...", settings.app_name, settings.user_id)

    try:
        asyncio.run(_run(settings))
    except KeyboardInterrupt:
        logger.info("Interrupted.")

    logger.info("Bye.")


if __name__ == "__main__":
    main()
