# src/incremental_exports/cli/main.py

"""
Process entrypoint.

Initializes logging, builds AppState, then runs the dispatcher (one cycle per
minute by default) until SIGINT/SIGTERM.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal

from ..config import get_settings
from ..logging_setup import setup_logging
from ..tasks.task_scheduler import run_dispatcher
from .bootstrap import close_state, create_initial_state

logger = logging.getLogger(__name__)


async def _run(settings) -> None:
    state = create_initial_state(settings=settings)

    dispatcher = asyncio.create_task(
        run_dispatcher(
            state.task_store,
            state.schedules,
            state.workers,
            interval_seconds=settings.dispatch_interval_seconds,
            collection=settings.collection,
            guarded_families=settings.guarded_families,
            default_cycle_minutes=settings.default_cycle_minutes,
            backoff_minutes=settings.failure_backoff_minutes,
        ),
        name="dispatcher",
    )

    loop = asyncio.get_running_loop()

    def _handle_signal(signum: int) -> None:
        logger.info("Signal %s received, shutting down...", signum)
        dispatcher.cancel()

    for sig in (signal.SIGINT, signal.SIGTERM):
        # Some platforms do not support loop signal handlers.
        with contextlib.suppress(NotImplementedError, RuntimeError):
            loop.add_signal_handler(sig, _handle_signal, sig)

    try:
        logger.info("Dispatcher running for collection %s. Press Ctrl+C to stop.", settings.collection)
        with contextlib.suppress(asyncio.CancelledError):
            await dispatcher
    finally:
        await close_state(state)


def main() -> None:
    settings = get_settings()

    # choose console log level from settings.log_level
    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)
    setup_logging(log_dir=settings.data_dir, console_level=console_level)

    logger.info("Starting %s...", settings.app_name)
    try:
        asyncio.run(_run(settings))
    except KeyboardInterrupt:
        logger.info("Interrupted.")
    logger.info("Bye.")


if __name__ == "__main__":
    main()
