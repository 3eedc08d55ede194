"""Run the due-tick scheduler as a standalone worker.

Usage:
    python -m scripts.run_scheduler          # poll forever
    python -m scripts.run_scheduler --once   # one due pass, then exit
Requires Postgres (DATABASE_URL) with migrations applied: alembic upgrade head.
"""

import argparse
import asyncio
import signal
import sys

from crmflow.core.composition import build_engine, create_http_client
from crmflow.core.config import get_settings
from crmflow.infrastructure.persistence import database
from crmflow.infrastructure.scheduler.runner import SchedulerRunner
from crmflow.shared.telemetry.logging import get_logger, setup_logging
from crmflow.shared.telemetry.telemetry import EngineTracing

logger = get_logger("crmflow.scheduler")


async def main(once: bool = False) -> int:
    """Build the engine and run one tick or poll until SIGINT/SIGTERM."""
    settings = get_settings()
    setup_logging(settings)
    if not settings.database_url:
        print("DATABASE_URL is not set", file=sys.stderr)
        return 1

    tracing = None
    if settings.telemetry_enabled:
        tracing = EngineTracing(settings, component="scheduler").install()
        tracing.instrument_db(database.get_engine())
    http_client = create_http_client(settings)
    runner = SchedulerRunner(
        build_engine(settings, http_client), settings.scheduler_poll_seconds
    )
    try:
        if once:
            written = await runner.tick()
            logger.info("Due pass complete: %d entries", written)
            return 0
        loop = asyncio.get_running_loop()
        stopped = asyncio.Event()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stopped.set)
        runner.start()
        await stopped.wait()
        await runner.stop()
        return 0
    finally:
        await http_client.aclose()
        if tracing is not None:
            tracing.shutdown()
        await database.dispose_engine()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="crmflow due-tick scheduler")
    parser.add_argument("--once", action="store_true", help="run a single due pass and exit")
    args = parser.parse_args()
    sys.exit(asyncio.run(main(once=args.once)))
