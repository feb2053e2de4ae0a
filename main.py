"""
HackTrackr Reminder Service — Entry Point.

`python main.py` runs the reminder scheduler until SIGINT/SIGTERM.
`python main.py --once` runs a single tick and exits.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
from zoneinfo import ZoneInfo

from hacktrackr.config import settings

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

from hacktrackr.adapters.notifier_factory import create_notifier
from hacktrackr.core.scheduler import ReminderScheduler, build_trigger, policy_from_settings
from hacktrackr.data.db import ObligationDB

logger = logging.getLogger("hacktrackr")


def build_scheduler() -> ReminderScheduler:
    """Wire the scheduler with the configured store, transport and cadence."""
    tz = ZoneInfo(settings.TIMEZONE)
    return ReminderScheduler(
        store=ObligationDB(),
        notifier=create_notifier(),
        policy=policy_from_settings(),
        trigger=build_trigger(settings.TICK_INTERVAL_MINUTES, settings.TICK_CRON, tz),
        tz=tz,
    )


async def _run_forever(scheduler: ReminderScheduler) -> None:
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows event loops have no signal handlers; Ctrl+C still raises
            pass

    scheduler.start()
    # First sweep right away instead of waiting a full interval
    await scheduler.run_tick()
    try:
        await stop_event.wait()
    finally:
        await scheduler.stop()


def main() -> None:
    parser = argparse.ArgumentParser(description="HackTrackr deadline reminder service")
    parser.add_argument("--once", action="store_true", help="run a single tick and exit")
    args = parser.parse_args()

    logger.info("Starting HackTrackr reminder service (transport=%s)", settings.NOTIFY_TRANSPORT)
    scheduler = build_scheduler()

    if args.once:
        report = asyncio.run(scheduler.run_tick())
        logger.info("Single tick done: %d sent, %d failed", report.sent, report.failed)
        return

    asyncio.run(_run_forever(scheduler))


if __name__ == "__main__":
    main()
