#!/usr/bin/env python3
"""Run the class reminder engine without the web API.

Usage:
    # Run both triggers until interrupted
    python3 scripts/run_notifications.py

    # Run one reminder pass now and exit
    python3 scripts/run_notifications.py --once reminders

    # Send tomorrow's digest now and exit
    python3 scripts/run_notifications.py --once digest
"""

import argparse
import asyncio
import logging
import os
import sys

# Add the project root to the path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))


async def _run(once: str | None) -> int:
  from timetable_notify.config import get_settings
  from timetable_notify.core.database import dispose_engine
  from timetable_notify.core.logging import initialize_logging
  from timetable_notify.notifications.factory import build_notification_engine

  settings = get_settings()
  initialize_logging(settings)
  logger = logging.getLogger("scripts.run_notifications")
  engine = build_notification_engine(settings)

  try:
    if once:
      summary = await engine.run_once(once)
      if summary is None:
        logger.error("%s tick did not complete; see errors above", once)
        return 1
      logger.info("%s tick finished jobs=%s delivered=%s transient=%s gone=%s", once, summary.jobs, summary.delivered, summary.transient, summary.gone)
      return 0

    engine.start()
    for job in engine.get_status()["jobs"]:
      logger.info("Next run of %s: %s", job["name"], job["next_run_time"])

    # Park until cancelled by Ctrl+C.
    await asyncio.Event().wait()
    return 0
  finally:
    engine.shutdown()
    await engine.wait_idle()
    await dispose_engine()


def main() -> None:
  parser = argparse.ArgumentParser(description="Class reminder and nightly digest push notifications")
  parser.add_argument("--once", choices=["reminders", "digest"], help="run a single tick of one trigger and exit")
  args = parser.parse_args()

  try:
    sys.exit(asyncio.run(_run(args.once)))
  except KeyboardInterrupt:
    print("\nStopped.")


if __name__ == "__main__":
  main()
