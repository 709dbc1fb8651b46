"""
Cron job: mark finished interviews as completed.

Schedule every 15-30 minutes. Each run looks back over the configured window for
pending calendar events whose end time has passed, moves the linked applications to
the matching ``*_completed`` status and marks the events completed.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import asdict

from backend.recruiting.observability import configure_logging
from backend.recruiting.persistence import Database
from backend.recruiting.services.calendar_sweep import run_completed_event_sweep
from backend.recruiting.services.side_effects import BestEffortDispatcher, Notifier
from backend.recruiting.services.status_engine import StatusEngine
from backend.recruiting.settings import clamp_lookback_minutes, load_settings
from backend.recruiting.store import RecruitingStore

logger = logging.getLogger("talent_core.cron")


def main() -> int:
    parser = argparse.ArgumentParser(description="Run the completed-interview calendar sweep.")
    parser.add_argument(
        "--lookback-minutes",
        type=int,
        default=None,
        help="Override CALENDAR_SWEEP_LOOKBACK_MINUTES for this run.",
    )
    args = parser.parse_args()

    configure_logging()
    settings = load_settings()
    db = Database(settings.database_url)
    store = RecruitingStore(db)
    engine = StatusEngine(store, Notifier(store, BestEffortDispatcher()))
    if args.lookback_minutes is None:
        lookback = settings.calendar_sweep_lookback_minutes
    else:
        lookback = clamp_lookback_minutes(args.lookback_minutes)
    try:
        report = run_completed_event_sweep(store=store, engine=engine, lookback_minutes=lookback)
    finally:
        db.dispose()

    print(json.dumps(asdict(report)))
    if report.failed:
        logger.warning("calendar_sweep_partial failed=%s", report.failed)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
