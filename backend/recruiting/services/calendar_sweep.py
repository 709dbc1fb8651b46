from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from backend.recruiting.errors import CoreError
from backend.recruiting.models import ChangeType, TriggerSource, utc_now
from backend.recruiting.services.status_engine import StatusEngine
from backend.recruiting.services.workflow import (
    COMPLETED_STATUS_BY_EVENT,
    SCHEDULED_STATUS_BY_EVENT,
    is_terminal,
)
from backend.recruiting.store import RecruitingStore, StoreNotFoundError

logger = logging.getLogger("talent_core.calendar_sweep")

SWEEP_ACTOR = "system:calendar_sweep"


@dataclass
class SweepReport:
    scanned: int = 0
    transitioned: int = 0
    completed_events: int = 0
    skipped: int = 0
    failed: int = 0


def run_completed_event_sweep(
    *,
    store: RecruitingStore,
    engine: StatusEngine,
    now: Optional[datetime] = None,
    lookback_minutes: int = 60,
) -> SweepReport:
    """Move applications to ``*_completed`` for interviews that ended in the lookback window.

    Only ``pending`` events are selected and each processed event is marked
    ``completed``, so running the sweep again over the same window does nothing.
    An application is only moved from the matching ``*_scheduled`` status; terminal or
    later statuses are left as they are.
    A failing event is left pending for the next run.
    """
    now = now or utc_now()
    window_start = now - timedelta(minutes=lookback_minutes)
    events = store.list_pending_events_ended_between(window_start=window_start, window_end=now)
    report = SweepReport(scanned=len(events))

    for event in events:
        if not event.application_id:
            report.skipped += 1
            continue
        scheduled = SCHEDULED_STATUS_BY_EVENT[event.event_type]
        target = COMPLETED_STATUS_BY_EVENT[event.event_type]
        try:
            current = store.get_application(event.application_id).status
            if is_terminal(current) or current != scheduled:
                # The application moved on; the event is done but the status is left alone.
                report.skipped += 1
                logger.info(
                    "calendar_sweep_event_ignored event_id=%s application_id=%s status=%s",
                    event.id,
                    event.application_id,
                    current.value,
                )
            else:
                result = engine.transition(
                    event.application_id,
                    target,
                    changed_by=SWEEP_ACTOR,
                    change_type=ChangeType.automatic,
                    trigger_source=TriggerSource.event_time_passed.value,
                    trigger_id=event.id,
                    notes="Interview completed (Auto-detected)",
                    expected_status=scheduled,
                )
                if result.changed:
                    report.transitioned += 1
            if store.mark_calendar_event_completed(event.id):
                report.completed_events += 1
        except (CoreError, SQLAlchemyError, StoreNotFoundError) as exc:
            report.failed += 1
            logger.warning(
                "calendar_sweep_event_failed event_id=%s application_id=%s error=%s",
                event.id,
                event.application_id,
                exc,
            )

    logger.info(
        "calendar_sweep_complete scanned=%s transitioned=%s completed=%s skipped=%s failed=%s",
        report.scanned,
        report.transitioned,
        report.completed_events,
        report.skipped,
        report.failed,
    )
    return report
