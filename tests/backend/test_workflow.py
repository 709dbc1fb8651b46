from __future__ import annotations

from backend.recruiting.models import ApplicationStatus, CalendarEventType
from backend.recruiting.services.workflow import (
    COMPLETED_STATUS_BY_EVENT,
    SCHEDULED_STATUS_BY_EVENT,
    STATUS_LABELS,
    display_label,
    is_terminal,
)


def test_every_status_has_a_label() -> None:
    assert set(STATUS_LABELS) == set(ApplicationStatus)
    assert display_label(ApplicationStatus.rejected) == "Not Selected"


def test_terminal_statuses() -> None:
    assert is_terminal(ApplicationStatus.hired)
    assert is_terminal(ApplicationStatus.withdrawn)
    assert not is_terminal(ApplicationStatus.offer_extended)
    assert is_terminal(ApplicationStatus.rejected)
    assert not is_terminal(ApplicationStatus.final_round_scheduled)


def test_every_event_type_maps_to_scheduled_and_completed() -> None:
    assert set(SCHEDULED_STATUS_BY_EVENT) == set(CalendarEventType)
    assert set(COMPLETED_STATUS_BY_EVENT) == set(CalendarEventType)
    assert COMPLETED_STATUS_BY_EVENT[CalendarEventType.technical_test] == (
        ApplicationStatus.technical_completed
    )
