from __future__ import annotations

from backend.recruiting.models import ApplicationStatus, CalendarEventType

# The engine accepts any distinct target status. These tables drive the trigger
# adapters; they are not enforced on transition.

TERMINAL_STATUSES = frozenset(
    {
        ApplicationStatus.hired,
        ApplicationStatus.rejected,
        ApplicationStatus.withdrawn,
    }
)

STATUS_LABELS = {
    ApplicationStatus.applied: "Applied",
    ApplicationStatus.reviewing: "Under Review",
    ApplicationStatus.phone_screen_scheduled: "Screen Scheduled",
    ApplicationStatus.phone_screen_completed: "Screen Done",
    ApplicationStatus.technical_scheduled: "Tech Scheduled",
    ApplicationStatus.technical_completed: "Tech Done",
    ApplicationStatus.final_round_scheduled: "Final Scheduled",
    ApplicationStatus.final_round_completed: "Final Done",
    ApplicationStatus.offer_extended: "Offer Extended",
    ApplicationStatus.offer_accepted: "Offer Accepted",
    ApplicationStatus.hired: "Hired",
    ApplicationStatus.rejected: "Not Selected",
    ApplicationStatus.withdrawn: "Withdrawn",
}

SCHEDULED_STATUS_BY_EVENT = {
    CalendarEventType.screening: ApplicationStatus.phone_screen_scheduled,
    CalendarEventType.technical_test: ApplicationStatus.technical_scheduled,
    CalendarEventType.interview: ApplicationStatus.final_round_scheduled,
    CalendarEventType.final_round: ApplicationStatus.final_round_scheduled,
}

COMPLETED_STATUS_BY_EVENT = {
    CalendarEventType.screening: ApplicationStatus.phone_screen_completed,
    CalendarEventType.technical_test: ApplicationStatus.technical_completed,
    CalendarEventType.interview: ApplicationStatus.final_round_completed,
    CalendarEventType.final_round: ApplicationStatus.final_round_completed,
}


def is_terminal(status: ApplicationStatus) -> bool:
    return status in TERMINAL_STATUSES


def display_label(status: ApplicationStatus) -> str:
    return STATUS_LABELS.get(status, STATUS_LABELS[ApplicationStatus.applied])
