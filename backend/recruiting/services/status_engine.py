from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from backend.recruiting.errors import (
    InternalError,
    InvalidRequestError,
    NotFoundError,
    StatusConflictError,
)
from backend.recruiting.models import (
    ApplicationStatus,
    ChangeType,
    StatusHistoryRecord,
    TriggerSource,
)
from backend.recruiting.observability import MetricsRegistry
from backend.recruiting.services.side_effects import Notifier
from backend.recruiting.services.workflow import SCHEDULED_STATUS_BY_EVENT, display_label
from backend.recruiting.store import RecruitingStore, StoreNotFoundError

logger = logging.getLogger("talent_core.status")


@dataclass(frozen=True)
class TransitionResult:
    application_id: str
    old_status: ApplicationStatus
    new_status: ApplicationStatus
    changed: bool
    history: Optional[StatusHistoryRecord] = None


class StatusEngine:
    """Owns every write to ``applications.status``.

    Each effective transition writes the status and then appends exactly one history
    row. The two are separate store round-trips: if the history append fails the status
    write stands and the caller gets :class:`InternalError`, so a failed or timed-out
    call means "re-read before retrying".

    Ordering between pipeline stages is not enforced. Concurrent transitions on one
    application are last-write-wins unless the caller passes ``expected_status``.
    """

    def __init__(
        self,
        store: RecruitingStore,
        notifier: Notifier,
        metrics: Optional[MetricsRegistry] = None,
    ) -> None:
        self.store = store
        self.notifier = notifier
        self.metrics = metrics

    def transition(
        self,
        application_id: str,
        new_status: ApplicationStatus,
        *,
        changed_by: str,
        change_type: ChangeType,
        trigger_source: Optional[str] = None,
        trigger_id: Optional[str] = None,
        notes: Optional[str] = None,
        expected_status: Optional[ApplicationStatus] = None,
        notify_chat: bool = True,
    ) -> TransitionResult:
        try:
            application = self.store.get_application(application_id)
        except StoreNotFoundError as exc:
            raise NotFoundError(str(exc)) from exc

        old_status = application.status
        if new_status == old_status:
            return TransitionResult(
                application_id=application_id,
                old_status=old_status,
                new_status=new_status,
                changed=False,
            )
        if expected_status is not None and old_status != expected_status:
            raise StatusConflictError(
                f"application {application_id} is {old_status.value}, "
                f"expected {expected_status.value}"
            )

        try:
            written = self.store.write_application_status(
                application_id,
                new_status=new_status,
                changed_by=changed_by,
                expected_status=expected_status,
            )
        except SQLAlchemyError as exc:
            logger.exception("status_write_failed application_id=%s", application_id)
            raise InternalError("Failed to update application status.") from exc
        if not written:
            if expected_status is not None:
                raise StatusConflictError(
                    f"application {application_id} changed concurrently; "
                    f"expected {expected_status.value}"
                )
            raise NotFoundError(f"application not found: {application_id}")

        try:
            history = self.store.append_status_history(
                application_id=application_id,
                old_status=old_status,
                new_status=new_status,
                changed_by=changed_by,
                change_type=change_type,
                trigger_source=trigger_source,
                trigger_id=trigger_id,
                notes=notes,
            )
        except SQLAlchemyError as exc:
            logger.exception(
                "status_history_append_failed application_id=%s old=%s new=%s",
                application_id,
                old_status.value,
                new_status.value,
            )
            raise InternalError(
                "Status was updated but its history record could not be written."
            ) from exc

        logger.info(
            "status_transition application_id=%s old=%s new=%s change_type=%s "
            "trigger_source=%s trigger_id=%s",
            application_id,
            old_status.value,
            new_status.value,
            change_type.value,
            trigger_source,
            trigger_id,
        )
        if self.metrics is not None:
            self.metrics.record_transition(trigger_source or change_type.value)
        if notify_chat:
            self.notifier.application_message(
                application_id,
                f"Application status updated: {display_label(new_status)}",
                metadata={
                    "kind": "status_change",
                    "old_status": old_status.value,
                    "new_status": new_status.value,
                },
            )
        return TransitionResult(
            application_id=application_id,
            old_status=old_status,
            new_status=new_status,
            changed=True,
            history=history,
        )

    def record_manual_change(
        self,
        application_id: str,
        new_status: ApplicationStatus,
        *,
        recruiter_id: str,
        notes: Optional[str] = None,
        expected_status: Optional[ApplicationStatus] = None,
    ) -> TransitionResult:
        return self.transition(
            application_id,
            new_status,
            changed_by=recruiter_id,
            change_type=ChangeType.manual,
            trigger_source=TriggerSource.manual.value,
            notes=notes,
            expected_status=expected_status,
        )

    def handle_calendar_event_scheduled(
        self, event_id: str, *, changed_by: str
    ) -> TransitionResult:
        try:
            event = self.store.get_calendar_event(event_id)
        except StoreNotFoundError as exc:
            raise NotFoundError(str(exc)) from exc
        if not event.application_id:
            raise InvalidRequestError(f"calendar event {event_id} has no linked application")
        return self.transition(
            event.application_id,
            SCHEDULED_STATUS_BY_EVENT[event.event_type],
            changed_by=changed_by,
            change_type=ChangeType.automatic,
            trigger_source=TriggerSource.calendar_event.value,
            trigger_id=event.id,
            notes=f"{event.event_type.value.replace('_', ' ')} scheduled",
        )

    def history(self, application_id: str) -> list[StatusHistoryRecord]:
        try:
            self.store.get_application(application_id)
        except StoreNotFoundError as exc:
            raise NotFoundError(str(exc)) from exc
        return self.store.list_status_history(application_id, newest_first=True)
