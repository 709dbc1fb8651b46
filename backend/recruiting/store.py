from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Optional
from uuid import uuid4

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from backend.recruiting.models import (
    ApplicationRecord,
    ApplicationStatus,
    AuditLogRecord,
    CalendarEventRecord,
    CalendarEventStatus,
    CalendarEventType,
    CandidateProfileRecord,
    ChangeType,
    CompanyAccountRecord,
    ConversationRecord,
    MessageRecord,
    NotificationRecord,
    StatusHistoryRecord,
    UnlockRecord,
    UserProfileRecord,
    utc_now,
)
from backend.recruiting.persistence import Database


def new_id(prefix: str) -> str:
    return f"{prefix}_{uuid4().hex[:10]}"


class StoreConflictError(Exception):
    pass


class StoreNotFoundError(Exception):
    pass


class RecruitingStore:
    """Stateless data access over :class:`Database`.

    Every method opens its own connection or transaction, so one store instance can be
    shared by concurrent requests. Balance and status guards are evaluated by the
    database in the ``WHERE`` clause of the write itself.
    """

    def __init__(self, db: Database) -> None:
        self.db = db

    # Identity and companies

    def create_user_profile(
        self, *, user_id: str, role: str, email: Optional[str] = None
    ) -> UserProfileRecord:
        table = self.db.user_profiles
        with self.db.engine.begin() as conn:
            conn.execute(table.insert().values(id=user_id, role=role, email=email))
        return UserProfileRecord(id=user_id, role=role, email=email)

    def get_user_profile(self, user_id: str) -> Optional[UserProfileRecord]:
        table = self.db.user_profiles
        with self.db.engine.connect() as conn:
            row = conn.execute(select(table).where(table.c.id == user_id)).first()
        if not row:
            return None
        return UserProfileRecord(id=row.id, role=row.role, email=row.email)

    def create_company_account(
        self,
        *,
        owner_user_id: str,
        name: str,
        credits: int = 0,
        company_id: Optional[str] = None,
    ) -> CompanyAccountRecord:
        if credits < 0:
            raise ValueError("credits cannot be negative")
        table = self.db.company_accounts
        record = CompanyAccountRecord(
            id=company_id or new_id("cmp"),
            owner_user_id=owner_user_id,
            name=name.strip(),
            credits=credits,
            updated_at_utc=utc_now(),
        )
        with self.db.engine.begin() as conn:
            conn.execute(table.insert().values(**record.model_dump()))
        return record

    def get_company_for_owner(self, user_id: str) -> Optional[CompanyAccountRecord]:
        table = self.db.company_accounts
        with self.db.engine.connect() as conn:
            row = conn.execute(select(table).where(table.c.owner_user_id == user_id)).first()
        if not row:
            return None
        return self._company_from_row(row)

    def get_company(self, company_id: str) -> CompanyAccountRecord:
        table = self.db.company_accounts
        with self.db.engine.connect() as conn:
            row = conn.execute(select(table).where(table.c.id == company_id)).first()
        if not row:
            raise StoreNotFoundError(f"company not found: {company_id}")
        return self._company_from_row(row)

    def get_credits(self, company_id: str) -> int:
        return self.get_company(company_id).credits

    # Credit ledger

    def debit_credits(self, company_id: str, amount: int) -> Optional[int]:
        """Guarded decrement. Returns the new balance, or ``None`` if the guard failed."""
        if amount < 1:
            raise ValueError("amount must be positive")
        table = self.db.company_accounts
        with self.db.engine.begin() as conn:
            result = conn.execute(
                update(table)
                .where(table.c.id == company_id, table.c.credits >= amount)
                .values(credits=table.c.credits - amount, updated_at_utc=utc_now())
            )
            if result.rowcount != 1:
                return None
            return conn.execute(
                select(table.c.credits).where(table.c.id == company_id)
            ).scalar_one()

    def credit_credits(self, company_id: str, amount: int) -> int:
        """Increment the balance by ``amount`` and return the new balance."""
        if amount < 1:
            raise ValueError("amount must be positive")
        table = self.db.company_accounts
        with self.db.engine.begin() as conn:
            result = conn.execute(
                update(table)
                .where(table.c.id == company_id)
                .values(credits=table.c.credits + amount, updated_at_utc=utc_now())
            )
            if result.rowcount != 1:
                raise StoreNotFoundError(f"company not found: {company_id}")
            return conn.execute(
                select(table.c.credits).where(table.c.id == company_id)
            ).scalar_one()

    # Candidates and unlocks

    def create_candidate_profile(
        self,
        *,
        full_name: str,
        candidate_id: Optional[str] = None,
        user_id: Optional[str] = None,
        headline: Optional[str] = None,
        profile: Optional[dict[str, Any]] = None,
    ) -> CandidateProfileRecord:
        table = self.db.candidate_profiles
        record = CandidateProfileRecord(
            id=candidate_id or str(uuid4()),
            user_id=user_id,
            full_name=full_name.strip(),
            headline=headline,
            profile=profile or {},
            created_at_utc=utc_now(),
        )
        with self.db.engine.begin() as conn:
            conn.execute(
                table.insert().values(
                    id=record.id,
                    user_id=record.user_id,
                    full_name=record.full_name,
                    headline=record.headline,
                    profile_json=json.dumps(record.profile),
                    created_at_utc=record.created_at_utc,
                )
            )
        return record

    def get_candidate_profile(self, candidate_id: str) -> Optional[CandidateProfileRecord]:
        table = self.db.candidate_profiles
        with self.db.engine.connect() as conn:
            row = conn.execute(select(table).where(table.c.id == candidate_id)).first()
        if not row:
            return None
        return CandidateProfileRecord(
            id=row.id,
            user_id=row.user_id,
            full_name=row.full_name,
            headline=row.headline,
            profile=json.loads(row.profile_json),
            created_at_utc=row.created_at_utc,
        )

    def find_unlock(self, *, candidate_id: str, company_id: str) -> Optional[UnlockRecord]:
        table = self.db.candidate_unlocks
        with self.db.engine.connect() as conn:
            row = conn.execute(
                select(table).where(
                    table.c.candidate_id == candidate_id,
                    table.c.company_id == company_id,
                )
            ).first()
        if not row:
            return None
        return self._unlock_from_row(row)

    def insert_unlock(
        self,
        *,
        candidate_id: str,
        company_id: str,
        unlocked_by: str,
        cost_credits: int,
    ) -> UnlockRecord:
        """Insert the visibility grant. A duplicate pair raises :class:`StoreConflictError`."""
        record = UnlockRecord(
            id=str(uuid4()),
            candidate_id=candidate_id,
            company_id=company_id,
            unlocked_by=unlocked_by,
            cost_credits=cost_credits,
            created_at_utc=utc_now(),
        )
        try:
            with self.db.engine.begin() as conn:
                conn.execute(self.db.candidate_unlocks.insert().values(**record.model_dump()))
        except IntegrityError as exc:
            raise StoreConflictError(
                f"unlock already exists for candidate {candidate_id} and company {company_id}"
            ) from exc
        return record

    def list_unlocks(self, company_id: str) -> list[UnlockRecord]:
        table = self.db.candidate_unlocks
        with self.db.engine.connect() as conn:
            rows = conn.execute(
                select(table)
                .where(table.c.company_id == company_id)
                .order_by(table.c.created_at_utc)
            ).all()
        return [self._unlock_from_row(row) for row in rows]

    # Applications and history

    def create_application(
        self,
        *,
        candidate_id: str,
        job_id: str,
        status: ApplicationStatus = ApplicationStatus.applied,
        application_id: Optional[str] = None,
    ) -> ApplicationRecord:
        record = ApplicationRecord(
            id=application_id or new_id("app"),
            candidate_id=candidate_id,
            job_id=job_id,
            status=status,
            created_at_utc=utc_now(),
        )
        with self.db.engine.begin() as conn:
            conn.execute(
                self.db.applications.insert().values(
                    id=record.id,
                    candidate_id=record.candidate_id,
                    job_id=record.job_id,
                    status=record.status.value,
                    status_updated_at_utc=None,
                    status_updated_by=None,
                    created_at_utc=record.created_at_utc,
                )
            )
        return record

    def get_application(self, application_id: str) -> ApplicationRecord:
        table = self.db.applications
        with self.db.engine.connect() as conn:
            row = conn.execute(select(table).where(table.c.id == application_id)).first()
        if not row:
            raise StoreNotFoundError(f"application not found: {application_id}")
        return ApplicationRecord(
            id=row.id,
            candidate_id=row.candidate_id,
            job_id=row.job_id,
            status=ApplicationStatus(row.status),
            status_updated_at_utc=row.status_updated_at_utc,
            status_updated_by=row.status_updated_by,
            created_at_utc=row.created_at_utc,
        )

    def write_application_status(
        self,
        application_id: str,
        *,
        new_status: ApplicationStatus,
        changed_by: str,
        expected_status: Optional[ApplicationStatus] = None,
    ) -> bool:
        """Write the status column. With ``expected_status`` the write is a compare-and-set.

        Returns ``False`` when no row matched (missing application or stale expectation).
        """
        table = self.db.applications
        conditions = [table.c.id == application_id]
        if expected_status is not None:
            conditions.append(table.c.status == expected_status.value)
        with self.db.engine.begin() as conn:
            result = conn.execute(
                update(table)
                .where(*conditions)
                .values(
                    status=new_status.value,
                    status_updated_at_utc=utc_now(),
                    status_updated_by=changed_by,
                )
            )
        return result.rowcount == 1

    def append_status_history(
        self,
        *,
        application_id: str,
        old_status: Optional[ApplicationStatus],
        new_status: ApplicationStatus,
        changed_by: str,
        change_type: ChangeType,
        trigger_source: Optional[str] = None,
        trigger_id: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> StatusHistoryRecord:
        table = self.db.application_status_history
        values = {
            "id": new_id("hist"),
            "application_id": application_id,
            "old_status": old_status.value if old_status else None,
            "new_status": new_status.value,
            "changed_by": changed_by,
            "change_type": change_type.value,
            "trigger_source": trigger_source,
            "trigger_id": trigger_id,
            "notes": notes,
            "created_at_utc": utc_now(),
        }
        with self.db.engine.begin() as conn:
            result = conn.execute(table.insert().values(**values))
            seq = result.inserted_primary_key[0]
        return StatusHistoryRecord(seq=seq, **values)

    def list_status_history(
        self, application_id: str, *, newest_first: bool = True
    ) -> list[StatusHistoryRecord]:
        table = self.db.application_status_history
        order = table.c.seq.desc() if newest_first else table.c.seq.asc()
        with self.db.engine.connect() as conn:
            rows = conn.execute(
                select(table).where(table.c.application_id == application_id).order_by(order)
            ).all()
        return [
            StatusHistoryRecord(
                id=row.id,
                seq=row.seq,
                application_id=row.application_id,
                old_status=ApplicationStatus(row.old_status) if row.old_status else None,
                new_status=ApplicationStatus(row.new_status),
                changed_by=row.changed_by,
                change_type=ChangeType(row.change_type),
                trigger_source=row.trigger_source,
                trigger_id=row.trigger_id,
                notes=row.notes,
                created_at_utc=row.created_at_utc,
            )
            for row in rows
        ]

    # Calendar

    def create_calendar_event(
        self,
        *,
        event_type: CalendarEventType,
        start_time_utc: datetime,
        end_time_utc: datetime,
        application_id: Optional[str] = None,
        status: CalendarEventStatus = CalendarEventStatus.pending,
        event_id: Optional[str] = None,
    ) -> CalendarEventRecord:
        if end_time_utc < start_time_utc:
            raise ValueError("end_time_utc cannot be before start_time_utc")
        record = CalendarEventRecord(
            id=event_id or new_id("evt"),
            application_id=application_id,
            event_type=event_type,
            start_time_utc=start_time_utc,
            end_time_utc=end_time_utc,
            status=status,
            created_at_utc=utc_now(),
        )
        with self.db.engine.begin() as conn:
            conn.execute(
                self.db.calendar_events.insert().values(
                    **record.model_dump(exclude={"event_type", "status"}),
                    event_type=record.event_type.value,
                    status=record.status.value,
                )
            )
        return record

    def get_calendar_event(self, event_id: str) -> CalendarEventRecord:
        table = self.db.calendar_events
        with self.db.engine.connect() as conn:
            row = conn.execute(select(table).where(table.c.id == event_id)).first()
        if not row:
            raise StoreNotFoundError(f"calendar event not found: {event_id}")
        return self._event_from_row(row)

    def list_pending_events_ended_between(
        self, *, window_start: datetime, window_end: datetime
    ) -> list[CalendarEventRecord]:
        table = self.db.calendar_events
        with self.db.engine.connect() as conn:
            rows = conn.execute(
                select(table)
                .where(
                    table.c.status == CalendarEventStatus.pending.value,
                    table.c.end_time_utc >= window_start,
                    table.c.end_time_utc <= window_end,
                )
                .order_by(table.c.end_time_utc)
            ).all()
        return [self._event_from_row(row) for row in rows]

    def mark_calendar_event_completed(self, event_id: str) -> bool:
        table = self.db.calendar_events
        with self.db.engine.begin() as conn:
            result = conn.execute(
                update(table)
                .where(
                    table.c.id == event_id,
                    table.c.status == CalendarEventStatus.pending.value,
                )
                .values(status=CalendarEventStatus.completed.value)
            )
        return result.rowcount == 1

    # Conversations and messages

    def create_conversation(
        self, *, application_id: Optional[str] = None, conversation_id: Optional[str] = None
    ) -> ConversationRecord:
        record = ConversationRecord(
            id=conversation_id or new_id("conv"),
            application_id=application_id,
            created_at_utc=utc_now(),
        )
        with self.db.engine.begin() as conn:
            conn.execute(self.db.conversations.insert().values(**record.model_dump()))
        return record

    def find_conversation_for_application(
        self, application_id: str
    ) -> Optional[ConversationRecord]:
        table = self.db.conversations
        with self.db.engine.connect() as conn:
            row = conn.execute(
                select(table)
                .where(table.c.application_id == application_id)
                .order_by(table.c.created_at_utc)
            ).first()
        if not row:
            return None
        return ConversationRecord(
            id=row.id,
            application_id=row.application_id,
            created_at_utc=row.created_at_utc,
        )

    def insert_message(
        self,
        *,
        conversation_id: str,
        sender_id: Optional[str],
        text: str,
        is_system_message: bool = False,
        metadata: Optional[dict[str, Any]] = None,
    ) -> MessageRecord:
        record = MessageRecord(
            id=new_id("msg"),
            conversation_id=conversation_id,
            sender_id=sender_id,
            text=text,
            is_system_message=is_system_message,
            metadata=metadata or {},
            created_at_utc=utc_now(),
        )
        with self.db.engine.begin() as conn:
            conn.execute(
                self.db.messages.insert().values(
                    **record.model_dump(exclude={"metadata"}),
                    metadata_json=json.dumps(record.metadata),
                )
            )
        return record

    def list_messages(self, conversation_id: str) -> list[MessageRecord]:
        table = self.db.messages
        with self.db.engine.connect() as conn:
            rows = conn.execute(
                select(table)
                .where(table.c.conversation_id == conversation_id)
                .order_by(table.c.seq)
            ).all()
        return [
            MessageRecord(
                id=row.id,
                conversation_id=row.conversation_id,
                sender_id=row.sender_id,
                text=row.text,
                is_system_message=bool(row.is_system_message),
                metadata=json.loads(row.metadata_json),
                created_at_utc=row.created_at_utc,
            )
            for row in rows
        ]

    # Audit log and notifications

    def insert_audit_log(
        self,
        *,
        action: str,
        success: bool,
        user_id: Optional[str] = None,
        company_id: Optional[str] = None,
        candidate_id: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> AuditLogRecord:
        record = AuditLogRecord(
            id=new_id("aud"),
            action=action,
            user_id=user_id,
            company_id=company_id,
            candidate_id=candidate_id,
            success=success,
            metadata=metadata or {},
            created_at_utc=utc_now(),
        )
        with self.db.engine.begin() as conn:
            conn.execute(
                self.db.audit_logs.insert().values(
                    **record.model_dump(exclude={"metadata"}),
                    metadata_json=json.dumps(record.metadata, default=str),
                )
            )
        return record

    def list_audit_logs(self, *, action: Optional[str] = None) -> list[AuditLogRecord]:
        table = self.db.audit_logs
        query = select(table).order_by(table.c.seq)
        if action:
            query = query.where(table.c.action == action)
        with self.db.engine.connect() as conn:
            rows = conn.execute(query).all()
        return [
            AuditLogRecord(
                id=row.id,
                action=row.action,
                user_id=row.user_id,
                company_id=row.company_id,
                candidate_id=row.candidate_id,
                success=bool(row.success),
                metadata=json.loads(row.metadata_json),
                created_at_utc=row.created_at_utc,
            )
            for row in rows
        ]

    def insert_notification(
        self,
        *,
        user_id: str,
        type: str,
        title: str,
        description: str,
        link: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> NotificationRecord:
        record = NotificationRecord(
            id=new_id("ntf"),
            user_id=user_id,
            type=type,
            title=title,
            description=description,
            link=link,
            metadata=metadata or {},
            is_read=False,
            created_at_utc=utc_now(),
        )
        with self.db.engine.begin() as conn:
            conn.execute(
                self.db.notifications.insert().values(
                    **record.model_dump(exclude={"metadata"}),
                    metadata_json=json.dumps(record.metadata, default=str),
                )
            )
        return record

    def list_notifications(self, user_id: str) -> list[NotificationRecord]:
        table = self.db.notifications
        with self.db.engine.connect() as conn:
            rows = conn.execute(
                select(table).where(table.c.user_id == user_id).order_by(table.c.seq)
            ).all()
        return [
            NotificationRecord(
                id=row.id,
                user_id=row.user_id,
                type=row.type,
                title=row.title,
                description=row.description,
                link=row.link,
                metadata=json.loads(row.metadata_json),
                is_read=bool(row.is_read),
                created_at_utc=row.created_at_utc,
            )
            for row in rows
        ]

    @staticmethod
    def _company_from_row(row: Any) -> CompanyAccountRecord:
        return CompanyAccountRecord(
            id=row.id,
            owner_user_id=row.owner_user_id,
            name=row.name,
            credits=row.credits,
            updated_at_utc=row.updated_at_utc,
        )

    @staticmethod
    def _unlock_from_row(row: Any) -> UnlockRecord:
        return UnlockRecord(
            id=row.id,
            candidate_id=row.candidate_id,
            company_id=row.company_id,
            unlocked_by=row.unlocked_by,
            cost_credits=row.cost_credits,
            created_at_utc=row.created_at_utc,
        )

    @staticmethod
    def _event_from_row(row: Any) -> CalendarEventRecord:
        return CalendarEventRecord(
            id=row.id,
            application_id=row.application_id,
            event_type=CalendarEventType(row.event_type),
            start_time_utc=row.start_time_utc,
            end_time_utc=row.end_time_utc,
            status=CalendarEventStatus(row.status),
            created_at_utc=row.created_at_utc,
        )
