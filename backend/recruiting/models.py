from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utc_now() -> datetime:
    return datetime.utcnow()


class ApplicationStatus(str, Enum):
    applied = "applied"
    reviewing = "reviewing"
    phone_screen_scheduled = "phone_screen_scheduled"
    phone_screen_completed = "phone_screen_completed"
    technical_scheduled = "technical_scheduled"
    technical_completed = "technical_completed"
    final_round_scheduled = "final_round_scheduled"
    final_round_completed = "final_round_completed"
    offer_extended = "offer_extended"
    offer_accepted = "offer_accepted"
    hired = "hired"
    rejected = "rejected"
    withdrawn = "withdrawn"


class ChangeType(str, Enum):
    manual = "manual"
    automatic = "automatic"
    system = "system"


class TriggerSource(str, Enum):
    manual = "manual"
    calendar_event = "calendar_event"
    event_time_passed = "event_time_passed"
    chat_message = "chat_message"


class CalendarEventType(str, Enum):
    screening = "screening"
    technical_test = "technical_test"
    interview = "interview"
    final_round = "final_round"


class CalendarEventStatus(str, Enum):
    pending = "pending"
    completed = "completed"
    cancelled = "cancelled"


class SenderType(str, Enum):
    recruiter = "recruiter"
    candidate = "candidate"


# Stored records


class UserProfileRecord(BaseModel):
    id: str
    role: str
    email: Optional[str] = None


class CompanyAccountRecord(BaseModel):
    id: str
    owner_user_id: str
    name: str
    credits: int = Field(ge=0)
    updated_at_utc: datetime


class CandidateProfileRecord(BaseModel):
    id: str
    user_id: Optional[str] = None
    full_name: str
    headline: Optional[str] = None
    profile: dict[str, Any] = Field(default_factory=dict)
    created_at_utc: datetime

    def to_unlocked_payload(self) -> dict[str, Any]:
        payload = dict(self.profile)
        payload.update(
            {
                "id": self.id,
                "userId": self.user_id,
                "fullName": self.full_name,
                "headline": self.headline,
                "isUnlocked": True,
            }
        )
        return payload


class UnlockRecord(BaseModel):
    id: str
    candidate_id: str
    company_id: str
    unlocked_by: str
    cost_credits: int
    created_at_utc: datetime


class ApplicationRecord(BaseModel):
    id: str
    candidate_id: str
    job_id: str
    status: ApplicationStatus = ApplicationStatus.applied
    status_updated_at_utc: Optional[datetime] = None
    status_updated_by: Optional[str] = None
    created_at_utc: datetime


class StatusHistoryRecord(BaseModel):
    id: str
    seq: int
    application_id: str
    old_status: Optional[ApplicationStatus]
    new_status: ApplicationStatus
    changed_by: str
    change_type: ChangeType
    trigger_source: Optional[str] = None
    trigger_id: Optional[str] = None
    notes: Optional[str] = None
    created_at_utc: datetime


class AuditLogRecord(BaseModel):
    id: str
    action: str
    user_id: Optional[str]
    company_id: Optional[str]
    candidate_id: Optional[str]
    success: bool
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at_utc: datetime


class CalendarEventRecord(BaseModel):
    id: str
    application_id: Optional[str]
    event_type: CalendarEventType
    start_time_utc: datetime
    end_time_utc: datetime
    status: CalendarEventStatus = CalendarEventStatus.pending
    created_at_utc: datetime


class ConversationRecord(BaseModel):
    id: str
    application_id: Optional[str]
    created_at_utc: datetime


class MessageRecord(BaseModel):
    id: str
    conversation_id: str
    sender_id: Optional[str]
    text: str
    is_system_message: bool
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at_utc: datetime


class NotificationRecord(BaseModel):
    id: str
    user_id: str
    type: str
    title: str
    description: str
    link: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    is_read: bool = False
    created_at_utc: datetime


# API payloads


class UnlockProfileRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    candidate_id: str = Field(alias="candidateId")

    @field_validator("candidate_id", mode="before")
    @classmethod
    def require_string(cls, value: Any) -> Any:
        if not isinstance(value, str) or not value.strip():
            raise ValueError("Missing or invalid candidateId in request body.")
        return value.strip()


class UnlockSummary(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    candidate_id: str = Field(serialization_alias="candidateId")
    company_id: str = Field(serialization_alias="companyId")
    unlocked_at: datetime = Field(serialization_alias="unlockedAt")
    cost: int

    @classmethod
    def from_record(cls, record: UnlockRecord) -> "UnlockSummary":
        return cls(
            id=record.id,
            candidate_id=record.candidate_id,
            company_id=record.company_id,
            unlocked_at=record.created_at_utc,
            cost=record.cost_credits,
        )


class UnlockProfileResponse(BaseModel):
    success: bool = True
    candidate: dict[str, Any]
    credits_remaining: int = Field(serialization_alias="creditsRemaining")
    unlock: UnlockSummary


class StatusTransitionRequest(BaseModel):
    new_status: ApplicationStatus
    notes: Optional[str] = Field(default=None, max_length=500)
    expected_status: Optional[ApplicationStatus] = None


class StatusTransitionResponse(BaseModel):
    application_id: str
    old_status: ApplicationStatus
    new_status: ApplicationStatus
    changed: bool


class StatusHistoryItem(BaseModel):
    id: str
    old_status: Optional[ApplicationStatus]
    new_status: ApplicationStatus
    label: str
    changed_by: str
    change_type: ChangeType
    trigger_source: Optional[str]
    trigger_id: Optional[str]
    notes: Optional[str]
    created_at_utc: datetime


class CalendarSweepResponse(BaseModel):
    scanned: int
    transitioned: int
    completed_events: int
    skipped: int
    failed: int


class InboundMessageRequest(BaseModel):
    message_id: str = Field(min_length=1, max_length=120)
    application_id: str = Field(min_length=1, max_length=120)
    sender_id: str = Field(min_length=1, max_length=120)
    sender_type: SenderType
    text: str = Field(min_length=1, max_length=10000)


class InboundMessageResponse(BaseModel):
    message_id: str
    signal: Optional[str]
    new_status: Optional[ApplicationStatus]
    changed: bool
