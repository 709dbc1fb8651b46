"""Status signals inferred from chat message text.

This is a keyword heuristic, not a deterministic trigger. It has no confidence score;
false positives and false negatives are an accepted product tradeoff. Anything smarter
plugs in through :class:`MessageSignalClassifier`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Protocol

from backend.recruiting.errors import NotFoundError
from backend.recruiting.models import ApplicationStatus, ChangeType, SenderType, TriggerSource
from backend.recruiting.services.status_engine import StatusEngine, TransitionResult
from backend.recruiting.store import StoreNotFoundError

logger = logging.getLogger("talent_core.message_signals")

OFFER_PHRASES = (
    "pleased to offer",
    "we would like to offer",
    "extend an offer",
    "formal offer",
)
REJECTION_PHRASES = (
    "not moving forward",
    "not to move forward",
    "decided not to proceed",
    "will not be moving forward",
)
# "unfortunately" alone is too broad; it only counts next to one of these.
UNFORTUNATELY_QUALIFIERS = (
    "not be moving",
    "not selected",
    "another candidate",
    "position has been filled",
)
ACCEPTANCE_PHRASES = (
    "accept the offer",
    "i'd like to accept",
    "happy to accept",
)

OFFER_ELIGIBLE = frozenset(
    {
        ApplicationStatus.technical_completed,
        ApplicationStatus.final_round_scheduled,
        ApplicationStatus.final_round_completed,
    }
)
REJECTION_ELIGIBLE = frozenset(
    {
        ApplicationStatus.applied,
        ApplicationStatus.reviewing,
        ApplicationStatus.phone_screen_scheduled,
        ApplicationStatus.phone_screen_completed,
        ApplicationStatus.technical_scheduled,
        ApplicationStatus.technical_completed,
        ApplicationStatus.final_round_scheduled,
        ApplicationStatus.final_round_completed,
    }
)
ACCEPTANCE_ELIGIBLE = frozenset({ApplicationStatus.offer_extended})


@dataclass(frozen=True)
class StatusSignal:
    name: str
    new_status: ApplicationStatus
    notes: str
    notify_chat: bool


class MessageSignalClassifier(Protocol):
    def classify(
        self,
        *,
        text: str,
        sender_type: SenderType,
        current_status: ApplicationStatus,
    ) -> Optional[StatusSignal]:
        ...


def _contains_any(text: str, phrases: tuple[str, ...]) -> bool:
    return any(phrase in text for phrase in phrases)


class KeywordSignalClassifier:
    """Case-insensitive substring matching. At most one signal per message."""

    def classify(
        self,
        *,
        text: str,
        sender_type: SenderType,
        current_status: ApplicationStatus,
    ) -> Optional[StatusSignal]:
        lowered = text.lower()

        if sender_type == SenderType.recruiter:
            if current_status in OFFER_ELIGIBLE and _contains_any(lowered, OFFER_PHRASES):
                return StatusSignal(
                    name="offer",
                    new_status=ApplicationStatus.offer_extended,
                    notes="Offer detected in message",
                    notify_chat=False,
                )
            if current_status in REJECTION_ELIGIBLE and self._is_rejection(lowered):
                return StatusSignal(
                    name="rejection",
                    new_status=ApplicationStatus.rejected,
                    notes="Rejection detected in message",
                    notify_chat=False,
                )
            return None

        if current_status in ACCEPTANCE_ELIGIBLE and _contains_any(lowered, ACCEPTANCE_PHRASES):
            return StatusSignal(
                name="acceptance",
                new_status=ApplicationStatus.offer_accepted,
                notes="Acceptance detected in message",
                notify_chat=True,
            )
        return None

    @staticmethod
    def _is_rejection(lowered: str) -> bool:
        if _contains_any(lowered, REJECTION_PHRASES):
            return True
        return "unfortunately" in lowered and _contains_any(lowered, UNFORTUNATELY_QUALIFIERS)


@dataclass(frozen=True)
class MessageSignalOutcome:
    signal: Optional[StatusSignal]
    result: Optional[TransitionResult]


def apply_message_signal(
    *,
    engine: StatusEngine,
    classifier: MessageSignalClassifier,
    message_id: str,
    application_id: str,
    sender_id: str,
    sender_type: SenderType,
    text: str,
) -> MessageSignalOutcome:
    try:
        application = engine.store.get_application(application_id)
    except StoreNotFoundError as exc:
        raise NotFoundError(str(exc)) from exc

    signal = classifier.classify(
        text=text,
        sender_type=sender_type,
        current_status=application.status,
    )
    if signal is None:
        return MessageSignalOutcome(signal=None, result=None)

    logger.info(
        "message_signal_detected message_id=%s application_id=%s signal=%s",
        message_id,
        application_id,
        signal.name,
    )
    result = engine.transition(
        application_id,
        signal.new_status,
        changed_by=sender_id,
        change_type=ChangeType.automatic,
        trigger_source=TriggerSource.chat_message.value,
        trigger_id=message_id,
        notes=signal.notes,
        notify_chat=signal.notify_chat,
    )
    return MessageSignalOutcome(signal=signal, result=result)
