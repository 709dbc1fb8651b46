from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from sqlalchemy.exc import SQLAlchemyError

from backend.recruiting.auth import AuthContext
from backend.recruiting.errors import (
    CoreError,
    InsufficientCreditsError,
    InternalError,
    InvalidRequestError,
    NotFoundError,
    UnauthorizedError,
)
from backend.recruiting.models import CandidateProfileRecord, CompanyAccountRecord, UnlockRecord
from backend.recruiting.observability import MetricsRegistry
from backend.recruiting.services.side_effects import AuditTrail, Notifier
from backend.recruiting.store import RecruitingStore, StoreConflictError, StoreNotFoundError

logger = logging.getLogger("talent_core.unlock")

UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)

ATTEMPT_ACTION = "unlock_profile_attempt"
SUCCESS_ACTION = "unlock_profile_success"
EXISTING_ACTION = "unlock_profile_existing"


@dataclass(frozen=True)
class UnlockResult:
    candidate: dict[str, Any]
    credits_remaining: int
    unlock: UnlockRecord
    newly_unlocked: bool


class UnlockService:
    """Charges a company for permanent visibility into one candidate profile.

    The charge is a guarded decrement in the database; an existing unlock record
    short-circuits to success without charging. If the record insert fails after the
    charge, the credits are given back before the error is surfaced.
    """

    def __init__(
        self,
        store: RecruitingStore,
        audit: AuditTrail,
        notifier: Notifier,
        *,
        cost_credits: int = 1,
        allowed_roles: Iterable[str] = ("recruiter",),
        metrics: Optional[MetricsRegistry] = None,
    ) -> None:
        self.store = store
        self.audit = audit
        self.notifier = notifier
        self.cost_credits = cost_credits
        self.allowed_roles = frozenset(allowed_roles)
        self.metrics = metrics

    def unlock(self, candidate_id: str, actor: AuthContext) -> UnlockResult:
        try:
            result = self._unlock(candidate_id, actor)
        except CoreError as exc:
            self._count(exc.code.value)
            raise
        self._count("unlocked" if result.newly_unlocked else "already_unlocked")
        return result

    def _unlock(self, candidate_id: str, actor: AuthContext) -> UnlockResult:
        if not UUID_PATTERN.match(candidate_id or ""):
            self._audit_failure(
                actor, (candidate_id or "")[:64], None, {"error": "Invalid candidateId"}
            )
            raise InvalidRequestError("candidateId must be a valid UUID.")
        candidate_id = candidate_id.lower()

        role = self._authorize(candidate_id, actor)
        company = self.store.get_company_for_owner(actor.user_id)
        if company is None:
            self._audit_failure(
                actor,
                candidate_id,
                None,
                {"error": "Company profile not found for this recruiter", "role": role},
            )
            raise UnauthorizedError("No company profile found for this user.", http_status=403)

        existing = self.store.find_unlock(candidate_id=candidate_id, company_id=company.id)
        if existing is not None:
            return self._existing_result(existing, company, actor, role, reason="existing")

        balance = company.credits
        if balance < self.cost_credits:
            self._audit_failure(
                actor,
                candidate_id,
                company.id,
                {"error": "Insufficient credits", "role": role, "credits": balance},
            )
            raise InsufficientCreditsError(
                f"Insufficient credits. You have {balance} credits, "
                f"but {self.cost_credits} is required.",
                detail={"shortfall": self.cost_credits - balance},
            )

        candidate = self.store.get_candidate_profile(candidate_id)
        if candidate is None:
            self._audit_failure(
                actor, candidate_id, company.id, {"error": "Candidate not found", "role": role}
            )
            raise NotFoundError("Candidate profile not found.")

        try:
            remaining = self.store.debit_credits(company.id, self.cost_credits)
        except SQLAlchemyError as exc:
            self._audit_failure(
                actor,
                candidate_id,
                company.id,
                {"error": "Credit deduction errored", "role": role, "db_error": str(exc)},
            )
            raise InternalError("Failed to deduct credits.") from exc
        if remaining is None:
            self._audit_failure(
                actor,
                candidate_id,
                company.id,
                {
                    "error": "Credit deduction failed - possible race condition",
                    "role": role,
                    "credits": balance,
                },
            )
            raise InsufficientCreditsError("Failed to deduct credits. Please try again.")

        try:
            record = self.store.insert_unlock(
                candidate_id=candidate_id,
                company_id=company.id,
                unlocked_by=actor.user_id,
                cost_credits=self.cost_credits,
            )
        except StoreConflictError:
            # A concurrent call for the same pair inserted first; this charge is returned.
            self._refund(company, actor, candidate_id, role, "duplicate unlock record")
            winner = self.store.find_unlock(candidate_id=candidate_id, company_id=company.id)
            if winner is None:
                raise InternalError(
                    "Failed to create unlock record. Credits have been refunded."
                )
            return self._existing_result(winner, company, actor, role, reason="concurrent")
        except SQLAlchemyError as exc:
            self._refund(company, actor, candidate_id, role, str(exc))
            raise InternalError(
                "Failed to create unlock record. Credits have been refunded."
            ) from exc

        self.audit.record(
            SUCCESS_ACTION,
            success=True,
            user_id=actor.user_id,
            company_id=company.id,
            candidate_id=candidate_id,
            metadata={
                "unlock_id": record.id,
                "role": role,
                "credits_cost": self.cost_credits,
                "credits_remaining": remaining,
            },
        )
        logger.info(
            "unlock_success company_id=%s candidate_id=%s unlock_id=%s credits_remaining=%s",
            company.id,
            candidate_id,
            record.id,
            remaining,
        )
        self._notify_candidate(candidate, company)
        return UnlockResult(
            candidate=candidate.to_unlocked_payload(),
            credits_remaining=remaining,
            unlock=record,
            newly_unlocked=True,
        )

    def _authorize(self, candidate_id: str, actor: AuthContext) -> str:
        profile = self.store.get_user_profile(actor.user_id)
        if profile is not None:
            role = profile.role
            allowed = role in self.allowed_roles
        else:
            role = ",".join(sorted(actor.roles))
            allowed = not actor.roles.isdisjoint(self.allowed_roles)
        if not allowed:
            self._audit_failure(
                actor, candidate_id, None, {"error": "Not a recruiter", "role": role}
            )
            raise UnauthorizedError(
                "Only recruiters can unlock candidate profiles.", http_status=403
            )
        return role

    def _existing_result(
        self,
        record: UnlockRecord,
        company: CompanyAccountRecord,
        actor: AuthContext,
        role: str,
        *,
        reason: str,
    ) -> UnlockResult:
        candidate = self.store.get_candidate_profile(record.candidate_id)
        if candidate is None:
            self._audit_failure(
                actor,
                record.candidate_id,
                company.id,
                {"error": "Candidate not found", "role": role, "unlock_id": record.id},
            )
            raise NotFoundError("Candidate profile not found.")
        credits = self.store.get_credits(company.id)
        self.audit.record(
            EXISTING_ACTION,
            success=True,
            user_id=actor.user_id,
            company_id=company.id,
            candidate_id=record.candidate_id,
            metadata={
                "unlock_id": record.id,
                "role": role,
                "credits_remaining": credits,
                "reason": reason,
            },
        )
        return UnlockResult(
            candidate=candidate.to_unlocked_payload(),
            credits_remaining=credits,
            unlock=record,
            newly_unlocked=False,
        )

    def _refund(
        self,
        company: CompanyAccountRecord,
        actor: AuthContext,
        candidate_id: str,
        role: str,
        cause: str,
    ) -> None:
        try:
            balance = self.store.credit_credits(company.id, self.cost_credits)
        except (SQLAlchemyError, StoreNotFoundError) as exc:
            logger.critical(
                "unlock_refund_failed company_id=%s candidate_id=%s amount=%s",
                company.id,
                candidate_id,
                self.cost_credits,
                exc_info=True,
            )
            self._audit_failure(
                actor,
                candidate_id,
                company.id,
                {
                    "error": "Failed to insert unlock record; refund failed",
                    "role": role,
                    "db_error": cause,
                    "refund_error": str(exc),
                },
            )
            raise InternalError(
                "Failed to create unlock record and the refund did not complete. "
                "Contact support to reconcile credits."
            ) from exc
        logger.warning(
            "unlock_refunded company_id=%s candidate_id=%s cause=%s credits=%s",
            company.id,
            candidate_id,
            cause,
            balance,
        )
        self._audit_failure(
            actor,
            candidate_id,
            company.id,
            {
                "error": "Failed to insert unlock record",
                "role": role,
                "db_error": cause,
                "refunded": self.cost_credits,
                "credits": balance,
            },
        )

    def _notify_candidate(
        self, candidate: CandidateProfileRecord, company: CompanyAccountRecord
    ) -> None:
        if not candidate.user_id:
            return
        self.notifier.notify_user(
            candidate.user_id,
            type="profile_unlocked",
            title="A company viewed your profile",
            description=f"{company.name} unlocked your full profile.",
            metadata={"company_id": company.id},
        )

    def _audit_failure(
        self,
        actor: AuthContext,
        candidate_id: str,
        company_id: Optional[str],
        metadata: dict[str, Any],
    ) -> None:
        self.audit.record(
            ATTEMPT_ACTION,
            success=False,
            user_id=actor.user_id,
            company_id=company_id,
            candidate_id=candidate_id,
            metadata=metadata,
        )

    def _count(self, outcome: str) -> None:
        if self.metrics is not None:
            self.metrics.record_unlock(outcome)
