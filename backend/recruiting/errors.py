from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    insufficient_credits = "INSUFFICIENT_CREDITS"
    already_unlocked = "ALREADY_UNLOCKED"
    not_found = "NOT_FOUND"
    unauthorized = "UNAUTHORIZED"
    invalid_request = "INVALID_REQUEST"
    conflict = "CONFLICT"
    internal = "INTERNAL"


class CoreError(Exception):
    """Base for every failure that reaches a caller as ``{success, error, code}``.

    Callers branch on ``code``; ``message`` is for humans only.
    """

    code: ErrorCode = ErrorCode.internal
    http_status: int = 500

    def __init__(
        self,
        message: str,
        *,
        http_status: int | None = None,
        detail: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if http_status is not None:
            self.http_status = http_status
        self.detail = detail or {}

    def to_response(self) -> dict[str, Any]:
        return {"success": False, "error": self.message, "code": self.code.value}


class InvalidRequestError(CoreError):
    code = ErrorCode.invalid_request
    http_status = 400


class UnauthorizedError(CoreError):
    code = ErrorCode.unauthorized
    http_status = 401


class NotFoundError(CoreError):
    code = ErrorCode.not_found
    http_status = 404


class InsufficientCreditsError(CoreError):
    code = ErrorCode.insufficient_credits
    http_status = 403


class StatusConflictError(CoreError):
    code = ErrorCode.conflict
    http_status = 409


class InternalError(CoreError):
    code = ErrorCode.internal
    http_status = 500
