from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

import jwt
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from backend.recruiting.errors import UnauthorizedError
from backend.recruiting.settings import Settings

security = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class AuthContext:
    user_id: str
    roles: frozenset[str]


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def _developer_context() -> AuthContext:
    return AuthContext(
        user_id="dev-local",
        roles=frozenset({"admin", "recruiter", "service"}),
    )


def decode_token(token: str, settings: Settings) -> AuthContext:
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
        )
    except jwt.InvalidTokenError as exc:
        raise UnauthorizedError("Invalid or expired authentication token.") from exc

    subject = payload.get("sub")
    roles = payload.get("roles", [])
    if not isinstance(subject, str) or not subject.strip():
        raise UnauthorizedError("Authentication token is missing a subject.")
    if not isinstance(roles, list):
        raise UnauthorizedError("Authentication token roles must be a list.")
    role_set = frozenset(str(role).strip() for role in roles if str(role).strip())
    return AuthContext(user_id=subject.strip(), roles=role_set)


def get_auth_context(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> AuthContext:
    settings = get_settings(request)
    if not settings.auth_enabled:
        return _developer_context()

    if not credentials or credentials.scheme.lower() != "bearer":
        raise UnauthorizedError("Missing or invalid authorization header.")
    return decode_token(credentials.credentials, settings)


def require_roles(*required_roles: str) -> Callable[[AuthContext], AuthContext]:
    required = {role.strip() for role in required_roles if role.strip()}

    def dependency(context: AuthContext = Depends(get_auth_context)) -> AuthContext:
        if required and context.roles.isdisjoint(required):
            raise UnauthorizedError(
                f"Insufficient role. Required any of: {sorted(required)}",
                http_status=403,
            )
        return context

    return dependency
