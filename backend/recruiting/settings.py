from __future__ import annotations

import os
from dataclasses import dataclass


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def clamp_lookback_minutes(value: int) -> int:
    return max(5, min(1440, value))


def _bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _csv_env(name: str, default: str) -> frozenset[str]:
    raw = os.getenv(name, default)
    return frozenset(item.strip() for item in raw.split(",") if item.strip())


@dataclass(frozen=True)
class Settings:
    app_env: str
    database_url: str
    auth_enabled: bool
    jwt_secret: str
    jwt_algorithm: str
    unlock_cost_credits: int
    unlock_roles: frozenset[str]
    calendar_sweep_lookback_minutes: int
    side_effects_async: bool
    side_effect_workers: int
    message_hook_secret: str


def load_settings() -> Settings:
    database_url = os.getenv("DATABASE_URL", "").strip()
    if not database_url:
        db_path = os.getenv("DATABASE_PATH", "data/talent_core.sqlite3").strip()
        database_url = f"sqlite:///{db_path.replace(chr(92), '/')}"
    return Settings(
        app_env=os.getenv("APP_ENV", "development"),
        database_url=database_url,
        auth_enabled=_bool_env("AUTH_ENABLED", True),
        jwt_secret=os.getenv("JWT_SECRET", "dev-only-secret-change-in-prod").strip(),
        jwt_algorithm=os.getenv("JWT_ALGORITHM", "HS256").strip(),
        unlock_cost_credits=max(1, _int_env("UNLOCK_COST_CREDITS", 1)),
        unlock_roles=_csv_env("UNLOCK_ALLOWED_ROLES", "recruiter"),
        calendar_sweep_lookback_minutes=clamp_lookback_minutes(
            _int_env("CALENDAR_SWEEP_LOOKBACK_MINUTES", 60)
        ),
        side_effects_async=_bool_env("SIDE_EFFECTS_ASYNC", False),
        side_effect_workers=max(1, _int_env("SIDE_EFFECT_WORKERS", 4)),
        message_hook_secret=os.getenv("MESSAGE_HOOK_SECRET", "").strip(),
    )
