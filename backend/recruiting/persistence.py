from __future__ import annotations

from pathlib import Path

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    create_engine,
    select,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError


def _normalize_database_url(database_url: str) -> str:
    value = database_url.strip()
    if value.startswith("sqlite:///"):
        sqlite_path = value[len("sqlite:///") :].split("?", 1)[0]
        if sqlite_path and sqlite_path != ":memory:":
            path = Path(sqlite_path)
            if path.parent:
                path.parent.mkdir(parents=True, exist_ok=True)
        return value
    if "://" in value:
        return value
    path = Path(value)
    if path.parent:
        path.parent.mkdir(parents=True, exist_ok=True)
    return f"sqlite:///{str(path).replace(chr(92), '/')}"


class Database:
    """
    SQLAlchemy Core schema for the recruiting core. Works with SQLite and PostgreSQL URLs.

    No process-level lock: cross-request invariants live in conditional writes and
    unique indexes.
    """

    def __init__(self, database_url: str) -> None:
        self.database_url = _normalize_database_url(database_url)
        connect_args = {}
        if self.database_url.startswith("sqlite"):
            connect_args = {"check_same_thread": False, "timeout": 30}
        self.engine: Engine = create_engine(
            self.database_url,
            future=True,
            pool_pre_ping=True,
            connect_args=connect_args,
        )
        self.metadata = MetaData()
        self.user_profiles = Table(
            "user_profiles",
            self.metadata,
            Column("id", String(64), primary_key=True),
            Column("role", String(40), nullable=False),
            Column("email", String(255), nullable=True),
        )
        self.company_accounts = Table(
            "company_accounts",
            self.metadata,
            Column("id", String(64), primary_key=True),
            Column("owner_user_id", String(64), nullable=False, unique=True),
            Column("name", String(200), nullable=False),
            Column("credits", Integer, nullable=False),
            Column("updated_at_utc", DateTime, nullable=False),
            CheckConstraint("credits >= 0", name="ck_company_accounts_credits_non_negative"),
        )
        self.candidate_profiles = Table(
            "candidate_profiles",
            self.metadata,
            Column("id", String(64), primary_key=True),
            Column("user_id", String(64), nullable=True),
            Column("full_name", String(200), nullable=False),
            Column("headline", String(300), nullable=True),
            Column("profile_json", Text, nullable=False),
            Column("created_at_utc", DateTime, nullable=False),
        )
        self.candidate_unlocks = Table(
            "candidate_unlocks",
            self.metadata,
            Column("id", String(64), primary_key=True),
            Column("candidate_id", String(64), nullable=False),
            Column("company_id", String(64), ForeignKey("company_accounts.id"), nullable=False),
            Column("unlocked_by", String(64), nullable=False),
            Column("cost_credits", Integer, nullable=False),
            Column("created_at_utc", DateTime, nullable=False),
            UniqueConstraint("candidate_id", "company_id", name="uq_candidate_unlocks_pair"),
        )
        self.applications = Table(
            "applications",
            self.metadata,
            Column("id", String(64), primary_key=True),
            Column("candidate_id", String(64), nullable=False),
            Column("job_id", String(64), nullable=False),
            Column("status", String(40), nullable=False),
            Column("status_updated_at_utc", DateTime, nullable=True),
            Column("status_updated_by", String(64), nullable=True),
            Column("created_at_utc", DateTime, nullable=False),
        )
        self.application_status_history = Table(
            "application_status_history",
            self.metadata,
            Column("seq", Integer, primary_key=True, autoincrement=True),
            Column("id", String(64), nullable=False, unique=True),
            Column("application_id", String(64), nullable=False, index=True),
            Column("old_status", String(40), nullable=True),
            Column("new_status", String(40), nullable=False),
            Column("changed_by", String(64), nullable=False),
            Column("change_type", String(20), nullable=False),
            Column("trigger_source", String(40), nullable=True),
            Column("trigger_id", String(64), nullable=True),
            Column("notes", Text, nullable=True),
            Column("created_at_utc", DateTime, nullable=False),
        )
        self.audit_logs = Table(
            "audit_logs",
            self.metadata,
            Column("seq", Integer, primary_key=True, autoincrement=True),
            Column("id", String(64), nullable=False, unique=True),
            Column("action", String(80), nullable=False),
            Column("user_id", String(64), nullable=True),
            Column("company_id", String(64), nullable=True),
            Column("candidate_id", String(64), nullable=True),
            Column("success", Boolean, nullable=False),
            Column("metadata_json", Text, nullable=False),
            Column("created_at_utc", DateTime, nullable=False),
        )
        self.calendar_events = Table(
            "calendar_events",
            self.metadata,
            Column("id", String(64), primary_key=True),
            Column("application_id", String(64), nullable=True),
            Column("event_type", String(40), nullable=False),
            Column("start_time_utc", DateTime, nullable=False),
            Column("end_time_utc", DateTime, nullable=False, index=True),
            Column("status", String(20), nullable=False),
            Column("created_at_utc", DateTime, nullable=False),
        )
        self.conversations = Table(
            "conversations",
            self.metadata,
            Column("id", String(64), primary_key=True),
            Column("application_id", String(64), nullable=True, index=True),
            Column("created_at_utc", DateTime, nullable=False),
        )
        self.messages = Table(
            "messages",
            self.metadata,
            Column("seq", Integer, primary_key=True, autoincrement=True),
            Column("id", String(64), nullable=False, unique=True),
            Column("conversation_id", String(64), nullable=False, index=True),
            Column("sender_id", String(64), nullable=True),
            Column("text", Text, nullable=False),
            Column("is_system_message", Boolean, nullable=False),
            Column("metadata_json", Text, nullable=False),
            Column("created_at_utc", DateTime, nullable=False),
        )
        self.notifications = Table(
            "notifications",
            self.metadata,
            Column("seq", Integer, primary_key=True, autoincrement=True),
            Column("id", String(64), nullable=False, unique=True),
            Column("user_id", String(64), nullable=False, index=True),
            Column("type", String(40), nullable=False),
            Column("title", String(200), nullable=False),
            Column("description", Text, nullable=False),
            Column("link", String(500), nullable=True),
            Column("metadata_json", Text, nullable=False),
            Column("is_read", Boolean, nullable=False),
            Column("created_at_utc", DateTime, nullable=False),
        )
        self._ensure_schema()

    def _ensure_schema(self) -> None:
        self.metadata.create_all(self.engine)

    def ping(self) -> bool:
        try:
            with self.engine.connect() as conn:
                conn.execute(select(1))
            return True
        except SQLAlchemyError:
            return False

    def dispose(self) -> None:
        self.engine.dispose()
