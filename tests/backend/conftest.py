from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable

import jwt
import pytest
from fastapi.testclient import TestClient

from backend.recruiting.main import create_app
from backend.recruiting.models import CandidateProfileRecord, CompanyAccountRecord
from backend.recruiting.store import RecruitingStore

JWT_SECRET = "test-secret-for-talent-core-suite-0001"


@dataclass
class UnlockWorld:
    recruiter_id: str
    company: CompanyAccountRecord
    candidate: CandidateProfileRecord


@pytest.fixture()
def make_client(monkeypatch: pytest.MonkeyPatch, tmp_path) -> Callable[..., TestClient]:
    db_path = tmp_path / "talent_core.sqlite3"

    def factory(*, auth_enabled: bool = True, **env: str) -> TestClient:
        monkeypatch.setenv("DATABASE_URL", f"sqlite:///{db_path.as_posix()}")
        monkeypatch.setenv("AUTH_ENABLED", "true" if auth_enabled else "false")
        monkeypatch.setenv("JWT_SECRET", JWT_SECRET)
        monkeypatch.setenv("MESSAGE_HOOK_SECRET", "")
        monkeypatch.setenv("SIDE_EFFECTS_ASYNC", "false")
        for key, value in env.items():
            monkeypatch.setenv(key, value)
        return TestClient(create_app())

    return factory


@pytest.fixture()
def client(make_client) -> TestClient:
    return make_client()


@pytest.fixture()
def store(client: TestClient) -> RecruitingStore:
    return client.app.state.store


@pytest.fixture()
def auth_headers() -> Callable[..., dict[str, str]]:
    def build(subject: str, roles: list[str], *, hours: int = 1) -> dict[str, str]:
        payload = {
            "sub": subject,
            "roles": roles,
            "exp": datetime.utcnow() + timedelta(hours=hours),
        }
        token = jwt.encode(payload, JWT_SECRET, algorithm="HS256")
        return {"Authorization": f"Bearer {token}"}

    return build


@pytest.fixture()
def seed_unlock_world(store: RecruitingStore) -> Callable[..., UnlockWorld]:
    def seed(*, credits: int = 5, recruiter_id: str = "recruiter-1") -> UnlockWorld:
        store.create_user_profile(user_id=recruiter_id, role="recruiter")
        company = store.create_company_account(
            owner_user_id=recruiter_id, name="Acme Talent", credits=credits
        )
        candidate = store.create_candidate_profile(
            full_name="Priya Raman",
            user_id="candidate-user-1",
            headline="Backend Engineer",
            profile={"skills": ["python", "postgres"], "yearsExperience": 6},
        )
        return UnlockWorld(recruiter_id=recruiter_id, company=company, candidate=candidate)

    return seed
