from __future__ import annotations

import pytest

from backend.recruiting.models import ApplicationStatus
from backend.recruiting.persistence import Database
from backend.recruiting.store import RecruitingStore, StoreConflictError


def test_unlock_state_survives_restart(make_client, auth_headers) -> None:
    first_client = make_client()
    store = first_client.app.state.store
    store.create_user_profile(user_id="recruiter-1", role="recruiter")
    company = store.create_company_account(owner_user_id="recruiter-1", name="Acme", credits=3)
    candidate = store.create_candidate_profile(full_name="Avery Stone")
    headers = auth_headers("recruiter-1", ["recruiter"])

    first = first_client.post("/unlock-profile", headers=headers, json={"candidateId": candidate.id})
    assert first.status_code == 200
    assert first.json()["creditsRemaining"] == 2

    restarted_client = make_client()
    second = restarted_client.post(
        "/unlock-profile", headers=headers, json={"candidateId": candidate.id}
    )
    assert second.status_code == 200
    assert second.json()["creditsRemaining"] == 2
    assert second.json()["unlock"]["id"] == first.json()["unlock"]["id"]
    assert restarted_client.app.state.store.get_credits(company.id) == 2


def test_sqlite_url_creates_missing_parent_directories(tmp_path) -> None:
    db_path = tmp_path / "nested" / "talent_core.sqlite3"
    db = Database(f"sqlite:///{db_path.as_posix()}")
    assert db_path.parent.exists()
    assert db.ping()


def test_plain_path_is_treated_as_sqlite(tmp_path) -> None:
    db = Database(str(tmp_path / "plain" / "core.sqlite3"))
    assert db.database_url.startswith("sqlite:///")
    assert db.ping()


def test_unlock_pair_is_unique_in_the_database(tmp_path) -> None:
    store = RecruitingStore(Database(f"sqlite:///{(tmp_path / 'core.sqlite3').as_posix()}"))
    company = store.create_company_account(owner_user_id="recruiter-1", name="Acme", credits=1)
    candidate = store.create_candidate_profile(full_name="Drew Hale")
    store.insert_unlock(
        candidate_id=candidate.id, company_id=company.id, unlocked_by="recruiter-1", cost_credits=1
    )

    with pytest.raises(StoreConflictError):
        store.insert_unlock(
            candidate_id=candidate.id,
            company_id=company.id,
            unlocked_by="recruiter-1",
            cost_credits=1,
        )


def test_debit_is_guarded_and_credit_restores(tmp_path) -> None:
    store = RecruitingStore(Database(f"sqlite:///{(tmp_path / 'core.sqlite3').as_posix()}"))
    company = store.create_company_account(owner_user_id="recruiter-1", name="Acme", credits=2)

    assert store.debit_credits(company.id, 2) == 0
    assert store.debit_credits(company.id, 1) is None
    assert store.get_credits(company.id) == 0
    assert store.credit_credits(company.id, 2) == 2


def test_status_write_with_stale_expectation_matches_nothing(tmp_path) -> None:
    store = RecruitingStore(Database(f"sqlite:///{(tmp_path / 'core.sqlite3').as_posix()}"))
    application = store.create_application(candidate_id="cand-1", job_id="job-1")

    assert not store.write_application_status(
        application.id,
        new_status=ApplicationStatus.hired,
        changed_by="r-1",
        expected_status=ApplicationStatus.offer_accepted,
    )
    assert store.write_application_status(
        application.id, new_status=ApplicationStatus.reviewing, changed_by="r-1"
    )
    assert not store.write_application_status(
        "app_missing", new_status=ApplicationStatus.reviewing, changed_by="r-1"
    )
