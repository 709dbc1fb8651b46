from __future__ import annotations

import argparse
import json
from datetime import timedelta

from backend.recruiting.models import ApplicationStatus, CalendarEventType, utc_now
from backend.recruiting.persistence import Database
from backend.recruiting.settings import load_settings
from backend.recruiting.store import RecruitingStore

DEMO_CANDIDATES = [
    ("Priya Raman", "Backend Engineer", ["python", "postgres", "kafka"]),
    ("Jordan Ellis", "Data Scientist", ["pandas", "pytorch"]),
    ("Morgan Diaz", "Frontend Engineer", ["typescript", "react"]),
]


def seed(store: RecruitingStore, *, recruiter_id: str, credits: int) -> dict:
    store.create_user_profile(
        user_id=recruiter_id, role="recruiter", email=f"{recruiter_id}@demo.local"
    )
    company = store.create_company_account(
        owner_user_id=recruiter_id, name="Demo Talent Partners", credits=credits
    )

    candidate_ids = []
    for index, (name, headline, skills) in enumerate(DEMO_CANDIDATES, start=1):
        user_id = f"demo-candidate-{index}"
        store.create_user_profile(user_id=user_id, role="candidate")
        candidate = store.create_candidate_profile(
            full_name=name,
            user_id=user_id,
            headline=headline,
            profile={"skills": skills, "location": "Remote"},
        )
        candidate_ids.append(candidate.id)

    application = store.create_application(
        candidate_id=candidate_ids[0],
        job_id="job_demo_backend",
        status=ApplicationStatus.technical_scheduled,
    )
    conversation = store.create_conversation(application_id=application.id)
    end = utc_now() - timedelta(minutes=20)
    event = store.create_calendar_event(
        event_type=CalendarEventType.technical_test,
        start_time_utc=end - timedelta(hours=1),
        end_time_utc=end,
        application_id=application.id,
    )
    return {
        "recruiter_id": recruiter_id,
        "company_id": company.id,
        "credits": company.credits,
        "candidate_ids": candidate_ids,
        "application_id": application.id,
        "conversation_id": conversation.id,
        "calendar_event_id": event.id,
    }


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed a local Talent Core database with demo data.")
    parser.add_argument("--recruiter-id", default="demo-recruiter")
    parser.add_argument("--credits", type=int, default=5)
    args = parser.parse_args()

    settings = load_settings()
    db = Database(settings.database_url)
    try:
        summary = seed(RecruitingStore(db), recruiter_id=args.recruiter_id, credits=args.credits)
    finally:
        db.dispose()
    print(json.dumps(summary, indent=2))


if __name__ == "__main__":
    main()
