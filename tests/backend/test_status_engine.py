from __future__ import annotations

from datetime import timedelta

from sqlalchemy.exc import SQLAlchemyError

from backend.recruiting.models import (
    ApplicationStatus,
    CalendarEventType,
    ChangeType,
    utc_now,
)


def _application(store, status: ApplicationStatus = ApplicationStatus.applied):
    candidate = store.create_candidate_profile(full_name="Jordan Ellis")
    return store.create_application(candidate_id=candidate.id, job_id="job_1", status=status)


def test_manual_status_change_records_history(client, store, auth_headers) -> None:
    application = _application(store)
    headers = auth_headers("recruiter-1", ["recruiter"])

    response = client.post(
        f"/applications/{application.id}/status",
        headers=headers,
        json={"new_status": "reviewing", "notes": "Strong resume"},
    )
    assert response.status_code == 200
    assert response.json() == {
        "application_id": application.id,
        "old_status": "applied",
        "new_status": "reviewing",
        "changed": True,
    }
    assert store.get_application(application.id).status == ApplicationStatus.reviewing
    assert store.get_application(application.id).status_updated_by == "recruiter-1"

    history = client.get(f"/applications/{application.id}/status-history", headers=headers)
    assert history.status_code == 200
    rows = history.json()
    assert len(rows) == 1
    assert rows[0]["old_status"] == "applied"
    assert rows[0]["new_status"] == "reviewing"
    assert rows[0]["label"] == "Under Review"
    assert rows[0]["change_type"] == "manual"
    assert rows[0]["trigger_source"] == "manual"
    assert rows[0]["changed_by"] == "recruiter-1"
    assert rows[0]["notes"] == "Strong resume"


def test_self_transition_writes_nothing(client, store, auth_headers) -> None:
    application = _application(store, ApplicationStatus.reviewing)

    response = client.post(
        f"/applications/{application.id}/status",
        headers=auth_headers("recruiter-1", ["recruiter"]),
        json={"new_status": "reviewing"},
    )
    assert response.status_code == 200
    assert response.json()["changed"] is False
    assert store.list_status_history(application.id) == []
    assert store.get_application(application.id).status_updated_by is None


def test_history_links_each_transition_to_the_previous_one(client, store) -> None:
    engine = client.app.state.status_engine
    application = _application(store)

    engine.record_manual_change(application.id, ApplicationStatus.reviewing, recruiter_id="r-1")
    engine.record_manual_change(
        application.id, ApplicationStatus.phone_screen_scheduled, recruiter_id="r-1"
    )
    engine.record_manual_change(application.id, ApplicationStatus.rejected, recruiter_id="r-2")

    newest_first = engine.history(application.id)
    assert [row.new_status for row in newest_first] == [
        ApplicationStatus.rejected,
        ApplicationStatus.phone_screen_scheduled,
        ApplicationStatus.reviewing,
    ]
    oldest_first = list(reversed(newest_first))
    assert oldest_first[0].old_status == ApplicationStatus.applied
    for previous, current in zip(oldest_first, oldest_first[1:]):
        assert current.old_status == previous.new_status
        assert current.seq > previous.seq


def test_expected_status_mismatch_is_a_conflict(client, store, auth_headers) -> None:
    application = _application(store, ApplicationStatus.technical_scheduled)

    response = client.post(
        f"/applications/{application.id}/status",
        headers=auth_headers("recruiter-1", ["recruiter"]),
        json={"new_status": "technical_completed", "expected_status": "phone_screen_completed"},
    )
    assert response.status_code == 409
    assert response.json()["code"] == "CONFLICT"
    assert store.get_application(application.id).status == ApplicationStatus.technical_scheduled
    assert store.list_status_history(application.id) == []


def test_expected_status_match_is_applied(client, store, auth_headers) -> None:
    application = _application(store, ApplicationStatus.technical_scheduled)

    response = client.post(
        f"/applications/{application.id}/status",
        headers=auth_headers("recruiter-1", ["recruiter"]),
        json={"new_status": "technical_completed", "expected_status": "technical_scheduled"},
    )
    assert response.status_code == 200
    assert response.json()["changed"] is True


def test_transition_posts_system_message_into_conversation(client, store) -> None:
    engine = client.app.state.status_engine
    application = _application(store)
    conversation = store.create_conversation(application_id=application.id)

    engine.record_manual_change(application.id, ApplicationStatus.offer_extended, recruiter_id="r-1")

    messages = store.list_messages(conversation.id)
    assert len(messages) == 1
    assert messages[0].is_system_message is True
    assert messages[0].sender_id is None
    assert messages[0].text == "Application status updated: Offer Extended"
    assert messages[0].metadata["new_status"] == "offer_extended"


def test_transition_without_conversation_still_succeeds(client, store) -> None:
    engine = client.app.state.status_engine
    application = _application(store)

    result = engine.record_manual_change(
        application.id, ApplicationStatus.reviewing, recruiter_id="r-1"
    )
    assert result.changed is True
    assert result.history is not None
    assert result.history.change_type == ChangeType.manual


def test_history_failure_surfaces_but_keeps_status(client, store, auth_headers, monkeypatch) -> None:
    application = _application(store)

    def broken_append(**kwargs):
        raise SQLAlchemyError("history table unavailable")

    monkeypatch.setattr(store, "append_status_history", broken_append)

    response = client.post(
        f"/applications/{application.id}/status",
        headers=auth_headers("recruiter-1", ["recruiter"]),
        json={"new_status": "reviewing"},
    )
    assert response.status_code == 500
    assert response.json()["code"] == "INTERNAL"
    assert store.get_application(application.id).status == ApplicationStatus.reviewing


def test_unknown_application_is_not_found(client, auth_headers) -> None:
    headers = auth_headers("recruiter-1", ["recruiter"])

    change = client.post(
        "/applications/app_missing/status", headers=headers, json={"new_status": "reviewing"}
    )
    assert change.status_code == 404
    assert change.json()["code"] == "NOT_FOUND"

    history = client.get("/applications/app_missing/status-history", headers=headers)
    assert history.status_code == 404


def test_unknown_status_value_is_invalid(client, store, auth_headers) -> None:
    application = _application(store)

    response = client.post(
        f"/applications/{application.id}/status",
        headers=auth_headers("recruiter-1", ["recruiter"]),
        json={"new_status": "on_hold"},
    )
    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_REQUEST"


def test_candidate_cannot_change_status(client, store, auth_headers) -> None:
    application = _application(store)

    response = client.post(
        f"/applications/{application.id}/status",
        headers=auth_headers("candidate-user-1", ["candidate"]),
        json={"new_status": "withdrawn"},
    )
    assert response.status_code == 403
    assert store.get_application(application.id).status == ApplicationStatus.applied


def test_scheduled_calendar_event_moves_application(client, store, auth_headers) -> None:
    application = _application(store, ApplicationStatus.phone_screen_completed)
    start = utc_now() + timedelta(days=2)
    event = store.create_calendar_event(
        event_type=CalendarEventType.technical_test,
        start_time_utc=start,
        end_time_utc=start + timedelta(hours=1),
        application_id=application.id,
    )

    response = client.post(
        f"/calendar-events/{event.id}/scheduled",
        headers=auth_headers("scheduler", ["service"]),
    )
    assert response.status_code == 200
    assert response.json()["new_status"] == "technical_scheduled"

    [row] = store.list_status_history(application.id)
    assert row.change_type == ChangeType.automatic
    assert row.trigger_source == "calendar_event"
    assert row.trigger_id == event.id
    assert row.notes == "technical test scheduled"


def test_scheduled_event_without_application_is_invalid(client, store, auth_headers) -> None:
    start = utc_now() + timedelta(days=1)
    event = store.create_calendar_event(
        event_type=CalendarEventType.screening,
        start_time_utc=start,
        end_time_utc=start + timedelta(minutes=30),
    )

    response = client.post(
        f"/calendar-events/{event.id}/scheduled",
        headers=auth_headers("scheduler", ["service"]),
    )
    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_REQUEST"
