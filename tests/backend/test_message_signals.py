from __future__ import annotations

import json

import pytest

from backend.recruiting.models import ApplicationStatus, ChangeType, SenderType
from backend.recruiting.services.message_signals import KeywordSignalClassifier
from backend.recruiting.services.webhooks import sign_body

REJECTION_TEXT = "Unfortunately, we have decided not to move forward with your application."


def _application(store, status: ApplicationStatus):
    candidate = store.create_candidate_profile(full_name="Riley Chen")
    return store.create_application(candidate_id=candidate.id, job_id="job_3", status=status)


@pytest.mark.parametrize(
    ("text", "sender", "status", "expected"),
    [
        (REJECTION_TEXT, SenderType.recruiter, ApplicationStatus.technical_completed, "rejection"),
        (
            "Unfortunately the position has been filled.",
            SenderType.recruiter,
            ApplicationStatus.reviewing,
            "rejection",
        ),
        (
            "We are pleased to offer you the role!",
            SenderType.recruiter,
            ApplicationStatus.final_round_completed,
            "offer",
        ),
        (
            "I'd like to accept the offer, thank you.",
            SenderType.candidate,
            ApplicationStatus.offer_extended,
            "acceptance",
        ),
        (REJECTION_TEXT, SenderType.candidate, ApplicationStatus.technical_completed, None),
        (
            "We are pleased to offer you a second interview slot.",
            SenderType.recruiter,
            ApplicationStatus.applied,
            None,
        ),
        ("Unfortunately I am running late.", SenderType.recruiter, ApplicationStatus.reviewing, None),
        (REJECTION_TEXT, SenderType.recruiter, ApplicationStatus.rejected, None),
        (
            "Happy to accept the offer",
            SenderType.candidate,
            ApplicationStatus.reviewing,
            None,
        ),
    ],
)
def test_keyword_classifier(text, sender, status, expected) -> None:
    signal = KeywordSignalClassifier().classify(
        text=text, sender_type=sender, current_status=status
    )
    assert (signal.name if signal else None) == expected


def test_rejection_message_moves_application(client, store, auth_headers) -> None:
    application = _application(store, ApplicationStatus.technical_completed)

    response = client.post(
        "/messages/inbound",
        headers=auth_headers("messaging", ["service"]),
        json={
            "message_id": "msg_001",
            "application_id": application.id,
            "sender_id": "recruiter-1",
            "sender_type": "recruiter",
            "text": REJECTION_TEXT,
        },
    )
    assert response.status_code == 200
    assert response.json() == {
        "message_id": "msg_001",
        "signal": "rejection",
        "new_status": "rejected",
        "changed": True,
    }
    assert store.get_application(application.id).status == ApplicationStatus.rejected

    [row] = store.list_status_history(application.id)
    assert row.old_status == ApplicationStatus.technical_completed
    assert row.change_type == ChangeType.automatic
    assert row.trigger_source == "chat_message"
    assert row.trigger_id == "msg_001"
    assert row.changed_by == "recruiter-1"


def test_acceptance_posts_confirmation_into_chat(client, store, auth_headers) -> None:
    application = _application(store, ApplicationStatus.offer_extended)
    conversation = store.create_conversation(application_id=application.id)

    response = client.post(
        "/messages/inbound",
        headers=auth_headers("messaging", ["service"]),
        json={
            "message_id": "msg_002",
            "application_id": application.id,
            "sender_id": "candidate-user-1",
            "sender_type": "candidate",
            "text": "Great news, I'd like to accept the offer.",
        },
    )
    assert response.status_code == 200
    assert response.json()["new_status"] == "offer_accepted"
    [message] = store.list_messages(conversation.id)
    assert message.text == "Application status updated: Offer Accepted"


def test_offer_does_not_post_chat_message(client, store, auth_headers) -> None:
    application = _application(store, ApplicationStatus.final_round_completed)
    conversation = store.create_conversation(application_id=application.id)

    response = client.post(
        "/messages/inbound",
        headers=auth_headers("messaging", ["service"]),
        json={
            "message_id": "msg_003",
            "application_id": application.id,
            "sender_id": "recruiter-1",
            "sender_type": "recruiter",
            "text": "We would like to offer you the position.",
        },
    )
    assert response.status_code == 200
    assert response.json()["new_status"] == "offer_extended"
    assert store.list_messages(conversation.id) == []


def test_message_without_signal_changes_nothing(client, store, auth_headers) -> None:
    application = _application(store, ApplicationStatus.reviewing)

    response = client.post(
        "/messages/inbound",
        headers=auth_headers("messaging", ["service"]),
        json={
            "message_id": "msg_004",
            "application_id": application.id,
            "sender_id": "recruiter-1",
            "sender_type": "recruiter",
            "text": "Can you share your availability next week?",
        },
    )
    assert response.status_code == 200
    assert response.json() == {
        "message_id": "msg_004",
        "signal": None,
        "new_status": None,
        "changed": False,
    }
    assert store.list_status_history(application.id) == []


def test_message_for_unknown_application_is_not_found(client, auth_headers) -> None:
    response = client.post(
        "/messages/inbound",
        headers=auth_headers("messaging", ["service"]),
        json={
            "message_id": "msg_005",
            "application_id": "app_missing",
            "sender_id": "recruiter-1",
            "sender_type": "recruiter",
            "text": REJECTION_TEXT,
        },
    )
    assert response.status_code == 404
    assert response.json()["code"] == "NOT_FOUND"


def test_message_payload_is_validated(client, auth_headers) -> None:
    response = client.post(
        "/messages/inbound",
        headers=auth_headers("messaging", ["service"]),
        json={"message_id": "msg_006", "sender_type": "bot"},
    )
    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_REQUEST"


def test_message_hook_signature_is_enforced_when_configured(make_client, auth_headers) -> None:
    client = make_client(MESSAGE_HOOK_SECRET="hook-secret")
    store = client.app.state.store
    application = _application(store, ApplicationStatus.technical_completed)
    raw = json.dumps(
        {
            "message_id": "msg_007",
            "application_id": application.id,
            "sender_id": "recruiter-1",
            "sender_type": "recruiter",
            "text": REJECTION_TEXT,
        }
    ).encode("utf-8")
    headers = {**auth_headers("messaging", ["service"]), "Content-Type": "application/json"}

    unsigned = client.post("/messages/inbound", headers=headers, content=raw)
    assert unsigned.status_code == 403

    forged = client.post(
        "/messages/inbound",
        headers={**headers, "X-Message-Signature-256": sign_body(raw, "wrong-secret")},
        content=raw,
    )
    assert forged.status_code == 403

    signed = client.post(
        "/messages/inbound",
        headers={**headers, "X-Message-Signature-256": sign_body(raw, "hook-secret")},
        content=raw,
    )
    assert signed.status_code == 200
    assert signed.json()["new_status"] == "rejected"
