from __future__ import annotations


def test_metrics_endpoint_exposes_counters(client) -> None:
    health = client.get("/health")
    assert health.status_code == 200

    metrics = client.get("/metrics")
    assert metrics.status_code == 200
    body = metrics.text
    assert "talent_core_requests_total" in body
    assert "talent_core_requests_5xx_total" in body


def test_readiness_endpoint(client) -> None:
    response = client.get("/health/ready")
    assert response.status_code == 200
    assert response.json()["status"] == "ready"


def test_domain_counters_follow_unlocks_and_transitions(
    client, store, auth_headers, seed_unlock_world
) -> None:
    world = seed_unlock_world(credits=1)
    headers = auth_headers(world.recruiter_id, ["recruiter"])
    client.post("/unlock-profile", headers=headers, json={"candidateId": world.candidate.id})
    client.post("/unlock-profile", headers=headers, json={"candidateId": world.candidate.id})
    other = store.create_candidate_profile(full_name="Taylor Brooks")
    client.post("/unlock-profile", headers=headers, json={"candidateId": other.id})

    application = store.create_application(candidate_id=other.id, job_id="job_5")
    client.post(
        f"/applications/{application.id}/status",
        headers=headers,
        json={"new_status": "reviewing"},
    )

    body = client.get("/metrics").text
    assert 'talent_core_unlocks_total{outcome="unlocked"} 1' in body
    assert 'talent_core_unlocks_total{outcome="already_unlocked"} 1' in body
    assert 'talent_core_unlocks_total{outcome="INSUFFICIENT_CREDITS"} 1' in body
    assert 'talent_core_status_transitions_total{trigger_source="manual"} 1' in body
    assert 'talent_core_route_requests_total{route="/unlock-profile",status="403"} 1' in body


def test_unknown_route_uses_error_envelope(client) -> None:
    response = client.get("/does-not-exist")
    assert response.status_code == 404
    assert response.json() == {"success": False, "error": "Not Found", "code": "NOT_FOUND"}
