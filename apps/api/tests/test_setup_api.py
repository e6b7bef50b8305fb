"""Setup endpoint tests."""
from uuid import UUID

import pytest

from models import Exercise, Profile, UserDay, WorkoutBuddy, WorkoutUser
from services.default_exercises import DEFAULT_EXERCISES
from services.identity_service import sign_up

PASSWORD = "password123"


def _headers(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def token(client):
    resp = client.post("/v1/auth/signup", json={"email": "a@b.com", "password": PASSWORD})
    assert resp.status_code == 201, resp.text
    return resp.json()["access_token"]


def test_ensure_bootstraps_bare_identity(client, store):
    session = sign_up(store, "bare@b.com", PASSWORD)
    headers = _headers(session.access_token())

    resp = client.post("/v1/setup/ensure", headers=headers)

    assert resp.status_code == 200
    body = resp.json()
    assert body["profile_created"] is True
    assert body["alias_created"] is True
    assert body["alias_name"] == "bare"
    assert body["status"]["reason"] == "no_template"

    again = client.post("/v1/setup/ensure", headers=headers).json()
    assert again["profile_created"] is False
    assert again["alias_created"] is False
    assert again["alias_name"] == "bare"
    assert again["display_name"] == "bare"
    assert store.count(WorkoutUser, auth_id=session.id) == 1


def test_ensure_requires_auth(client):
    assert client.post("/v1/setup/ensure").status_code == 401


def test_status(client, token):
    resp = client.get("/v1/setup/status", headers=_headers(token))

    assert resp.status_code == 200
    assert resp.json()["complete"] is False
    assert resp.json()["reason"] == "no_template"


def test_setup_steps_end_to_end(client, store, token):
    headers = _headers(token)

    resp = client.put("/v1/setup/display-name", json={"display_name": "Sam"}, headers=headers)
    assert resp.status_code == 200
    assert resp.json()["display_name"] == "Sam"

    resp = client.put("/v1/setup/buddy", json={"has_buddy": True, "buddy_name": "Alex"}, headers=headers)
    assert resp.json()["buddy_name"] == "Alex"

    resp = client.put("/v1/setup/template", json={"template_preference": "template"}, headers=headers)
    assert resp.json()["template_preference"] == "template"

    resp = client.post("/v1/setup/days", json={"days": ["monday", "Saturday"]}, headers=headers)
    assert resp.status_code == 200
    body = resp.json()
    assert body["alias_name"] == "Sam"
    assert body["buddy_name"] == "Alex"
    assert body["days"] == ["Monday", "Saturday"]
    expected = 2 * (len(DEFAULT_EXERCISES["Monday"]) + len(DEFAULT_EXERCISES["Saturday"]))
    assert body["exercises_seeded"] == expected

    owner_id = UUID(client.get("/v1/auth/me", headers=headers).json()["session"]["id"])
    assert store.count(UserDay, auth_id=owner_id) == 4
    assert store.count(Exercise, username="Alex") == expected // 2
    assert store.count(WorkoutBuddy, profile_id=owner_id) == 1

    status = client.get("/v1/setup/status", headers=headers).json()
    assert status == {"complete": True, "reason": None, "redirect_to": None}


def test_days_with_inline_template(client, token):
    resp = client.post(
        "/v1/setup/days",
        json={"days": ["Friday"], "template_preference": "fresh"},
        headers=_headers(token),
    )

    assert resp.status_code == 200
    assert resp.json()["exercises_seeded"] == 0


def test_days_before_template_is_rejected(client, token):
    resp = client.post("/v1/setup/days", json={"days": ["Friday"]}, headers=_headers(token))

    assert resp.status_code == 409
    assert resp.json()["error_code"] == "SETUP_REQUIRED"
    assert resp.json()["reason"] == "no_template"


def test_invalid_day_is_rejected(client, token):
    headers = _headers(token)
    client.put("/v1/setup/template", json={"template_preference": "fresh"}, headers=headers)

    resp = client.post("/v1/setup/days", json={"days": ["Monday", "Caturday"]}, headers=headers)

    assert resp.status_code == 422
    assert resp.json()["error_code"] == "VALIDATION_ERROR_DAYS"


def test_taken_display_name_is_conflict(client, store, token):
    other = sign_up(store, "sam@b.com", PASSWORD)
    store.insert(WorkoutUser(username="Sam", auth_id=other.id))

    resp = client.put("/v1/setup/display-name", json={"display_name": "Sam"}, headers=_headers(token))

    assert resp.status_code == 409
    assert store.select_one(Profile, display_name="a") is not None


def test_days_conflict_when_no_buddy_name_is_free(client, store, token):
    other = sign_up(store, "sam@b.com", PASSWORD)
    store.insert_many(
        WorkoutUser(username=name, auth_id=other.id)
        for name in ["Sam"] + [f"Sam_{n}" for n in range(1, 6)]
    )
    headers = _headers(token)
    client.put("/v1/setup/buddy", json={"has_buddy": True, "buddy_name": "Sam"}, headers=headers)
    client.put("/v1/setup/template", json={"template_preference": "fresh"}, headers=headers)

    resp = client.post("/v1/setup/days", json={"days": ["Monday"]}, headers=headers)

    assert resp.status_code == 409
    assert resp.json()["error_code"] == "CONFLICT"
    assert "'Sam'" in resp.json()["detail"]
    assert store.count(UserDay, username="a") == 0
