"""API tests against the dry-run backend"""

from datetime import timedelta

import jwt
import pytest
from fastapi.testclient import TestClient

from infoflow.api.deps import ServiceContainer, get_container
from infoflow.config.settings import Settings
from infoflow.main import app
from infoflow.repositories.dry_run import (
    DryRunRepository, InMemoryUserRepository, InMemoryNotificationRepository
)
from infoflow.repositories.factory import RepositoryBundle
from infoflow.repositories.seed import sample_principals
from infoflow.utils import jwt as jwt_utils
from infoflow.utils.time import utc_now, format_iso, parse_iso


SECRET = "test-secret-with-enough-bytes-for-hs256"


def token_for(user_id: str) -> dict:
    token = jwt.encode({"sub": user_id, "name": user_id}, SECRET, algorithm="HS256")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setattr(jwt_utils, "_jwt_validator", jwt_utils.JWTValidator(secret=SECRET, audience=""))

    container = ServiceContainer(
        RepositoryBundle(
            DryRunRepository(),
            InMemoryUserRepository(sample_principals()),
            InMemoryNotificationRepository(),
        ),
        Settings(repository_backend="dry_run"),
    )
    app.dependency_overrides[get_container] = lambda: container
    yield TestClient(app)
    app.dependency_overrides.clear()


def create(client, **overrides):
    body = {
        "title": "Q2 Energy Data",
        "info_need": "Installed capacity per division",
        "timeline": format_iso(utc_now() + timedelta(days=10)),
        "states": ["X"],
    }
    body.update(overrides)
    return client.post("/api/v1/requests/", json=body, headers=token_for("no-1"))


def test_missing_token_is_401(client):
    response = client.get("/api/v1/requests/")
    assert response.status_code == 401
    assert response.json()["error"]["code"] == "AUTHENTICATION_ERROR"


def test_bad_token_is_401(client):
    response = client.get("/api/v1/requests/", headers={"Authorization": "Bearer nope"})
    assert response.status_code == 401


def test_create_and_read(client):
    response = create(client)
    assert response.status_code == 201
    detail = response.json()
    request_id = detail["request"]["request_id"]

    assert request_id.startswith("DRYRUN-")
    assert detail["dry_run"] is True
    assert detail["current_assignee"]["user_id"] == "exec-1"
    assert response.headers["X-Correlation-Id"]
    assert parse_iso(detail["request"]["deadline"]) == parse_iso(detail["request"]["timeline"]) - timedelta(days=3)

    fetched = client.get(f"/api/v1/requests/{request_id}", headers=token_for("exec-1")).json()
    assert fetched["available_actions"] == ["approve", "reject", "delete"]


def test_timeline_too_soon(client):
    response = create(client, timeline=format_iso(utc_now() + timedelta(days=2)))
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "TIMELINE_TOO_SOON"


def test_schema_errors_use_error_envelope(client):
    response = create(client, states=[])
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


def test_permission_denied_is_403(client):
    request_id = create(client).json()["request"]["request_id"]
    response = client.post(
        f"/api/v1/requests/{request_id}/approve", json={}, headers=token_for("sa-x")
    )
    assert response.status_code == 403
    assert response.json()["error"]["details"]["user_id"] == "sa-x"


def test_unknown_request_is_404(client):
    response = client.get("/api/v1/requests/DRYRUN-REQ-missing", headers=token_for("no-1"))
    assert response.status_code == 404


def test_first_pass_decline_is_409(client):
    request_id = create(client).json()["request"]["request_id"]
    response = client.post(
        f"/api/v1/requests/{request_id}/decline",
        json={"notes": "not yet"},
        headers=token_for("exec-1"),
    )
    assert response.status_code == 409
    assert response.json()["error"]["code"] == "DECLINE_NOT_ALLOWED"


def test_division_round_trip(client):
    request_id = create(client, branches=["A", "B"], merge_strategy={"mw": "sum"}).json()["request"]["request_id"]
    base = f"/api/v1/requests/{request_id}"

    assert client.post(f"{base}/approve", json={}, headers=token_for("exec-1")).json()["assignee_id"] == "sa-x"
    assert client.post(f"{base}/approve", json={}, headers=token_for("sa-x")).json()["assignee_id"] == "dh-a"

    actions = client.get(f"{base}/actions", headers=token_for("dh-a")).json()
    assert actions["actions"] == ["approve"]

    submission_ids = {}
    for division, mw in (("A", 10), ("B", 5)):
        head, analyst = token_for(f"dh-{division.lower()}"), token_for(f"da-{division.lower()}")
        client.post(f"{base}/approve", json={"division": division}, headers=head)
        response = client.post(
            f"{base}/submissions",
            json={"division": division, "state": "X", "data": {"mw": mw}},
            headers=analyst,
        )
        assert response.status_code == 201
        submission_ids[division] = response.json()["submission_id"]

    review = client.post(
        f"/api/v1/submissions/{submission_ids['A']}/review",
        json={"action": "approve"},
        headers=token_for("dh-a"),
    )
    assert review.json()["status"] == "approved"
    client.post(
        f"/api/v1/submissions/{submission_ids['B']}/review",
        json={"action": "approve"},
        headers=token_for("dh-b"),
    )

    response = client.post(f"{base}/approve", json={}, headers=token_for("sc-x"))
    assert response.json()["assignee_id"] == "sa-x"

    report = client.get(f"{base}/state-report", params={"state": "X"}, headers=token_for("sa-x")).json()
    assert report["data"] == {"mw": 15}

    listed = client.get(f"{base}/submissions", params={"branch": "A"}, headers=token_for("sa-x")).json()
    assert [s["status"] for s in listed] == ["merged"]


def test_fan_out_endpoint(client):
    request_id = create(client).json()["request"]["request_id"]
    base = f"/api/v1/requests/{request_id}"
    client.post(f"{base}/approve", json={}, headers=token_for("exec-1"))
    client.post(f"{base}/approve", json={}, headers=token_for("sa-x"))

    response = client.post(f"{base}/fanout", json={"state": "X", "divisions": ["B"]}, headers=token_for("sc-x"))
    assert response.status_code == 200
    assert [a["division"] for a in response.json()["created"]] == ["B"]

    again = client.post(f"{base}/fanout", json={"state": "X", "divisions": ["B"]}, headers=token_for("sc-x"))
    assert again.json()["created"] == []


def test_reject_close_and_delete(client):
    request_id = create(client).json()["request"]["request_id"]
    base = f"/api/v1/requests/{request_id}"

    rejected = client.post(f"{base}/reject", json={"notes": "Out of scope"}, headers=token_for("exec-1"))
    assert rejected.json()["request"]["request"]["status"] == "rejected"

    closed = client.post(f"{base}/close", json={}, headers=token_for("no-1"))
    assert closed.json()["request"]["request"]["status"] == "closed"

    deleted = client.delete(base, headers=token_for("no-1"))
    assert deleted.json() == {"request_id": request_id, "deleted_submissions": 0}
    assert client.get(base, headers=token_for("no-1")).status_code == 404


def test_list_mine(client):
    create(client)
    assert len(client.get("/api/v1/requests/", params={"mine": True}, headers=token_for("exec-1")).json()["items"]) == 1
    assert client.get("/api/v1/requests/", params={"mine": True}, headers=token_for("sa-x")).json()["items"] == []


def test_merge_preview(client):
    response = client.post(
        "/api/v1/merge/preview",
        json={
            "strategies": {"mw": "max"},
            "submissions": [{"branch": "A", "data": {"mw": 3}}, {"branch": "B", "data": {"mw": 9}}],
        },
        headers=token_for("no-1"),
    )
    assert response.json() == {"merged": {"mw": 9}, "count": 2}


def test_directory_divisions(client):
    response = client.get("/api/v1/directory/divisions", params={"state": "X"}, headers=token_for("sc-x"))
    assert response.json() == {"state": "X", "items": ["A", "B"]}


def test_analytics(client):
    assert client.get("/api/v1/analytics/").status_code == 401

    create(client)
    response = client.get("/api/v1/analytics/", headers=token_for("sa-x"))
    assert response.status_code == 200
    assert response.json() == {
        "total_requests": 1,
        "total_submissions": 0,
        "overdue_requests": 0,
        "dry_run": True,
    }
