from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from fakes import FakeClock, FakeMessenger, FakeProvider
from scrubbed.app import create_app
from scrubbed.core.cache import TTLCache
from scrubbed.domain.models import ExternalIdentity
from scrubbed.repositories.sql_repository import SQLRepository
from scrubbed.services.auth_service import AuthService
from scrubbed.services.identity_service import IdentityResolver
from scrubbed.services.verification import VerificationGates

COLLECTOR = ExternalIdentity(id="g-collector", email="carla@example.com", user_metadata={"name": "Carla Souza"})
DUMPER = ExternalIdentity(id="g-dumper", email="davi@example.com", user_metadata={"name": "Davi Lima"})


@pytest.fixture()
def app(temp_db):
    repo = SQLRepository()
    resolver = IdentityResolver(repo, TTLCache(clock=FakeClock()))
    auth = AuthService(
        repository=repo,
        resolver=resolver,
        provider=FakeProvider({"collector-code": COLLECTOR, "dumper-code": DUMPER}),
        gates=VerificationGates(FakeMessenger(code="123456"), resolver, clock=FakeClock()),
        welcome_mailer=lambda *args: True,
    )
    return create_app(auth_service=auth)


def _sign_in(app, user_type: str, code: str, client: TestClient | None = None) -> TestClient:
    client = client or TestClient(app)
    start = client.get(f"/auth/google?user_type={user_type}", follow_redirects=False)
    assert start.status_code == 303
    assert start.headers["location"].startswith("https://provider.test/authorize?")
    resp = client.get(f"/auth/callback?code={code}")
    assert resp.status_code == 200, resp.text
    assert resp.json()["user"]["user_type"] == user_type
    return client


def test_healthz_and_security_headers(app):
    resp = TestClient(app).get("/healthz")
    assert resp.status_code == 200
    assert resp.json() == {"ok": True}
    assert resp.headers["x-frame-options"] == "DENY"
    assert resp.headers["x-content-type-options"] == "nosniff"


def test_endpoints_require_a_session(app):
    client = TestClient(app)
    assert client.get("/auth/me").status_code == 401
    assert client.get("/requests/mine").status_code == 401
    assert client.post("/requests/abc/accept").status_code == 401


def test_callback_errors(app):
    client = TestClient(app)
    assert client.get("/auth/callback?code=").status_code == 400
    assert client.get("/auth/callback?error=access_denied").status_code == 400
    assert client.get("/auth/callback?code=unknown").status_code == 502
    assert client.get("/auth/google?user_type=admin", follow_redirects=False).status_code == 400


def test_pickup_flow_between_dumper_and_collector(app):
    collector = _sign_in(app, "collector", "collector-code")
    dumper = _sign_in(app, "dumper", "dumper-code")

    me = collector.get("/collectors/me").json()
    assert me["specializations"] == ["Household", "Recyclable"]
    assert me["is_available"] is True
    assert dumper.get("/collectors/me").status_code == 403

    assert collector.get("/requests/available").json() == {"location_known": False, "requests": []}
    assert collector.post("/collectors/me/location", json={"lat": 40.7128, "lng": -74.0060}).status_code == 200

    created = dumper.post(
        "/requests",
        json={"waste_type": "Household", "lat": 40.7150, "lng": -74.0100, "address": "12 Water St"},
    )
    assert created.status_code == 201, created.text
    request_id = created.json()["id"]
    far = dumper.post(
        "/requests",
        json={"waste_type": "Organic", "lat": 40.7306, "lng": -73.9352, "address": "East Village"},
    )
    assert far.status_code == 201
    assert collector.post(
        "/requests",
        json={"waste_type": "Household", "lat": 0, "lng": 0, "address": "x"},
    ).status_code == 403
    assert dumper.post(
        "/requests",
        json={"waste_type": "Plutonium", "lat": 0, "lng": 0, "address": "x"},
    ).status_code == 400

    available = collector.get("/requests/available").json()
    assert available["location_known"] is True
    assert [item["id"] for item in available["requests"]] == [request_id]
    assert available["requests"][0]["distance_km"] < 1
    explicit = collector.get("/requests/available?lat=40.7128&lng=-74.0060").json()
    assert len(explicit["requests"]) == 1
    assert dumper.get("/requests/available").status_code == 403

    claimed = collector.post(f"/requests/{request_id}/accept")
    assert claimed.status_code == 200
    assert claimed.json()["request"]["status"] == "matched"
    again = collector.post(f"/requests/{request_id}/accept")
    assert again.status_code == 409
    assert again.json()["claimed"] is False
    assert collector.post("/requests/missing/accept").status_code == 404

    assert collector.post(f"/requests/{request_id}/status", json={"status": "completed"}).status_code == 409
    assert dumper.post(f"/requests/{request_id}/status", json={"status": "in_progress"}).status_code == 403
    assert collector.post(f"/requests/{request_id}/status", json={"status": "in_progress"}).json()["status"] == "in_progress"
    assert dumper.post(f"/requests/{request_id}/cancel").status_code == 409

    mine = dumper.get("/requests/mine").json()["requests"]
    assert {item["id"] for item in mine} == {request_id, far.json()["id"]}
    held = collector.get("/requests/mine").json()["requests"]
    assert [item["id"] for item in held] == [request_id]

    cancelled = dumper.post(f"/requests/{far.json()['id']}/cancel")
    assert cancelled.json()["status"] == "cancelled"


def test_availability_toggle(app):
    collector = _sign_in(app, "collector", "collector-code")
    resp = collector.post("/collectors/me/availability", json={"is_available": False})
    assert resp.status_code == 200
    assert resp.json()["is_available"] is False


def test_phone_verification_flow(app):
    client = _sign_in(app, "dumper", "dumper-code")

    resp = client.patch("/auth/profile", json={"phone": "+15551234567", "address": "12 Water St"})
    assert resp.status_code == 200
    assert resp.json()["requires_verification"] is True
    assert resp.json()["user"]["address"] == "12 Water St"

    assert client.post("/auth/phone/verify", json={"code": "123456"}).status_code == 400
    sent = client.post("/auth/phone/send", json={})
    assert sent.status_code == 200
    assert sent.json()["status"] == "sent"
    assert sent.json()["cooldown_remaining"] == 60
    assert client.post("/auth/phone/send", json={}).status_code == 429

    assert client.post("/auth/phone/verify", json={"code": "12ab"}).status_code == 400
    assert client.post("/auth/phone/verify", json={"code": "000000"}).status_code == 400
    assert client.get("/auth/verification").json()["status"] == "error"

    verified = client.post("/auth/phone/verify", json={"code": "123456"})
    assert verified.status_code == 200
    assert verified.json()["phone_verified"] is True
    assert client.get("/auth/me").json()["requires_verification"] is False


def test_profile_update_validation(app):
    client = _sign_in(app, "dumper", "dumper-code")
    assert client.patch("/auth/profile", json={}).status_code == 400
    assert client.patch("/auth/profile", json={"user_type": "admin"}).status_code == 400
    resp = client.patch("/auth/profile", json={"full_name": "Davi L."})
    assert resp.json()["user"]["full_name"] == "Davi L."


def test_logout_ends_session(app):
    client = _sign_in(app, "collector", "collector-code")
    assert client.get("/auth/me").status_code == 200
    assert client.post("/auth/logout").json() == {"ok": True}
    assert client.get("/auth/me").status_code == 401


def test_sign_in_start_is_rate_limited(app):
    client = TestClient(app)
    for _ in range(20):
        assert client.get("/auth/google?user_type=dumper", follow_redirects=False).status_code == 303
    limited = client.get("/auth/google?user_type=dumper", follow_redirects=False)
    assert limited.status_code == 429
    assert int(limited.headers["retry-after"]) >= 1


def test_location_reports_drive_the_collector_tracker(app):
    trackers = app.state.location_trackers
    with TestClient(app) as client:
        collector = _sign_in(app, "collector", "collector-code", client=client)

        denied = collector.post("/collectors/me/location", json={"error": "permission_denied"})
        assert denied.status_code == 200
        assert denied.json()["ok"] is False
        assert denied.json()["error_kind"] == "permission_denied"
        assert denied.json()["location"] is None
        assert collector.post("/collectors/me/location", json={"lat": 40.7128}).status_code == 400

        fix = collector.post("/collectors/me/location", json={"lat": 40.7128, "lng": -74.0060}).json()
        assert fix["ok"] is True
        assert fix["error"] is None
        assert fix["location"] == {"lat": 40.7128, "lng": -74.0060}
        assert fix["refreshing"] is True
        assert collector.get("/collectors/me").json()["current_location"] == {"lat": 40.7128, "lng": -74.0060}

        assert collector.post("/collectors/me/availability", json={"is_available": False}).status_code == 200
        assert trackers.for_collector("g-collector").refreshing is False

        assert collector.post("/auth/logout").json() == {"ok": True}
        assert "g-collector" not in trackers
