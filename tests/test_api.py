"""
test_api.py — HTTP surface for disaster events and alert subscriptions.

The database session and the alert dispatcher are replaced through
FastAPI dependency overrides; no database or provider is contacted.

Run with:
    pytest tests/test_api.py -v
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, List, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import BigInteger

from backend.app.api.deps import get_dispatcher
from backend.app.core.database import get_db
from backend.app.main import app
from backend.app.storage.tables import AlertSubscriptionRecord, DisasterEventRecord


# ═══════════════════════════════════════════════════════════════════════════
# Fakes
# ═══════════════════════════════════════════════════════════════════════════

class FakeResult:
    def __init__(self, value: Any = None):
        self.value = value

    def scalar_one_or_none(self):
        return self.value


class FakeSession:
    """Just enough of ``AsyncSession`` for the route handlers."""

    def __init__(self, lookup: Any = None):
        self.lookup = lookup
        self.added: List[Any] = []
        self.deleted: List[Any] = []
        self.commits = 0
        self.statements: List[Any] = []

    def add(self, obj):
        self.added.append(obj)

    async def commit(self):
        self.commits += 1

    async def refresh(self, obj):
        if getattr(obj, "id", None) is None:
            obj.id = len(self.added)

    async def delete(self, obj):
        self.deleted.append(obj)

    async def execute(self, stmt):
        self.statements.append(stmt)
        return FakeResult(self.lookup)


class FakeDispatcher:
    def __init__(self):
        self.events = []

    async def dispatch(self, event):
        self.events.append(event)

    def channel_status(self):
        return {
            "email": {"configured": True, "provider": "resend", "providers": ["resend", "sendgrid"]},
            "sms": {"configured": False, "provider": None, "providers": ["twilio"]},
        }


EVENT_BODY = {
    "type": "flood",
    "title": "Yamuna overflow",
    "location": "New Delhi",
    "severity": "moderate",
    "lat": 28.6,
    "lng": 77.2,
    "timestamp": 1_700_000_000,
}

SUBSCRIPTION_BODY = {
    "lat": 28.7,
    "lng": 77.1,
    "radiusKm": 100,
    "categories": ["flood", "earthquake"],
    "channels": ["email"],
    "email": "a@example.com",
}

AUTH = {"X-User-ID": "user-1"}


def _make_record(**overrides) -> DisasterEventRecord:
    now = datetime(2024, 1, 1, tzinfo=timezone.utc)
    base = dict(
        id=5, type="storm", title="Squall line", location="Kolkata",
        severity="severe", magnitude=None, description=None,
        lat=22.57, lng=88.36, timestamp=1_700_000_000, user_id="user-1",
        is_active=True, created_at=now, updated_at=now,
    )
    base.update(overrides)
    return DisasterEventRecord(**base)


def _install(session: Optional[FakeSession] = None, dispatcher: Optional[FakeDispatcher] = None):
    session = session or FakeSession()
    dispatcher = dispatcher or FakeDispatcher()

    async def override_db():
        yield session

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    return session, dispatcher


@pytest.fixture
def client():
    yield TestClient(app)
    app.dependency_overrides.clear()


# ═══════════════════════════════════════════════════════════════════════════
# Disaster events
# ═══════════════════════════════════════════════════════════════════════════

class TestCreateDisaster:

    def test_requires_user_header(self, client):
        session, dispatcher = _install()
        resp = client.post("/api/v1/disasters", json=EVENT_BODY)
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "AUTHENTICATION_REQUIRED"
        assert session.added == []
        assert dispatcher.events == []

    def test_created_and_dispatched(self, client):
        session, dispatcher = _install()
        resp = client.post("/api/v1/disasters", json=EVENT_BODY, headers=AUTH)

        assert resp.status_code == 201
        data = resp.json()
        assert data["id"] == 1
        assert data["userId"] == "user-1"
        assert data["isActive"] is True
        assert session.commits == 1

        assert len(dispatcher.events) == 1
        event = dispatcher.events[0]
        assert event.id == 1
        assert event.type == "flood"
        assert event.severity == "moderate"
        assert (event.lat, event.lng) == (28.6, 77.2)

    def test_low_severity_still_handed_to_dispatcher(self, client):
        _, dispatcher = _install()
        resp = client.post("/api/v1/disasters", json={**EVENT_BODY, "severity": "low"}, headers=AUTH)
        assert resp.status_code == 201
        assert dispatcher.events[0].severity == "low"

    def test_millisecond_timestamp_accepted(self, client):
        _, dispatcher = _install()
        resp = client.post(
            "/api/v1/disasters", json={**EVENT_BODY, "timestamp": 1_700_000_000_000}, headers=AUTH,
        )
        assert resp.status_code == 201
        assert dispatcher.events[0].timestamp == 1_700_000_000_000

    def test_timestamp_column_holds_milliseconds(self):
        column = DisasterEventRecord.__table__.c.timestamp
        assert isinstance(column.type, BigInteger)

    @pytest.mark.parametrize("patch", [
        {"severity": "catastrophic"},
        {"type": "meteor"},
        {"lat": 123.0},
        {"title": ""},
    ])
    def test_invalid_body(self, client, patch):
        session, dispatcher = _install()
        resp = client.post("/api/v1/disasters", json={**EVENT_BODY, **patch}, headers=AUTH)
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "VALIDATION_ERROR"
        assert session.added == []
        assert dispatcher.events == []

    @pytest.mark.parametrize("key", ["userId", "user_id"])
    def test_user_id_in_body_rejected(self, client, key):
        session, _ = _install()
        resp = client.post("/api/v1/disasters", json={**EVENT_BODY, key: "someone-else"}, headers=AUTH)
        assert resp.status_code == 422
        assert session.added == []


class TestDisasterLookup:

    def test_missing_event_is_404(self, client):
        _install(FakeSession(lookup=None))
        resp = client.get("/api/v1/disasters/99", headers=AUTH)
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "NOT_FOUND"

    def test_delete_returns_deleted_event(self, client):
        record = _make_record()
        session, _ = _install(FakeSession(lookup=record))

        resp = client.delete("/api/v1/disasters/5", headers=AUTH)

        assert resp.status_code == 200
        body = resp.json()
        assert body["message"] == "Disaster deleted successfully"
        assert body["disaster"]["id"] == 5
        assert session.deleted == [record]

    def test_partial_update(self, client):
        record = _make_record()
        _install(FakeSession(lookup=record))

        resp = client.put(
            "/api/v1/disasters/5", json={"severity": "moderate", "title": None}, headers=AUTH,
        )

        assert resp.status_code == 200
        assert record.severity == "moderate"
        assert record.title == "Squall line"
        assert resp.json()["severity"] == "moderate"

    def test_empty_update_rejected(self, client):
        _install(FakeSession(lookup=_make_record()))
        resp = client.put("/api/v1/disasters/5", json={}, headers=AUTH)
        assert resp.status_code == 422
        assert resp.json()["error"]["message"] == "No fields to update"


# ═══════════════════════════════════════════════════════════════════════════
# Alert subscriptions
# ═══════════════════════════════════════════════════════════════════════════

class TestSubscription:

    def test_create(self, client):
        session, _ = _install(FakeSession(lookup=None))
        resp = client.post("/api/v1/alerts/subscription", json=SUBSCRIPTION_BODY, headers=AUTH)

        assert resp.status_code == 200
        record = session.added[0]
        assert isinstance(record, AlertSubscriptionRecord)
        assert record.user_id == "user-1"
        assert record.categories == "earthquake,flood"
        assert record.channels == "email"

        data = resp.json()
        assert data["radiusKm"] == 100
        assert data["categories"] == ["earthquake", "flood"]

    def test_csv_strings_accepted(self, client):
        session, _ = _install(FakeSession(lookup=None))
        body = {**SUBSCRIPTION_BODY, "categories": "Flood, storm", "channels": "email,sms", "phone": "+15550001"}
        resp = client.post("/api/v1/alerts/subscription", json=body, headers=AUTH)
        assert resp.status_code == 200
        assert session.added[0].categories == "flood,storm"
        assert session.added[0].channels == "email,sms"

    def test_existing_subscription_is_replaced(self, client):
        existing = AlertSubscriptionRecord(
            id=3, user_id="user-1", lat=0.0, lng=0.0, radius_km=5.0,
            categories="storm", channels="sms", email=None, phone="+1555",
            created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
            updated_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
        )
        session, _ = _install(FakeSession(lookup=existing))

        resp = client.post("/api/v1/alerts/subscription", json=SUBSCRIPTION_BODY, headers=AUTH)

        assert resp.status_code == 200
        assert session.added == []
        assert existing.radius_km == 100
        assert existing.categories == "earthquake,flood"
        assert existing.phone is None
        assert resp.json()["id"] == 3

    @pytest.mark.parametrize("patch", [
        {"radiusKm": 0},
        {"radiusKm": -5},
        {"categories": []},
        {"categories": ["volcano"]},
        {"channels": ["pager"]},
        {"email": "not-an-email"},
    ])
    def test_invalid_subscription(self, client, patch):
        session, _ = _install(FakeSession(lookup=None))
        resp = client.post(
            "/api/v1/alerts/subscription", json={**SUBSCRIPTION_BODY, **patch}, headers=AUTH,
        )
        assert resp.status_code == 422
        assert session.added == []

    def test_get_without_subscription_is_null(self, client):
        _install(FakeSession(lookup=None))
        resp = client.get("/api/v1/alerts/subscription", headers=AUTH)
        assert resp.status_code == 200
        assert resp.json() is None

    def test_delete(self, client):
        session, _ = _install()
        resp = client.delete("/api/v1/alerts/subscription", headers=AUTH)
        assert resp.json() == {"ok": True}
        assert session.commits == 1


class TestChannelsAndHealth:

    def test_channel_status(self, client):
        _install()
        resp = client.get("/api/v1/alerts/channels")
        assert resp.status_code == 200
        channels = resp.json()["channels"]
        assert channels["email"]["provider"] == "resend"
        assert channels["sms"]["configured"] is False

    def test_liveness(self, client):
        resp = client.get("/health/live")
        assert resp.json() == {"status": "alive"}
        assert "X-Request-ID" in resp.headers
