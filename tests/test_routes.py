import pytest
from fastapi.testclient import TestClient

from medcontrol.core.database import get_storage
from medcontrol.core.firebase import get_current_user_uid
from medcontrol.main import app
from medcontrol.models.connection import ConnectionStatus
from medcontrol.models.dose_schedule import DoseStatus
from medcontrol.models.notification import NotificationType
from medcontrol.models.user import UserRole, PlanType
from medcontrol.services.notifications import NotificationService, get_notification_service

from conftest import FakeNotification, RecordingPush


class Caller:

    def __init__(self):
        self.uid = "alice"


@pytest.fixture
def caller():
    return Caller()


@pytest.fixture
def client(storage, caller):
    service = NotificationService(storage, RecordingPush())
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_current_user_uid] = lambda: caller.uid
    app.dependency_overrides[get_notification_service] = lambda: service
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "alive"


def test_missing_token_is_unauthorized(storage):
    app.dependency_overrides[get_storage] = lambda: storage
    try:
        resp = TestClient(app).get("/api/auth/me")
    finally:
        app.dependency_overrides.clear()
    assert resp.status_code == 401


def test_register_then_me(client):
    resp = client.post("/api/auth/register", json={"name": "Alice", "email": "Alice@Example.com"})
    assert resp.status_code == 201
    assert resp.json() == {
        "id": "alice",
        "name": "Alice",
        "email": "alice@example.com",
        "role": "MASTER",
        "plan_type": "FREE",
    }

    me = client.get("/api/auth/me")
    assert me.status_code == 200
    assert me.json()["email"] == "alice@example.com"


def test_register_rejects_taken_email(client, storage, caller):
    storage.add_user("bob")
    resp = client.post("/api/auth/register", json={"name": "Alice", "email": "bob@example.com"})
    assert resp.status_code == 400


def test_role_switch(client, storage):
    storage.add_user("alice")
    resp = client.patch("/api/auth/role", json={"role": "DEPENDENT"})
    assert resp.status_code == 200
    assert resp.json()["role"] == "DEPENDENT"
    assert storage.users["alice"].role == UserRole.DEPENDENT


def test_medication_lifecycle_with_take_dose(client, storage):
    storage.add_user("alice")
    created = client.post(
        "/api/medications",
        json={"name": "Losartan", "dosage": "50mg", "current_stock": 3, "alert_threshold": 2},
    )
    assert created.status_code == 201
    med_id = created.json()["id"]

    listed = client.get("/api/medications").json()
    assert [m["id"] for m in listed] == [med_id]
    assert listed[0]["last_dose_at"] is None

    taken = client.post(f"/api/medications/{med_id}/take-dose")
    assert taken.status_code == 201
    body = taken.json()
    assert body["status"] == "TAKEN"
    assert body["current_stock"] == 2
    assert body["schedule"]["status"] == "TAKEN"
    assert storage.notifications_for("alice", NotificationType.STOCK_LOW)

    again = client.post(f"/api/medications/{med_id}/take-dose")
    assert again.status_code == 400

    listed = client.get("/api/medications").json()
    assert listed[0]["last_dose_at"] == body["timestamp"]


def test_free_plan_medication_limit(client, storage):
    storage.add_user("alice")
    for i in range(10):
        storage.add_medication("alice", name=f"med-{i}")

    resp = client.post("/api/medications", json={"name": "One more", "dosage": "1 pill"})

    assert resp.status_code == 403
    assert resp.json()["detail"]["requires_upgrade"] is True


def test_premium_plan_has_no_medication_limit(client, storage):
    storage.add_user("alice", plan_type=PlanType.PREMIUM)
    for i in range(10):
        storage.add_medication("alice", name=f"med-{i}")

    resp = client.post("/api/medications", json={"name": "One more", "dosage": "1 pill"})

    assert resp.status_code == 201


def test_upgrade_lifts_both_plan_limits(client, storage):
    storage.add_user("alice")
    storage.add_user("dora", role=UserRole.DEPENDENT)
    storage.add_user("eve", role=UserRole.DEPENDENT)
    storage.connect("alice", "dora")
    for i in range(10):
        storage.add_medication("alice", name=f"med-{i}")

    upgraded = client.post("/api/auth/upgrade")
    assert upgraded.status_code == 200
    assert upgraded.json()["plan_type"] == "PREMIUM"
    assert storage.users["alice"].plan_type == PlanType.PREMIUM

    med = client.post("/api/medications", json={"name": "One more", "dosage": "1 pill"})
    conn = client.post("/api/connections", json={"target_id": "eve"})
    assert med.status_code == 201
    assert conn.status_code == 201


def test_sync_plan_sets_the_reported_tier(client, storage):
    storage.add_user("alice")

    premium = client.post("/api/auth/sync-plan", json={"planType": "PREMIUM"})
    assert premium.status_code == 200
    assert premium.json()["plan_type"] == "PREMIUM"
    assert storage.users["alice"].plan_type == PlanType.PREMIUM

    free = client.post("/api/auth/sync-plan", json={"planType": "FREE"})
    assert free.json()["plan_type"] == "FREE"
    assert storage.users["alice"].plan_type == PlanType.FREE


def test_sync_plan_rejects_unknown_tier(client, storage):
    storage.add_user("alice")
    resp = client.post("/api/auth/sync-plan", json={"planType": "GOLD"})
    assert resp.status_code == 422
    assert storage.users["alice"].plan_type == PlanType.FREE


def test_sync_plan_without_profile_is_not_found(client):
    resp = client.post("/api/auth/sync-plan", json={"planType": "PREMIUM"})
    assert resp.status_code == 404


def test_profile_update_does_not_touch_plan(client, storage):
    storage.add_user("alice")
    resp = client.patch("/api/auth/profile", json={"name": "Alicia", "plan_type": "PREMIUM"})
    assert resp.status_code == 200
    assert resp.json()["name"] == "Alicia"
    assert storage.users["alice"].plan_type == PlanType.FREE


def test_negative_stock_is_rejected(client, storage):
    storage.add_user("alice")
    med = storage.add_medication("alice", current_stock=4)

    resp = client.patch(f"/api/medications/{med.id}/stock", json={"current_stock": -1})

    assert resp.status_code == 422
    assert med.current_stock == 4


def test_other_users_medication_is_forbidden(client, storage):
    storage.add_user("alice")
    storage.add_user("bob")
    med = storage.add_medication("bob")

    assert client.get(f"/api/medications/{med.id}").status_code == 403
    assert client.post(f"/api/medications/{med.id}/take-dose").status_code == 403


def test_confirm_schedule_twice(client, storage):
    storage.add_user("alice")
    med = storage.add_medication("alice", current_stock=5)
    pending = storage.add_schedule(med, 1_700_000_000_000, DoseStatus.PENDING)

    first = client.patch(f"/api/schedules/{pending.id}/confirm")
    second = client.patch(f"/api/schedules/{pending.id}/confirm")

    assert first.status_code == 200
    assert first.json()["current_stock"] == 4
    assert second.status_code == 400


def test_duplicate_pending_schedule_is_rejected(client, storage):
    storage.add_user("alice")
    med = storage.add_medication("alice")
    payload = {"med_id": med.id, "time_millis": 1_700_000_000_000}

    assert client.post("/api/schedules", json=payload).status_code == 201
    assert client.post("/api/schedules", json=payload).status_code == 400


def test_connection_request_and_accept(client, storage, caller):
    storage.add_user("alice")
    storage.add_user("dora", role=UserRole.DEPENDENT)

    created = client.post("/api/connections", json={"target_id": "dora@example.com"})
    assert created.status_code == 201
    conn_id = created.json()["id"]
    assert created.json()["status"] == "PENDING"
    assert storage.notifications_for("dora", NotificationType.CONNECTION_REQUEST)

    assert client.patch(f"/api/connections/{conn_id}/accept").status_code == 403

    caller.uid = "dora"
    accepted = client.patch(f"/api/connections/{conn_id}/accept")
    assert accepted.status_code == 200
    assert storage.notifications_for("alice", NotificationType.CONNECTION_ACCEPTED)

    caller.uid = "alice"
    dependents = client.get("/api/dependents").json()
    assert [d["id"] for d in dependents] == ["dora"]


def test_free_plan_connection_limit(client, storage):
    storage.add_user("alice")
    storage.add_user("dora", role=UserRole.DEPENDENT)
    storage.add_user("eve", role=UserRole.DEPENDENT)
    storage.connect("alice", "dora")

    resp = client.post("/api/connections", json={"target_id": "eve"})

    assert resp.status_code == 403
    assert resp.json()["detail"]["requires_upgrade"] is True


def test_pending_request_counts_toward_free_connection_limit(client, storage):
    storage.add_user("alice")
    storage.add_user("dora", role=UserRole.DEPENDENT)
    storage.add_user("eve", role=UserRole.DEPENDENT)
    storage.connect("alice", "dora", accepted=False)

    resp = client.post("/api/connections", json={"target_id": "eve"})

    assert resp.status_code == 403
    assert len(storage.connections) == 1


def test_only_masters_create_connections(client, storage, caller):
    storage.add_user("dora", role=UserRole.DEPENDENT)
    storage.add_user("alice")
    caller.uid = "dora"

    resp = client.post("/api/connections", json={"target_id": "alice"})

    assert resp.status_code == 403


def test_cannot_connect_to_self(client, storage):
    storage.add_user("alice")
    resp = client.post("/api/connections", json={"target_id": "alice"})
    assert resp.status_code == 400


def test_dependent_history_requires_accepted_link(client, storage):
    storage.add_user("alice")
    storage.add_user("dora", role=UserRole.DEPENDENT)
    med = storage.add_medication("dora")
    storage.add_schedule(med, 1_700_000_000_000, DoseStatus.TAKEN)
    storage.add_schedule(med, 1_700_100_000_000, DoseStatus.MISSED)
    storage.add_schedule(med, 1_700_200_000_000, DoseStatus.PENDING)
    link = storage.connect("alice", "dora", accepted=False)

    assert client.get("/api/dependents/dora/history").status_code == 403

    link.status = ConnectionStatus.ACCEPTED
    history = client.get("/api/dependents/dora/history").json()
    assert [h["status"] for h in history] == ["MISSED", "TAKEN"]
    assert history[0]["medication_name"] == "Losartan"


def test_notification_read_flow(client, storage):
    storage.add_user("alice")
    note = FakeNotification("alice", NotificationType.DOSE_DUE, "Medication time", "It's time.")
    storage.notifications.append(note)
    storage.notifications.append(
        FakeNotification("alice", NotificationType.STOCK_LOW, "Low stock", "Few left.")
    )

    assert client.get("/api/notifications/unread-count").json() == {"count": 2}
    assert client.patch(f"/api/notifications/{note.id}/read").status_code == 200
    assert client.get("/api/notifications/unread-count").json() == {"count": 1}
    assert client.patch("/api/notifications/read-all").status_code == 200
    assert client.get("/api/notifications/unread-count").json() == {"count": 0}
    assert client.patch("/api/notifications/unknown/read").status_code == 404


def test_push_token_registration_is_idempotent(client, storage):
    storage.add_user("alice")
    token = "ExponentPushToken[abcdefghijklmnop]"

    first = client.post("/api/push-tokens", json={"token": token})
    second = client.post("/api/push-tokens", json={"token": token})

    assert first.status_code == 201
    assert first.json()["id"] == second.json()["id"]
    assert len(storage.push_tokens) == 1
