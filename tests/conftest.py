"""
Shared fixtures: an in-memory store exposing the same async operations as
MongoStorage, and a push stub that records batches instead of calling Expo.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

import pytest

from medcontrol.db.storage import DuplicateScheduleError
from medcontrol.models.connection import ConnectionStatus
from medcontrol.models.dose_schedule import DoseStatus, HOUR_MS
from medcontrol.models.notification import NotificationType
from medcontrol.models.user import UserRole, PlanType
from medcontrol.services.dose_cycle import DoseCycleEvaluator
from medcontrol.services.notifications import NotificationService


T0 = 1_700_000_000_000


def _new_id() -> str:
    return uuid.uuid4().hex


@dataclass
class FakeUser:
    firebase_uid: str
    name: str
    email: str
    role: UserRole = UserRole.MASTER
    plan_type: PlanType = PlanType.FREE
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)


@dataclass
class FakeMedication:
    owner_uid: str
    name: str
    dosage: str
    current_stock: int = 0
    alert_threshold: int = 5
    interval_in_hours: int = 8
    id: str = field(default_factory=_new_id)
    created_at: datetime = field(default_factory=datetime.utcnow)


@dataclass
class FakeSchedule:
    med_id: str
    owner_uid: str
    time_millis: int
    status: DoseStatus
    confirmed_at: Optional[int] = None
    id: str = field(default_factory=_new_id)


@dataclass
class FakeConnection:
    master_uid: str
    target_uid: str
    status: ConnectionStatus = ConnectionStatus.PENDING
    id: str = field(default_factory=_new_id)
    created_at: datetime = field(default_factory=datetime.utcnow)


@dataclass
class FakeNotification:
    user_uid: str
    type: NotificationType
    title: str
    message: str
    related_id: Optional[str] = None
    read: bool = False
    id: str = field(default_factory=_new_id)
    created_at: datetime = field(default_factory=datetime.utcnow)


@dataclass
class FakePushToken:
    user_uid: str
    token: str
    id: str = field(default_factory=_new_id)
    created_at: datetime = field(default_factory=datetime.utcnow)


class InMemoryStorage:

    def __init__(self):
        self.users = {}
        self.medications = {}
        self.schedules = []
        self.connections = []
        self.notifications = []
        self.push_tokens = []
        self.broken_owners = set()

    # test helpers

    def add_user(self, uid, role=UserRole.MASTER, name=None, plan_type=PlanType.FREE):
        user = FakeUser(
            firebase_uid=uid,
            name=name or uid.title(),
            email=f"{uid}@example.com",
            role=role,
            plan_type=plan_type,
        )
        self.users[uid] = user
        return user

    def add_medication(self, owner_uid, name="Losartan", **fields):
        med = FakeMedication(owner_uid=owner_uid, name=name, dosage="50mg", **fields)
        self.medications[med.id] = med
        return med

    def add_schedule(self, med, time_millis, status=DoseStatus.TAKEN, confirmed_at=None):
        schedule = FakeSchedule(
            med_id=med.id,
            owner_uid=med.owner_uid,
            time_millis=time_millis,
            status=status,
            confirmed_at=confirmed_at,
        )
        self.schedules.append(schedule)
        return schedule

    def connect(self, master_uid, target_uid, accepted=True):
        conn = FakeConnection(
            master_uid=master_uid,
            target_uid=target_uid,
            status=ConnectionStatus.ACCEPTED if accepted else ConnectionStatus.PENDING,
        )
        self.connections.append(conn)
        return conn

    def schedules_for(self, med, status=None):
        return [
            s for s in self.schedules
            if s.med_id == med.id and (status is None or s.status == status)
        ]

    def notifications_for(self, uid, type=None):
        return [
            n for n in self.notifications
            if n.user_uid == uid and (type is None or n.type == type)
        ]

    # users

    async def get_user_by_uid(self, uid):
        return self.users.get(uid)

    async def get_user_by_email(self, email):
        return next((u for u in self.users.values() if u.email == email.strip().lower()), None)

    async def create_user(self, uid, name, email, role=UserRole.MASTER):
        user = FakeUser(firebase_uid=uid, name=name, email=email, role=role)
        self.users[uid] = user
        return user

    async def update_user(self, uid, updates):
        user = self.users.get(uid)
        if not user:
            return None
        for k, v in updates.items():
            setattr(user, k, v)
        return user

    # medications

    async def get_all_medications(self):
        return list(self.medications.values())

    async def get_medication_by_id(self, med_id):
        return self.medications.get(med_id)

    async def get_medications_by_owner(self, owner_uid):
        return [m for m in self.medications.values() if m.owner_uid == owner_uid]

    async def create_medication(self, owner_uid, **fields):
        med = FakeMedication(owner_uid=owner_uid, **fields)
        self.medications[med.id] = med
        return med

    async def update_medication(self, med_id, owner_uid, updates):
        med = self.medications.get(med_id)
        if not med or med.owner_uid != owner_uid:
            return None
        for k, v in updates.items():
            setattr(med, k, v)
        return med

    async def delete_medication(self, med_id, owner_uid):
        med = self.medications.get(med_id)
        if med and med.owner_uid == owner_uid:
            del self.medications[med_id]

    async def update_medication_stock(self, med_id, new_stock):
        if new_stock < 0:
            raise ValueError("Stock cannot be negative")
        if med_id in self.medications:
            self.medications[med_id].current_stock = new_stock

    async def consume_medication_stock(self, med_id):
        med = self.medications.get(med_id)
        if med is None:
            return None
        if med.current_stock > 0:
            med.current_stock -= 1
        return med.current_stock

    # schedules

    async def get_schedules_by_owner(self, owner_uid):
        if owner_uid in self.broken_owners:
            raise RuntimeError(f"schedule lookup failed for {owner_uid}")
        rows = [s for s in self.schedules if s.owner_uid == owner_uid]
        return sorted(rows, key=lambda s: s.time_millis, reverse=True)

    async def get_schedules_by_owner_with_status(self, owner_uid, statuses):
        wanted = {DoseStatus(s) for s in statuses}
        rows = await self.get_schedules_by_owner(owner_uid)
        return [s for s in rows if s.status in wanted]

    async def get_schedule_by_id(self, schedule_id):
        return next((s for s in self.schedules if s.id == schedule_id), None)

    async def create_schedule(self, med_id, time_millis, status, confirmed_at, owner_uid):
        status = DoseStatus(status)
        if status == DoseStatus.PENDING and any(
            s.med_id == med_id and s.time_millis == time_millis and s.status == DoseStatus.PENDING
            for s in self.schedules
        ):
            raise DuplicateScheduleError(f"{med_id}@{time_millis}")
        schedule = FakeSchedule(
            med_id=med_id,
            owner_uid=owner_uid,
            time_millis=time_millis,
            status=status,
            confirmed_at=confirmed_at,
        )
        self.schedules.append(schedule)
        return schedule

    async def update_schedule_status(self, schedule_id, status, confirmed_at=None):
        schedule = await self.get_schedule_by_id(schedule_id)
        if schedule:
            schedule.status = DoseStatus(status)
            schedule.confirmed_at = confirmed_at

    # connections

    async def create_connection(self, master_uid, target_uid):
        conn = FakeConnection(master_uid=master_uid, target_uid=target_uid)
        self.connections.append(conn)
        return conn

    async def get_connection_by_id(self, connection_id):
        return next((c for c in self.connections if c.id == connection_id), None)

    async def get_connections_by_master(self, master_uid):
        return [c for c in self.connections if c.master_uid == master_uid]

    async def get_connections_by_dependent(self, target_uid):
        return [c for c in self.connections if c.target_uid == target_uid]

    async def count_connections_by_master(self, master_uid):
        return len(await self.get_connections_by_master(master_uid))

    async def accept_connection(self, connection_id):
        conn = await self.get_connection_by_id(connection_id)
        if conn:
            conn.status = ConnectionStatus.ACCEPTED

    async def delete_connection(self, connection_id):
        self.connections = [c for c in self.connections if c.id != connection_id]

    async def get_dependents_for_master(self, master_uid):
        return [
            self.users[c.target_uid]
            for c in self.connections
            if c.master_uid == master_uid
            and c.status == ConnectionStatus.ACCEPTED
            and c.target_uid in self.users
        ]

    # notifications

    async def create_notification(self, user_uid, type, title, message, related_id=None):
        notification = FakeNotification(
            user_uid=user_uid,
            type=NotificationType(type),
            title=title,
            message=message,
            related_id=related_id,
        )
        self.notifications.append(notification)
        return notification

    async def get_notifications_by_user(self, user_uid, limit=100):
        rows = [n for n in self.notifications if n.user_uid == user_uid]
        return list(reversed(rows))[:limit]

    async def get_unread_count_by_user(self, user_uid):
        return sum(1 for n in self.notifications if n.user_uid == user_uid and not n.read)

    async def mark_notification_read(self, notification_id, user_uid):
        for n in self.notifications:
            if n.id == notification_id and n.user_uid == user_uid:
                n.read = True
                return True
        return False

    async def mark_all_notifications_read(self, user_uid):
        for n in self.notifications:
            if n.user_uid == user_uid:
                n.read = True

    # push tokens

    async def register_push_token(self, user_uid, token):
        for t in self.push_tokens:
            if t.user_uid == user_uid and t.token == token:
                return t
        push_token = FakePushToken(user_uid=user_uid, token=token)
        self.push_tokens.append(push_token)
        return push_token

    async def get_push_tokens_by_user(self, user_uid):
        return [t for t in self.push_tokens if t.user_uid == user_uid]

    async def delete_push_token(self, token):
        self.push_tokens = [t for t in self.push_tokens if t.token != token]


class RecordingPush:

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.batches = []

    async def send_push_to_users(self, user_uids, title, body, data=None):
        if self.fail:
            raise RuntimeError("push provider unreachable")
        self.batches.append({
            "user_uids": list(user_uids),
            "title": title,
            "body": body,
            "data": data,
        })
        return len(self.batches[-1]["user_uids"])


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def push():
    return RecordingPush()


@pytest.fixture
def notifications(storage, push):
    return NotificationService(storage, push)


@pytest.fixture
def evaluator(storage, notifications):
    return DoseCycleEvaluator(storage, notifications, grace_ms=HOUR_MS)
