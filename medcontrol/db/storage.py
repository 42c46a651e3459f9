import logging
from typing import Optional, List, Iterable
from datetime import datetime
from beanie import PydanticObjectId
from beanie.operators import In, Inc, Set
from bson import ObjectId
from pymongo.errors import DuplicateKeyError
from medcontrol.models.user import User, UserRole
from medcontrol.models.medication import Medication
from medcontrol.models.dose_schedule import DoseSchedule, DoseStatus
from medcontrol.models.connection import Connection, ConnectionStatus
from medcontrol.models.notification import Notification, NotificationType
from medcontrol.models.push_token import PushToken

logger = logging.getLogger(__name__)


class DuplicateScheduleError(Exception):
    pass


def _object_id(value) -> Optional[PydanticObjectId]:
    if isinstance(value, ObjectId):
        return PydanticObjectId(value)
    if not value or not ObjectId.is_valid(str(value)):
        return None
    return PydanticObjectId(str(value))


class MongoStorage:

#------This Function gets a user by uid---------
    async def get_user_by_uid(self, uid: str) -> Optional[User]:
        return await User.find_one(User.firebase_uid == uid)

#------This Function gets a user by email---------
    async def get_user_by_email(self, email: str) -> Optional[User]:
        return await User.find_one(User.email == email.strip().lower())

#------This Function creates a user---------
    async def create_user(
        self,
        uid: str,
        name: str,
        email: str,
        role: UserRole = UserRole.MASTER,
    ) -> User:
        user = User(firebase_uid=uid, name=name, email=email, role=role)
        try:
            await user.insert()
        except DuplicateKeyError:
            raise ValueError("Email already registered")
        return user

#------This Function updates user fields---------
    async def update_user(self, uid: str, updates: dict) -> Optional[User]:
        user = await self.get_user_by_uid(uid)
        if not user:
            return None
        for k, v in updates.items():
            setattr(user, k, v)
        user.updated_at = datetime.utcnow()
        try:
            await user.save()
        except DuplicateKeyError:
            raise ValueError("Email already registered")
        return user

#------This Function lists every medication---------
    async def get_all_medications(self) -> List[Medication]:
        return await Medication.find_all().to_list()

#------This Function gets a medication by id---------
    async def get_medication_by_id(self, med_id: str) -> Optional[Medication]:
        oid = _object_id(med_id)
        if oid is None:
            return None
        return await Medication.get(oid)

#------This Function lists medications of an owner---------
    async def get_medications_by_owner(self, owner_uid: str) -> List[Medication]:
        return await Medication.find(Medication.owner_uid == owner_uid).to_list()

#------This Function creates a medication---------
    async def create_medication(self, owner_uid: str, **fields) -> Medication:
        med = Medication(owner_uid=owner_uid, **fields)
        await med.insert()
        logger.info(f"Created medication {med.id} for owner {owner_uid}")
        return med

#------This Function updates a medication owned by the user---------
    async def update_medication(
        self, med_id: str, owner_uid: str, updates: dict
    ) -> Optional[Medication]:
        med = await self.get_medication_by_id(med_id)
        if not med or med.owner_uid != owner_uid:
            return None
        for k, v in updates.items():
            setattr(med, k, v)
        await med.save()
        return med

#------This Function deletes a medication owned by the user---------
    async def delete_medication(self, med_id: str, owner_uid: str) -> None:
        med = await self.get_medication_by_id(med_id)
        if med and med.owner_uid == owner_uid:
            await med.delete()

#------This Function sets the stock of a medication---------
    async def update_medication_stock(self, med_id: str, new_stock: int) -> None:
        if new_stock < 0:
            raise ValueError("Stock cannot be negative")
        oid = _object_id(med_id)
        if oid is None:
            return
        await Medication.find_one(Medication.id == oid).update(
            Set({Medication.current_stock: new_stock})
        )

#------This Function consumes one unit of stock, never below zero---------
    async def consume_medication_stock(self, med_id: str) -> Optional[int]:
        oid = _object_id(med_id)
        if oid is None:
            return None
        await Medication.find_one(
            Medication.id == oid, Medication.current_stock > 0
        ).update(Inc({Medication.current_stock: -1}))
        med = await Medication.get(oid)
        return med.current_stock if med else None

#------This Function lists every schedule of an owner---------
    async def get_schedules_by_owner(self, owner_uid: str) -> List[DoseSchedule]:
        return (
            await DoseSchedule.find(DoseSchedule.owner_uid == owner_uid)
            .sort(-DoseSchedule.time_millis)
            .to_list()
        )

#------This Function lists schedules of an owner filtered by status---------
    async def get_schedules_by_owner_with_status(
        self, owner_uid: str, statuses: Iterable[DoseStatus]
    ) -> List[DoseSchedule]:
        return (
            await DoseSchedule.find(
                DoseSchedule.owner_uid == owner_uid,
                In(DoseSchedule.status, [DoseStatus(s).value for s in statuses]),
            )
            .sort(-DoseSchedule.time_millis)
            .to_list()
        )

#------This Function gets a schedule by id---------
    async def get_schedule_by_id(self, schedule_id: str) -> Optional[DoseSchedule]:
        oid = _object_id(schedule_id)
        if oid is None:
            return None
        return await DoseSchedule.get(oid)

#------This Function creates a schedule row---------
    async def create_schedule(
        self,
        med_id: str,
        time_millis: int,
        status: DoseStatus,
        confirmed_at: Optional[int],
        owner_uid: str,
    ) -> DoseSchedule:
        schedule = DoseSchedule(
            med_id=med_id,
            time_millis=time_millis,
            status=status,
            confirmed_at=confirmed_at,
            owner_uid=owner_uid,
        )
        try:
            await schedule.insert()
        except DuplicateKeyError:
            raise DuplicateScheduleError(
                f"Pending schedule already exists for medication {med_id} at {time_millis}"
            )
        return schedule

#------This Function updates the status of a schedule---------
    async def update_schedule_status(
        self,
        schedule_id: str,
        status: DoseStatus,
        confirmed_at: Optional[int] = None,
    ) -> None:
        oid = _object_id(schedule_id)
        if oid is None:
            return
        await DoseSchedule.find_one(DoseSchedule.id == oid).update(
            Set({
                DoseSchedule.status: DoseStatus(status).value,
                DoseSchedule.confirmed_at: confirmed_at,
            })
        )

#------This Function creates a connection---------
    async def create_connection(self, master_uid: str, target_uid: str) -> Connection:
        conn = Connection(master_uid=master_uid, target_uid=target_uid)
        await conn.insert()
        return conn

#------This Function gets a connection by id---------
    async def get_connection_by_id(self, connection_id: str) -> Optional[Connection]:
        oid = _object_id(connection_id)
        if oid is None:
            return None
        return await Connection.get(oid)

#------This Function lists connections initiated by a master---------
    async def get_connections_by_master(self, master_uid: str) -> List[Connection]:
        return await Connection.find(Connection.master_uid == master_uid).to_list()

#------This Function lists connections targeting a user---------
    async def get_connections_by_dependent(self, target_uid: str) -> List[Connection]:
        return await Connection.find(Connection.target_uid == target_uid).to_list()

#------This Function counts connections initiated by a master---------
    async def count_connections_by_master(self, master_uid: str) -> int:
        return await Connection.find(Connection.master_uid == master_uid).count()

#------This Function accepts a connection---------
    async def accept_connection(self, connection_id: str) -> None:
        oid = _object_id(connection_id)
        if oid is None:
            return
        await Connection.find_one(Connection.id == oid).update(
            Set({Connection.status: ConnectionStatus.ACCEPTED.value})
        )

#------This Function deletes a connection---------
    async def delete_connection(self, connection_id: str) -> None:
        conn = await self.get_connection_by_id(connection_id)
        if conn:
            await conn.delete()

#------This Function lists accepted targets of a master---------
    async def get_dependents_for_master(self, master_uid: str) -> List[User]:
        conns = await self.get_connections_by_master(master_uid)
        target_uids = [c.target_uid for c in conns if c.status == ConnectionStatus.ACCEPTED]
        if not target_uids:
            return []
        return await User.find(In(User.firebase_uid, target_uids)).to_list()

#------This Function creates a notification---------
    async def create_notification(
        self,
        user_uid: str,
        type: NotificationType,
        title: str,
        message: str,
        related_id: Optional[str] = None,
    ) -> Notification:
        notification = Notification(
            user_uid=user_uid,
            type=type,
            title=title,
            message=message,
            related_id=related_id,
        )
        try:
            await notification.insert()
        except Exception as e:
            logger.error(f"Failed to create notification for user {user_uid}: {e}")
            raise
        return notification

#------This Function lists notifications of a user---------
    async def get_notifications_by_user(
        self, user_uid: str, limit: int = 100
    ) -> List[Notification]:
        return (
            await Notification.find(Notification.user_uid == user_uid)
            .sort(-Notification.created_at)
            .limit(limit)
            .to_list()
        )

#------This Function counts unread notifications---------
    async def get_unread_count_by_user(self, user_uid: str) -> int:
        return await Notification.find(
            Notification.user_uid == user_uid, Notification.read == False
        ).count()

#------This Function marks a notification as read---------
    async def mark_notification_read(self, notification_id: str, user_uid: str) -> bool:
        oid = _object_id(notification_id)
        if oid is None:
            return False
        notification = await Notification.get(oid)
        if not notification or notification.user_uid != user_uid:
            return False
        notification.read = True
        await notification.save()
        return True

#------This Function marks every notification of a user as read---------
    async def mark_all_notifications_read(self, user_uid: str) -> None:
        await Notification.find(
            Notification.user_uid == user_uid, Notification.read == False
        ).update(Set({Notification.read: True}))

#------This Function registers a push token---------
    async def register_push_token(self, user_uid: str, token: str) -> PushToken:
        existing = await PushToken.find_one(
            PushToken.user_uid == user_uid, PushToken.token == token
        )
        if existing:
            return existing
        push_token = PushToken(user_uid=user_uid, token=token)
        await push_token.insert()
        logger.info(f"Registered push token for user {user_uid}")
        return push_token

#------This Function lists push tokens of a user---------
    async def get_push_tokens_by_user(self, user_uid: str) -> List[PushToken]:
        return await PushToken.find(PushToken.user_uid == user_uid).to_list()

#------This Function deletes a push token---------
    async def delete_push_token(self, token: str) -> None:
        await PushToken.find(PushToken.token == token).delete()
        logger.info(f"Removed push token {token[:20]}...")
