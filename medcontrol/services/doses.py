import logging
from typing import Optional, Tuple
from medcontrol.core.config import settings
from medcontrol.models.dose_schedule import DoseStatus
from medcontrol.models.notification import NotificationType
from medcontrol.models.user import UserRole
from medcontrol.services.connections import get_supervisor_uids
from medcontrol.services.dose_cycle import get_due_time, now_millis
from medcontrol.services.notifications import NotificationService

logger = logging.getLogger(__name__)


class DoseTooEarlyError(ValueError):
    pass


class DoseAlreadyTakenError(ValueError):
    pass


#------This Function finds the latest taken dose of a medication---------
async def get_last_taken(storage, owner_uid: str, med_id: str):
    taken = await storage.get_schedules_by_owner_with_status(owner_uid, [DoseStatus.TAKEN])
    med_taken = [s for s in taken if s.med_id == med_id]
    if not med_taken:
        return None
    return max(med_taken, key=lambda s: s.time_millis)


#------This Function logs a dose taken right now---------
async def take_dose(
    storage,
    notifications: NotificationService,
    medication,
    now: Optional[int] = None,
    tolerance_ms: Optional[int] = None,
) -> Tuple[object, int]:
    now = now if now is not None else now_millis()
    tolerance_ms = tolerance_ms if tolerance_ms is not None else settings.take_dose_tolerance_ms
    med_id = str(medication.id)

    last_taken = await get_last_taken(storage, medication.owner_uid, med_id)
    if last_taken is not None:
        next_due = get_due_time(last_taken.time_millis, medication.interval_in_hours)
        if now < next_due - tolerance_ms:
            raise DoseTooEarlyError("Too early to take this dose")

    schedule = await storage.create_schedule(
        med_id=med_id,
        time_millis=now,
        status=DoseStatus.TAKEN,
        confirmed_at=now,
        owner_uid=medication.owner_uid,
    )
    logger.info(f"Dose taken for medication {med_id} by {medication.owner_uid}")

    new_stock = await consume_stock(storage, notifications, medication)
    return schedule, new_stock


#------This Function confirms a pending or missed dose---------
async def confirm_dose(
    storage,
    notifications: NotificationService,
    schedule,
    now: Optional[int] = None,
) -> Optional[int]:
    if schedule.status == DoseStatus.TAKEN:
        raise DoseAlreadyTakenError("Dose already confirmed")

    now = now if now is not None else now_millis()
    await storage.update_schedule_status(str(schedule.id), DoseStatus.TAKEN, now)
    logger.info(f"Dose {schedule.id} confirmed for medication {schedule.med_id}")

    medication = await storage.get_medication_by_id(schedule.med_id)
    if medication is None:
        return None
    return await consume_stock(storage, notifications, medication)


#------This Function uses one unit of stock and raises stock alerts---------
async def consume_stock(storage, notifications: NotificationService, medication) -> int:
    new_stock = await storage.consume_medication_stock(str(medication.id))
    if new_stock is None:
        new_stock = max(0, medication.current_stock - 1)

    try:
        await send_stock_alerts(storage, notifications, medication, new_stock)
    except Exception as e:
        logger.error(f"Stock notification error for medication {medication.id}: {str(e)}")
    return new_stock


#------This Function notifies owner and supervisors about stock---------
async def send_stock_alerts(
    storage,
    notifications: NotificationService,
    medication,
    new_stock: int,
) -> Optional[NotificationType]:
    if new_stock == 0:
        kind = NotificationType.STOCK_EMPTY
        title = "Out of stock"
        message = f"{medication.name} is out of stock. Restock as soon as possible."
    elif new_stock <= medication.alert_threshold:
        kind = NotificationType.STOCK_LOW
        title = "Low stock"
        message = f"{medication.name} has only {new_stock} units left."
    else:
        return None

    med_id = str(medication.id)
    await notifications.notify([medication.owner_uid], kind, title, message, related_id=med_id)

    owner = await storage.get_user_by_uid(medication.owner_uid)
    if owner and owner.role == UserRole.DEPENDENT:
        supervisors = await get_supervisor_uids(storage, owner.firebase_uid)
        if supervisors:
            if kind == NotificationType.STOCK_EMPTY:
                supervisor_message = f"{owner.name}: {medication.name} is out of stock."
            else:
                supervisor_message = f"{owner.name}: {medication.name} has only {new_stock} units left."
            await notifications.notify(
                sorted(supervisors),
                kind,
                title,
                supervisor_message,
                related_id=med_id,
                data={"dependentId": owner.firebase_uid},
            )
    return kind
