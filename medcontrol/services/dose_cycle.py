import time
import logging
from enum import Enum
from typing import Optional
from medcontrol.core.config import settings
from medcontrol.db.storage import DuplicateScheduleError
from medcontrol.models.dose_schedule import DoseStatus, HOUR_MS
from medcontrol.models.notification import NotificationType
from medcontrol.models.user import UserRole
from medcontrol.services.connections import get_supervisor_uids
from medcontrol.services.notifications import NotificationService

logger = logging.getLogger(__name__)


class DoseOutcome(str, Enum):
    GONE = "gone"
    NO_HISTORY = "no_history"
    NOT_DUE = "not_due"
    DUE_CREATED = "due_created"
    WITHIN_GRACE = "within_grace"
    MISSED = "missed"
    ALREADY_MISSED = "already_missed"


#------This Function returns the current time in epoch milliseconds---------
def now_millis() -> int:
    return int(time.time() * 1000)


#------This Function computes the next due time---------
def get_due_time(last_taken_millis: int, interval_in_hours: int) -> int:
    return last_taken_millis + interval_in_hours * HOUR_MS


class DoseCycleEvaluator:
    """Decides the single next transition for one medication.

    Due doses are only generated once a TAKEN row exists. A due time gets one
    PENDING row; once the grace period passes it becomes MISSED and, for
    dependents, supervisors are notified. Older missed cycles are not backfilled.
    """

    def __init__(
        self,
        storage,
        notifications: NotificationService,
        grace_ms: Optional[int] = None,
    ):
        self.storage = storage
        self.notifications = notifications
        self.grace_ms = grace_ms if grace_ms is not None else settings.missed_grace_ms

#------This Function evaluates one medication---------
    async def evaluate(self, medication, now: Optional[int] = None) -> DoseOutcome:
        now = now if now is not None else now_millis()
        med_id = str(medication.id)

        # the sweep list can be stale by the time this medication is reached
        medication = await self.storage.get_medication_by_id(med_id)
        if medication is None:
            return DoseOutcome.GONE

        schedules = await self.storage.get_schedules_by_owner(medication.owner_uid)
        med_schedules = sorted(
            (s for s in schedules if s.med_id == med_id),
            key=lambda s: s.time_millis,
            reverse=True,
        )

        last_taken = next((s for s in med_schedules if s.status == DoseStatus.TAKEN), None)
        if last_taken is None:
            return DoseOutcome.NO_HISTORY

        due_time = get_due_time(last_taken.time_millis, medication.interval_in_hours)
        if due_time > now:
            return DoseOutcome.NOT_DUE

        at_due = [s for s in med_schedules if s.time_millis == due_time]
        due_pending = next((s for s in at_due if s.status == DoseStatus.PENDING), None)
        due_missed = next((s for s in at_due if s.status == DoseStatus.MISSED), None)

        if due_pending is None and due_missed is None:
            return await self._create_due_dose(medication, due_time)

        if due_pending is None:
            return DoseOutcome.ALREADY_MISSED

        if now < due_time + self.grace_ms:
            return DoseOutcome.WITHIN_GRACE

        await self._mark_missed(medication, due_pending)
        return DoseOutcome.MISSED

#------This Function records a due dose and tells the owner---------
    async def _create_due_dose(self, medication, due_time: int) -> DoseOutcome:
        med_id = str(medication.id)
        try:
            await self.storage.create_schedule(
                med_id=med_id,
                time_millis=due_time,
                status=DoseStatus.PENDING,
                confirmed_at=None,
                owner_uid=medication.owner_uid,
            )
        except DuplicateScheduleError:
            logger.info(f"Due dose for medication {med_id} at {due_time} already recorded")
            return DoseOutcome.WITHIN_GRACE

        title = "Medication time"
        message = f"It's time to take {medication.name}."
        await self.notifications.notify(
            [medication.owner_uid],
            NotificationType.DOSE_DUE,
            title,
            message,
            related_id=med_id,
        )
        logger.info(f"Dose due for medication {med_id} at {due_time}")
        return DoseOutcome.DUE_CREATED

#------This Function marks a dose missed and alerts supervisors---------
    async def _mark_missed(self, medication, schedule) -> None:
        med_id = str(medication.id)
        await self.storage.update_schedule_status(str(schedule.id), DoseStatus.MISSED)
        logger.info(f"Dose for medication {med_id} at {schedule.time_millis} marked missed")

        owner = await self.storage.get_user_by_uid(medication.owner_uid)
        if not owner or owner.role != UserRole.DEPENDENT:
            return

        recipients = await get_supervisor_uids(self.storage, owner.firebase_uid)
        if not recipients:
            return

        title = "Missed dose"
        message = f"{owner.name}: {medication.name} dose is overdue."
        await self.notifications.notify(
            sorted(recipients),
            NotificationType.DOSE_MISSED,
            title,
            message,
            related_id=med_id,
            data={"dependentId": owner.firebase_uid},
        )
