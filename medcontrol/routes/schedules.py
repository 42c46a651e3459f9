import logging
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from medcontrol.core.database import get_storage
from medcontrol.core.firebase import get_current_user_uid
from medcontrol.db.storage import DuplicateScheduleError
from medcontrol.models.dose_schedule import DoseStatus
from medcontrol.routes.medications import serialize_schedule
from medcontrol.services.doses import confirm_dose, DoseAlreadyTakenError
from medcontrol.services.notifications import NotificationService, get_notification_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/schedules", tags=["schedules"])

REMOVED_MEDICATION_NAME = "Removed medication"


class ScheduleCreate(BaseModel):
    med_id: str = Field(min_length=1)
    time_millis: int = Field(gt=0)


#------This Function lists every schedule row of the caller---------
@router.get("")
async def list_schedules(uid: str = Depends(get_current_user_uid), storage=Depends(get_storage)):
    schedules = await storage.get_schedules_by_owner(uid)
    return [serialize_schedule(s) for s in schedules]


#------This Function lists taken doses with medication details---------
@router.get("/history")
async def schedule_history(uid: str = Depends(get_current_user_uid), storage=Depends(get_storage)):
    return await history_for_owner(storage, uid, [DoseStatus.TAKEN])


#------This Function creates a pending schedule row---------
@router.post("", status_code=201)
async def create_schedule(
    body: ScheduleCreate,
    uid: str = Depends(get_current_user_uid),
    storage=Depends(get_storage),
):
    med = await storage.get_medication_by_id(body.med_id)
    if not med or med.owner_uid != uid:
        raise HTTPException(status_code=404, detail="Medication not found")
    try:
        schedule = await storage.create_schedule(
            med_id=body.med_id,
            time_millis=body.time_millis,
            status=DoseStatus.PENDING,
            confirmed_at=None,
            owner_uid=uid,
        )
    except DuplicateScheduleError:
        raise HTTPException(status_code=400, detail="A pending dose already exists at this time")
    return serialize_schedule(schedule)


#------This Function confirms a dose---------
@router.patch("/{schedule_id}/confirm")
async def confirm_schedule(
    schedule_id: str,
    uid: str = Depends(get_current_user_uid),
    storage=Depends(get_storage),
    notifications: NotificationService = Depends(get_notification_service),
):
    schedule = await storage.get_schedule_by_id(schedule_id)
    if not schedule:
        raise HTTPException(status_code=404, detail="Schedule not found")
    if schedule.owner_uid != uid:
        raise HTTPException(status_code=403, detail="Not your schedule")

    try:
        new_stock = await confirm_dose(storage, notifications, schedule)
    except DoseAlreadyTakenError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return {"status": "confirmed", "id": schedule_id, "current_stock": new_stock}


#------This Function builds history rows for an owner---------
async def history_for_owner(storage, owner_uid: str, statuses) -> list:
    schedules = await storage.get_schedules_by_owner_with_status(owner_uid, statuses)
    meds = await storage.get_medications_by_owner(owner_uid)
    med_map = {str(m.id): m for m in meds}

    history = []
    for s in schedules:
        med = med_map.get(s.med_id)
        data = serialize_schedule(s)
        data["medication_name"] = med.name if med else REMOVED_MEDICATION_NAME
        data["medication_dosage"] = med.dosage if med else ""
        history.append(data)
    return history
