import logging
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field, field_validator
from typing import Optional, List
from medcontrol.core.config import settings
from medcontrol.core.database import get_storage
from medcontrol.core.firebase import get_current_user_uid
from medcontrol.models.dose_schedule import DoseStatus
from medcontrol.models.user import PlanType
from medcontrol.services.doses import take_dose, DoseTooEarlyError
from medcontrol.services.notifications import NotificationService, get_notification_service
from medcontrol.utils.access_control import require_user, check_dependent_access

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/medications", tags=["medications"])


MAX_NAME_LENGTH = 200
MAX_DOSAGE_LENGTH = 100


class MedCreate(BaseModel):
    name: str
    dosage: str
    current_stock: int = Field(default=0, ge=0)
    alert_threshold: int = Field(default=5, ge=0)
    interval_in_hours: int = Field(default=8, ge=1)

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError('Medication name cannot be empty')
        if len(v) > MAX_NAME_LENGTH:
            raise ValueError(f'Medication name cannot exceed {MAX_NAME_LENGTH} characters')
        return v.strip()

    @field_validator('dosage')
    @classmethod
    def validate_dosage(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError('Dosage cannot be empty')
        if len(v) > MAX_DOSAGE_LENGTH:
            raise ValueError(f'Dosage cannot exceed {MAX_DOSAGE_LENGTH} characters')
        return v.strip()


class MedUpdate(BaseModel):
    name: Optional[str] = None
    dosage: Optional[str] = None
    current_stock: Optional[int] = Field(default=None, ge=0)
    alert_threshold: Optional[int] = Field(default=None, ge=0)
    interval_in_hours: Optional[int] = Field(default=None, ge=1)

    @field_validator('name', 'dosage')
    @classmethod
    def validate_text(cls, v: Optional[str]) -> Optional[str]:
        if v is not None:
            if not v.strip():
                raise ValueError('Value cannot be empty')
            return v.strip()
        return v


class StockUpdate(BaseModel):
    current_stock: int = Field(ge=0)


#------This Function lists the caller's medications---------
@router.get("")
async def list_medications(uid: str = Depends(get_current_user_uid), storage=Depends(get_storage)):
    try:
        return await serialize_with_last_dose(storage, uid)
    except Exception as e:
        logger.error(f"Failed to list medications for user {uid}: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to retrieve medications")


#------This Function gets one medication---------
@router.get("/{med_id}")
async def get_medication(
    med_id: str, uid: str = Depends(get_current_user_uid), storage=Depends(get_storage)
):
    med = await storage.get_medication_by_id(med_id)
    if not med:
        raise HTTPException(status_code=404, detail="Medication not found")
    if med.owner_uid != uid:
        await check_dependent_access(storage, uid, med.owner_uid)
    return serialize_medication(med)


#------This Function creates a medication---------
@router.post("", status_code=201)
async def create_medication(
    body: MedCreate, uid: str = Depends(get_current_user_uid), storage=Depends(get_storage)
):
    user = await require_user(storage, uid)
    if user.plan_type == PlanType.FREE:
        existing = await storage.get_medications_by_owner(uid)
        if len(existing) >= settings.free_plan_medication_limit:
            raise HTTPException(
                status_code=403,
                detail={
                    "message": f"FREE plan is limited to {settings.free_plan_medication_limit} medications. Upgrade to PREMIUM for unlimited medications.",
                    "requires_upgrade": True,
                },
            )
    try:
        med = await storage.create_medication(uid, **body.model_dump())
        return serialize_medication(med)
    except Exception as e:
        logger.error(f"Failed to create medication for user {uid}: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to create medication")


#------This Function updates a medication---------
@router.patch("/{med_id}")
async def update_medication(
    med_id: str,
    body: MedUpdate,
    uid: str = Depends(get_current_user_uid),
    storage=Depends(get_storage),
):
    updates = body.model_dump(exclude_none=True)
    med = await storage.update_medication(med_id, uid, updates)
    if not med:
        raise HTTPException(status_code=404, detail="Medication not found")
    logger.info(f"Updated medication {med_id} for user {uid}")
    return serialize_medication(med)


#------This Function deletes a medication---------
@router.delete("/{med_id}")
async def delete_medication(
    med_id: str, uid: str = Depends(get_current_user_uid), storage=Depends(get_storage)
):
    med = await storage.get_medication_by_id(med_id)
    if not med:
        raise HTTPException(status_code=404, detail="Medication not found")
    if med.owner_uid != uid:
        raise HTTPException(status_code=403, detail="Not your medication")
    await storage.delete_medication(med_id, uid)
    logger.info(f"Deleted medication {med_id} for user {uid}")
    return {"status": "deleted", "id": med_id}


#------This Function sets the stock of a medication---------
@router.patch("/{med_id}/stock")
async def update_stock(
    med_id: str,
    body: StockUpdate,
    uid: str = Depends(get_current_user_uid),
    storage=Depends(get_storage),
):
    med = await storage.get_medication_by_id(med_id)
    if not med:
        raise HTTPException(status_code=404, detail="Medication not found")
    if med.owner_uid != uid:
        raise HTTPException(status_code=403, detail="Not your medication")
    await storage.update_medication_stock(med_id, body.current_stock)
    return {"status": "ok", "current_stock": body.current_stock}


#------This Function logs a dose taken now---------
@router.post("/{med_id}/take-dose", status_code=201)
async def take_dose_now(
    med_id: str,
    uid: str = Depends(get_current_user_uid),
    storage=Depends(get_storage),
    notifications: NotificationService = Depends(get_notification_service),
):
    med = await storage.get_medication_by_id(med_id)
    if not med:
        raise HTTPException(status_code=404, detail="Medication not found")
    if med.owner_uid != uid:
        raise HTTPException(status_code=403, detail="Not your medication")

    try:
        schedule, new_stock = await take_dose(storage, notifications, med)
    except DoseTooEarlyError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return {
        "schedule": serialize_schedule(schedule),
        "med_name": med.name,
        "patient_id": uid,
        "timestamp": schedule.time_millis,
        "status": DoseStatus.TAKEN.value,
        "current_stock": new_stock,
    }


#------This Function serializes medications with their last dose---------
async def serialize_with_last_dose(storage, owner_uid: str) -> List[dict]:
    meds = await storage.get_medications_by_owner(owner_uid)
    taken = await storage.get_schedules_by_owner_with_status(owner_uid, [DoseStatus.TAKEN])
    last_dose = {}
    for s in taken:
        if s.time_millis > last_dose.get(s.med_id, -1):
            last_dose[s.med_id] = s.time_millis
    result = []
    for med in meds:
        data = serialize_medication(med)
        data["last_dose_at"] = last_dose.get(str(med.id))
        result.append(data)
    return result


def serialize_medication(med) -> dict:
    return {
        "id": str(med.id),
        "owner_id": med.owner_uid,
        "name": med.name,
        "dosage": med.dosage,
        "current_stock": med.current_stock,
        "alert_threshold": med.alert_threshold,
        "interval_in_hours": med.interval_in_hours,
        "created_at": med.created_at.isoformat(),
    }


def serialize_schedule(schedule) -> dict:
    return {
        "id": str(schedule.id),
        "med_id": schedule.med_id,
        "owner_id": schedule.owner_uid,
        "time_millis": schedule.time_millis,
        "status": DoseStatus(schedule.status).value,
        "confirmed_at": schedule.confirmed_at,
    }
