from datetime import datetime, timezone
from fastapi import APIRouter, Depends
from medcontrol.core.database import get_storage
from medcontrol.core.firebase import get_current_user_uid
from medcontrol.models.dose_schedule import DoseStatus
from medcontrol.models.user import UserRole
from medcontrol.routes.medications import serialize_with_last_dose
from medcontrol.routes.schedules import history_for_owner
from medcontrol.utils.access_control import require_master, check_dependent_access

router = APIRouter(prefix="/dependents", tags=["dependents"])


#------This Function returns the start of the current UTC day in milliseconds---------
def _today_start_millis() -> int:
    today = datetime.now(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
    return int(today.timestamp() * 1000)


#------This Function lists dependents with today's adherence---------
@router.get("")
async def list_dependents(uid: str = Depends(get_current_user_uid), storage=Depends(get_storage)):
    await require_master(storage, uid, "Only MASTER users can view dependents")

    today_start = _today_start_millis()
    result = []
    for dep in await storage.get_dependents_for_master(uid):
        schedules = await storage.get_schedules_by_owner(dep.firebase_uid)
        today = [s for s in schedules if s.time_millis >= today_start]
        meds = await storage.get_medications_by_owner(dep.firebase_uid)
        result.append({
            "id": dep.firebase_uid,
            "name": dep.name,
            "email": dep.email,
            "role": UserRole(dep.role).value,
            "taken_today": sum(1 for s in today if s.status == DoseStatus.TAKEN),
            "missed_today": sum(1 for s in today if s.status == DoseStatus.MISSED),
            "total_meds": len(meds),
        })
    return result


#------This Function lists a dependent's medications---------
@router.get("/{dependent_id}/medications")
async def dependent_medications(
    dependent_id: str, uid: str = Depends(get_current_user_uid), storage=Depends(get_storage)
):
    await require_master(storage, uid, "Only MASTER users can view dependents")
    await check_dependent_access(storage, uid, dependent_id)
    return await serialize_with_last_dose(storage, dependent_id)


#------This Function lists a dependent's taken and missed doses---------
@router.get("/{dependent_id}/history")
async def dependent_history(
    dependent_id: str, uid: str = Depends(get_current_user_uid), storage=Depends(get_storage)
):
    await require_master(storage, uid, "Only MASTER users can view dependent history")
    await check_dependent_access(storage, uid, dependent_id)
    return await history_for_owner(storage, dependent_id, [DoseStatus.TAKEN, DoseStatus.MISSED])
