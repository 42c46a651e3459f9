from fastapi import HTTPException
from medcontrol.models.connection import ConnectionStatus
from medcontrol.models.user import UserRole


#------This Function loads the calling user or fails---------
async def require_user(storage, uid: str):
    user = await storage.get_user_by_uid(uid)
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    return user


#------This Function loads the calling user and requires the MASTER role---------
async def require_master(storage, uid: str, detail: str = "Only MASTER users can do this"):
    user = await require_user(storage, uid)
    if user.role != UserRole.MASTER:
        raise HTTPException(status_code=403, detail=detail)
    return user


#------This Function checks a master has an accepted link to a target---------
async def check_dependent_access(storage, master_uid: str, target_uid: str) -> None:
    conns = await storage.get_connections_by_master(master_uid)
    if any(c.target_uid == target_uid and c.status == ConnectionStatus.ACCEPTED for c in conns):
        return
    raise HTTPException(status_code=403, detail="Access denied")
