from fastapi import APIRouter, Depends, HTTPException
from medcontrol.core.database import get_storage
from medcontrol.core.firebase import get_current_user_uid
from medcontrol.models.user import UserRole

router = APIRouter(prefix="/users", tags=["users"])


#------This Function finds a user by uid or email---------
@router.get("/search/{identifier}")
async def search_user(
    identifier: str,
    uid: str = Depends(get_current_user_uid),
    storage=Depends(get_storage),
):
    user = await storage.get_user_by_uid(identifier)
    if not user and "@" in identifier:
        user = await storage.get_user_by_email(identifier)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return {
        "id": user.firebase_uid,
        "name": user.name,
        "email": user.email,
        "role": UserRole(user.role).value,
    }
