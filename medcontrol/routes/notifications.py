from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from medcontrol.core.database import get_storage
from medcontrol.core.firebase import get_current_user_uid
from medcontrol.models.notification import NotificationType
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/notifications", tags=["notifications"])
push_router = APIRouter(prefix="/push-tokens", tags=["notifications"])


class RegisterTokenRequest(BaseModel):
    token: str


#------This Function lists notifications---------
@router.get("")
async def list_notifications(
    limit: int = Query(100, ge=1, le=500),
    uid: str = Depends(get_current_user_uid),
    storage=Depends(get_storage),
):
    notifications = await storage.get_notifications_by_user(uid, limit=limit)
    return [_serialize(n) for n in notifications]


#------This Function counts unread notifications---------
@router.get("/unread-count")
async def unread_count(uid: str = Depends(get_current_user_uid), storage=Depends(get_storage)):
    return {"count": await storage.get_unread_count_by_user(uid)}


#------This Function marks every notification as read---------
@router.patch("/read-all")
async def mark_all_read(uid: str = Depends(get_current_user_uid), storage=Depends(get_storage)):
    await storage.mark_all_notifications_read(uid)
    return {"status": "ok"}


#------This Function marks a notification as read---------
@router.patch("/{notification_id}/read")
async def mark_read(
    notification_id: str,
    uid: str = Depends(get_current_user_uid),
    storage=Depends(get_storage),
):
    if not await storage.mark_notification_read(notification_id, uid):
        raise HTTPException(status_code=404, detail="Notification not found")
    return {"status": "ok"}


#------This Function registers a push token---------
@push_router.post("", status_code=201)
async def register_push_token(
    body: RegisterTokenRequest,
    uid: str = Depends(get_current_user_uid),
    storage=Depends(get_storage),
):
    token = body.token.strip()
    if not token:
        raise HTTPException(status_code=400, detail="Token is required")
    push_token = await storage.register_push_token(uid, token)
    return {
        "id": str(push_token.id),
        "user_id": push_token.user_uid,
        "token": push_token.token,
        "created_at": push_token.created_at.isoformat(),
    }


def _serialize(notification) -> dict:
    return {
        "id": str(notification.id),
        "user_id": notification.user_uid,
        "type": NotificationType(notification.type).value,
        "title": notification.title,
        "message": notification.message,
        "read": notification.read,
        "related_id": notification.related_id,
        "created_at": notification.created_at.isoformat(),
    }
