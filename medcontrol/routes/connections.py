import logging
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, field_validator
from medcontrol.core.config import settings
from medcontrol.core.database import get_storage
from medcontrol.core.firebase import get_current_user_uid
from medcontrol.models.connection import ConnectionStatus
from medcontrol.models.notification import NotificationType
from medcontrol.models.user import UserRole, PlanType
from medcontrol.services.notifications import NotificationService, get_notification_service
from medcontrol.utils.access_control import require_user, require_master

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/connections", tags=["connections"])


class ConnectionCreate(BaseModel):
    target_id: str

    @field_validator('target_id')
    @classmethod
    def validate_target(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError('target_id cannot be empty')
        return v.strip()


#------This Function lists the caller's connections---------
@router.get("")
async def list_connections(uid: str = Depends(get_current_user_uid), storage=Depends(get_storage)):
    user = await require_user(storage, uid)

    if user.role == UserRole.MASTER:
        conns = await storage.get_connections_by_master(uid)
        linked_field = "target_uid"
    else:
        conns = await storage.get_connections_by_dependent(uid)
        linked_field = "master_uid"

    result = []
    for conn in conns:
        linked = await storage.get_user_by_uid(getattr(conn, linked_field))
        result.append(_serialize(conn, linked))
    return result


#------This Function requests a connection to another user---------
@router.post("", status_code=201)
async def create_connection(
    body: ConnectionCreate,
    uid: str = Depends(get_current_user_uid),
    storage=Depends(get_storage),
    notifications: NotificationService = Depends(get_notification_service),
):
    user = await require_master(storage, uid, "Only MASTER users can add connections")

    target = await storage.get_user_by_uid(body.target_id)
    if not target and "@" in body.target_id:
        target = await storage.get_user_by_email(body.target_id.lower())
    if not target:
        raise HTTPException(status_code=404, detail="User not found")
    if target.firebase_uid == uid:
        raise HTTPException(status_code=400, detail="Cannot connect to yourself")

    existing = await storage.get_connections_by_master(uid)
    if any(c.target_uid == target.firebase_uid for c in existing):
        raise HTTPException(status_code=400, detail="Connection already exists")

    if (
        user.plan_type == PlanType.FREE
        and await storage.count_connections_by_master(uid) >= settings.free_plan_connection_limit
    ):
        raise HTTPException(
            status_code=403,
            detail={
                "message": f"FREE plan is limited to {settings.free_plan_connection_limit} connection. Upgrade to PREMIUM.",
                "requires_upgrade": True,
            },
        )

    conn = await storage.create_connection(uid, target.firebase_uid)
    logger.info(f"Connection {conn.id} requested by {uid} to {target.firebase_uid}")

    try:
        await notifications.notify(
            [target.firebase_uid],
            NotificationType.CONNECTION_REQUEST,
            "Connection request",
            f"{user.name} wants to connect with you",
            related_id=str(conn.id),
        )
    except Exception as e:
        logger.error(f"Notification error (create-connection): {str(e)}")

    return _serialize(conn, target)


#------This Function accepts a connection request---------
@router.patch("/{connection_id}/accept")
async def accept_connection(
    connection_id: str,
    uid: str = Depends(get_current_user_uid),
    storage=Depends(get_storage),
    notifications: NotificationService = Depends(get_notification_service),
):
    conn = await storage.get_connection_by_id(connection_id)
    if not conn:
        raise HTTPException(status_code=404, detail="Connection not found")
    if conn.target_uid != uid:
        raise HTTPException(status_code=403, detail="Only the invited user can accept")
    if conn.status == ConnectionStatus.ACCEPTED:
        return {"status": "accepted", "id": connection_id}

    await storage.accept_connection(connection_id)
    logger.info(f"Connection {connection_id} accepted by {uid}")

    try:
        accepter = await storage.get_user_by_uid(uid)
        await notifications.notify(
            [conn.master_uid],
            NotificationType.CONNECTION_ACCEPTED,
            "Connection accepted",
            f"{accepter.name if accepter else 'A user'} accepted your connection",
            related_id=connection_id,
        )
    except Exception as e:
        logger.error(f"Notification error (accept-connection): {str(e)}")

    return {"status": "accepted", "id": connection_id}


#------This Function removes a connection---------
@router.delete("/{connection_id}")
async def delete_connection(
    connection_id: str,
    uid: str = Depends(get_current_user_uid),
    storage=Depends(get_storage),
):
    conn = await storage.get_connection_by_id(connection_id)
    if not conn:
        raise HTTPException(status_code=404, detail="Connection not found")
    if uid not in (conn.master_uid, conn.target_uid):
        raise HTTPException(status_code=403, detail="Access denied")
    await storage.delete_connection(connection_id)
    logger.info(f"Connection {connection_id} removed by {uid}")
    return {"status": "deleted", "id": connection_id}


def _serialize(conn, linked) -> dict:
    return {
        "id": str(conn.id),
        "master_id": conn.master_uid,
        "target_id": conn.target_uid,
        "status": ConnectionStatus(conn.status).value,
        "created_at": conn.created_at.isoformat(),
        "linked_name": linked.name if linked else "Unknown",
        "linked_email": linked.email if linked else "",
        "linked_role": UserRole(linked.role).value if linked else "",
    }
