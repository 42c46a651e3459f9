from typing import List, Optional, Dict, Any, Iterable
from fastapi import Depends
from medcontrol.core.database import get_storage
from medcontrol.models.notification import NotificationType
from medcontrol.services.push import PushService
import logging

logger = logging.getLogger(__name__)


class NotificationService:

    def __init__(self, storage, push_service: Optional[PushService] = None):
        self.storage = storage
        self.push_service = push_service or PushService(storage)

#------This Function persists one notification per user---------
    async def create_notifications(
        self,
        user_uids: Iterable[str],
        type: NotificationType,
        title: str,
        message: str,
        related_id: Optional[str] = None,
    ) -> list:
        created = []
        for uid in dict.fromkeys(user_uids):
            created.append(
                await self.storage.create_notification(
                    user_uid=uid,
                    type=type,
                    title=title,
                    message=message,
                    related_id=related_id,
                )
            )
        return created

#------This Function delivers push without raising---------
    async def push(
        self,
        user_uids: Iterable[str],
        title: str,
        body: str,
        data: Optional[Dict[str, Any]] = None,
    ) -> int:
        try:
            return await self.push_service.send_push_to_users(user_uids, title, body, data)
        except Exception as e:
            logger.error(f"Push delivery failed: {str(e)}")
            return 0

#------This Function persists then pushes a notification---------
    async def notify(
        self,
        user_uids: List[str],
        type: NotificationType,
        title: str,
        message: str,
        related_id: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> list:
        created = await self.create_notifications(user_uids, type, title, message, related_id)
        payload = {"type": NotificationType(type).value, "relatedId": related_id}
        if data:
            payload.update(data)
        await self.push(user_uids, title, message, payload)
        return created


#------This Function provides the notification service for requests---------
def get_notification_service(storage=Depends(get_storage)) -> NotificationService:
    return NotificationService(storage)
