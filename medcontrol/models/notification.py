from beanie import Document
from pydantic import Field
from pymongo import IndexModel, ASCENDING, DESCENDING
from typing import Optional
from datetime import datetime
from enum import Enum


class NotificationType(str, Enum):
    DOSE_DUE = "DOSE_DUE"
    DOSE_MISSED = "DOSE_MISSED"
    STOCK_LOW = "STOCK_LOW"
    STOCK_EMPTY = "STOCK_EMPTY"
    CONNECTION_REQUEST = "CONNECTION_REQUEST"
    CONNECTION_ACCEPTED = "CONNECTION_ACCEPTED"


class Notification(Document):
    user_uid: str
    type: NotificationType
    title: str
    message: str
    read: bool = False
    related_id: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "notifications"
        indexes = [
            IndexModel([("user_uid", ASCENDING), ("created_at", DESCENDING)]),
            IndexModel([("user_uid", ASCENDING), ("read", ASCENDING)]),
        ]
