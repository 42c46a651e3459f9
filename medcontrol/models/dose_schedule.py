from beanie import Document
from pymongo import IndexModel, ASCENDING, DESCENDING
from typing import Optional
from enum import Enum


HOUR_MS = 60 * 60 * 1000


class DoseStatus(str, Enum):
    PENDING = "PENDING"
    TAKEN = "TAKEN"
    MISSED = "MISSED"


class DoseSchedule(Document):
    med_id: str
    owner_uid: str
    time_millis: int
    status: DoseStatus = DoseStatus.PENDING
    confirmed_at: Optional[int] = None

    class Settings:
        name = "dose_schedules"
        indexes = [
            IndexModel([("owner_uid", ASCENDING), ("time_millis", DESCENDING)]),
            IndexModel(
                [("med_id", ASCENDING), ("time_millis", ASCENDING)],
                name="unique_pending_due_time",
                unique=True,
                partialFilterExpression={"status": DoseStatus.PENDING.value},
            ),
        ]
