from beanie import Document, Indexed
from pydantic import Field
from datetime import datetime


class Medication(Document):
    owner_uid: Indexed(str)
    name: str
    dosage: str
    current_stock: int = Field(default=0, ge=0)
    alert_threshold: int = Field(default=5, ge=0)
    interval_in_hours: int = Field(default=8, ge=1)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "medications"
