from beanie import Document, Indexed
from pydantic import Field
from datetime import datetime
from enum import Enum


class ConnectionStatus(str, Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"


class Connection(Document):
    master_uid: Indexed(str)
    target_uid: Indexed(str)
    status: ConnectionStatus = ConnectionStatus.PENDING
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "connections"
