from beanie import Document
from pydantic import Field
from pymongo import IndexModel, ASCENDING
from datetime import datetime


class PushToken(Document):
    user_uid: str
    token: str
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "push_tokens"
        indexes = [
            IndexModel([("user_uid", ASCENDING), ("token", ASCENDING)], unique=True),
            IndexModel([("token", ASCENDING)]),
        ]
