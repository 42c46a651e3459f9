from beanie import Document, Indexed
from pydantic import Field
from datetime import datetime
from enum import Enum


class UserRole(str, Enum):
    MASTER = "MASTER"
    DEPENDENT = "DEPENDENT"
    CONTROLLER = "CONTROLLER"


class PlanType(str, Enum):
    FREE = "FREE"
    PREMIUM = "PREMIUM"


class User(Document):
    firebase_uid: Indexed(str, unique=True)
    name: str
    email: Indexed(str, unique=True)
    role: UserRole = UserRole.MASTER
    plan_type: PlanType = PlanType.FREE
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "users"
