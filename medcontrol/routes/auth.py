import logging
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional
from medcontrol.core.database import get_storage
from medcontrol.core.firebase import get_current_user_uid
from medcontrol.models.user import UserRole, PlanType
from medcontrol.utils.access_control import require_user

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/auth", tags=["auth"])


MAX_NAME_LENGTH = 100
MAX_EMAIL_LENGTH = 255


def _clean_email(v: str) -> str:
    v = v.strip().lower()
    if '@' not in v or '.' not in v.split('@')[-1]:
        raise ValueError('Invalid email format')
    if len(v) > MAX_EMAIL_LENGTH:
        raise ValueError(f'Email cannot exceed {MAX_EMAIL_LENGTH} characters')
    return v


def _clean_name(v: str) -> str:
    if not v or not v.strip():
        raise ValueError('Name cannot be empty')
    if len(v) > MAX_NAME_LENGTH:
        raise ValueError(f'Name cannot exceed {MAX_NAME_LENGTH} characters')
    return v.strip()


class RegisterRequest(BaseModel):
    name: str
    email: str
    role: UserRole = UserRole.MASTER

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: str) -> str:
        return _clean_name(v)

    @field_validator('email')
    @classmethod
    def validate_email(cls, v: str) -> str:
        return _clean_email(v)


class UpdateProfileRequest(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: Optional[str]) -> Optional[str]:
        return _clean_name(v) if v is not None else v

    @field_validator('email')
    @classmethod
    def validate_email(cls, v: Optional[str]) -> Optional[str]:
        return _clean_email(v) if v is not None else v


class UpdateRoleRequest(BaseModel):
    role: UserRole


class SyncPlanRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    plan_type: PlanType = Field(alias="planType")


class UserResponse(BaseModel):
    id: str
    name: str
    email: str
    role: str
    plan_type: str


#------This Function registers a user---------
@router.post("/register", response_model=UserResponse, status_code=201)
async def register(
    body: RegisterRequest,
    uid: str = Depends(get_current_user_uid),
    storage=Depends(get_storage),
):
    existing = await storage.get_user_by_uid(uid)
    if existing:
        return _to_response(existing)

    if await storage.get_user_by_email(body.email):
        raise HTTPException(status_code=400, detail="Email already registered")

    user = await storage.create_user(uid=uid, name=body.name, email=body.email, role=body.role)
    logger.info(f"New user registered: {uid} with role {user.role.value}")
    return _to_response(user)


#------This Function gets the current user---------
@router.get("/me", response_model=UserResponse)
async def get_me(uid: str = Depends(get_current_user_uid), storage=Depends(get_storage)):
    user = await storage.get_user_by_uid(uid)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return _to_response(user)


#------This Function updates the profile---------
@router.patch("/profile", response_model=UserResponse)
async def update_profile(
    body: UpdateProfileRequest,
    uid: str = Depends(get_current_user_uid),
    storage=Depends(get_storage),
):
    await require_user(storage, uid)
    updates = body.model_dump(exclude_none=True)
    if "email" in updates:
        other = await storage.get_user_by_email(updates["email"])
        if other and other.firebase_uid != uid:
            raise HTTPException(status_code=400, detail="Email already registered")
    user = await storage.update_user(uid, updates)
    logger.info(f"Updated profile for user {uid}")
    return _to_response(user)


#------This Function changes the user role---------
@router.patch("/role", response_model=UserResponse)
async def update_role(
    body: UpdateRoleRequest,
    uid: str = Depends(get_current_user_uid),
    storage=Depends(get_storage),
):
    await require_user(storage, uid)
    user = await storage.update_user(uid, {"role": body.role})
    logger.info(f"User {uid} switched role to {body.role.value}")
    return _to_response(user)


#------This Function upgrades the user to the PREMIUM plan---------
@router.post("/upgrade", response_model=UserResponse)
async def upgrade_plan(uid: str = Depends(get_current_user_uid), storage=Depends(get_storage)):
    await require_user(storage, uid)
    user = await storage.update_user(uid, {"plan_type": PlanType.PREMIUM})
    logger.info(f"User {uid} upgraded to {PlanType.PREMIUM.value}")
    return _to_response(user)


#------This Function sets the plan tier reported by the client---------
@router.post("/sync-plan", response_model=UserResponse)
async def sync_plan(
    body: SyncPlanRequest,
    uid: str = Depends(get_current_user_uid),
    storage=Depends(get_storage),
):
    user = await storage.get_user_by_uid(uid)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    user = await storage.update_user(uid, {"plan_type": body.plan_type})
    logger.info(f"User {uid} plan synced to {body.plan_type.value}")
    return _to_response(user)


#------This Function converts user to response---------
def _to_response(user) -> UserResponse:
    return UserResponse(
        id=user.firebase_uid,
        name=user.name,
        email=user.email,
        role=UserRole(user.role).value,
        plan_type=PlanType(user.plan_type).value,
    )
