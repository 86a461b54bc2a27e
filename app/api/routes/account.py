from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, EmailStr
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from typing import Optional
import logging

from app.models.user import User
from app.api.deps import get_db, get_current_user
from app.security import create_access_token, get_password_hash, verify_password

logger = logging.getLogger(__name__)

router = APIRouter()

MIN_PASSWORD_LENGTH = 8

class ProfileUpdate(BaseModel):
    full_name: Optional[str] = None
    email: Optional[EmailStr] = None

class PasswordChange(BaseModel):
    current_password: str
    new_password: str

def public_profile(user: User) -> dict:
    def _iso(val):
        return val.isoformat() if val else None

    return {
        "id": user.id,
        "email": user.email,
        "full_name": user.full_name,
        "email_verified": bool(user.email_verified),
        "subscription_plan_id": user.subscription_plan_id,
        "subscription_expires_at": _iso(user.subscription_expires_at),
        "created_at": _iso(user.created_at),
        "updated_at": _iso(user.updated_at),
    }

@router.get("/auth/me")
async def read_me(current_user: User = Depends(get_current_user)):
    return public_profile(current_user)

@router.put("/user/profile")
async def update_profile(
    payload: ProfileUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    changes = payload.model_dump(exclude_none=True)
    if not changes:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No updatable fields supplied")

    email_changed = "email" in changes and changes["email"] != current_user.email
    if email_changed:
        taken = await db.execute(select(User.id).where(User.email == changes["email"]))
        if taken.first():
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email already in use")

    for key, value in changes.items():
        setattr(current_user, key, value)
    await db.commit()
    await db.refresh(current_user)

    response = {"user": public_profile(current_user)}
    # Tokens are keyed by email, so the old one stops resolving
    if email_changed:
        response["access_token"] = create_access_token(data={"sub": current_user.email, "role": "user"})
        response["token_type"] = "bearer"
    return response

@router.post("/user/change-password")
async def change_password(
    payload: PasswordChange,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    if len(payload.new_password) < MIN_PASSWORD_LENGTH:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"New password must be at least {MIN_PASSWORD_LENGTH} characters",
        )
    if not verify_password(payload.current_password, current_user.hashed_password):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Current password is incorrect")

    current_user.hashed_password = get_password_hash(payload.new_password)
    await db.commit()

    logger.info(f"User {current_user.id} changed their password")
    return {"message": "Password changed"}
