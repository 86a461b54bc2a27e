from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from datetime import datetime
import math

from app.models.plan import Plan
from app.models.user import User
from app.api.deps import get_db, get_current_user

router = APIRouter()

@router.get("/subscription")
async def get_user_subscription(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    if not current_user.subscription_plan_id:
        return {"subscription": None}

    result = await db.execute(select(Plan).where(Plan.id == current_user.subscription_plan_id))
    plan = result.scalar_one_or_none()
    if plan is None:
        return {"subscription": None}

    expires_at = current_user.subscription_expires_at
    remaining_days = None
    is_expired = False
    if expires_at is not None:
        seconds_left = (expires_at - datetime.utcnow()).total_seconds()
        remaining_days = max(0, math.ceil(seconds_left / 86400))
        is_expired = remaining_days <= 0

    return {
        "subscription": {
            "plan": plan.to_dict(),
            "expires_at": expires_at.isoformat() if expires_at else None,
            "remaining_days": remaining_days,
            "is_expired": is_expired,
        }
    }
