from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app.models.plan import Plan
from app.api.deps import get_db

router = APIRouter()

@router.get("")
async def list_active_plans(db: AsyncSession = Depends(get_db)):
    stmt = select(Plan).where(Plan.is_active == True).order_by(Plan.sort_order, Plan.price)
    result = await db.execute(stmt)
    return [plan.to_dict() for plan in result.scalars().all()]
