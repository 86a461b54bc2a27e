from fastapi import APIRouter, Depends, HTTPException, Path, status
from pydantic import BaseModel, Field
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from app.models.plan import Plan
from app.api.deps import get_db

router = APIRouter()

# ------------------- Pydantic Schemas -------------------

class PlanCreate(BaseModel):
    id: str = Field(..., min_length=1, max_length=64)
    name: str
    display_name: Optional[str] = None
    description: Optional[str] = None
    price: float = Field(0, ge=0)
    currency: str = "usd"
    duration_days: int = Field(30, gt=0)
    requests_limit: Optional[int] = None
    tokens_limit: Optional[int] = None
    is_active: bool = True
    sort_order: int = 0

class PlanUpdate(BaseModel):
    name: Optional[str] = None
    display_name: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    currency: Optional[str] = None
    duration_days: Optional[int] = Field(None, gt=0)
    requests_limit: Optional[int] = None
    tokens_limit: Optional[int] = None
    is_active: Optional[bool] = None
    sort_order: Optional[int] = None

# ------------------- CRUD Endpoints -------------------

@router.get("/plans")
async def get_all_plans(db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(Plan).order_by(Plan.sort_order, Plan.price))
    return [plan.to_dict() for plan in result.scalars().all()]

@router.post("/plans", status_code=status.HTTP_201_CREATED)
async def create_plan(payload: PlanCreate, db: AsyncSession = Depends(get_db)):
    existing = await db.execute(select(Plan).where((Plan.id == payload.id) | (Plan.name == payload.name)))
    if existing.scalars().first():
        raise HTTPException(status_code=400, detail="Plan with this id or name already exists")

    plan = Plan(**payload.model_dump())
    plan.currency = plan.currency.lower()
    db.add(plan)
    await db.commit()
    await db.refresh(plan)
    return plan.to_dict()

# Columns that reject NULL; an explicit null in an update is a client error
REQUIRED_PLAN_FIELDS = ("name", "price", "currency", "duration_days", "is_active", "sort_order")

@router.put("/plans/{plan_id}")
async def update_plan(payload: PlanUpdate, plan_id: str = Path(...), db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(Plan).where(Plan.id == plan_id))
    plan = result.scalar_one_or_none()
    if not plan:
        raise HTTPException(status_code=404, detail="Plan not found")

    changes = payload.model_dump(exclude_unset=True)
    nulled = [field for field in REQUIRED_PLAN_FIELDS if field in changes and changes[field] is None]
    if nulled:
        raise HTTPException(status_code=400, detail=f"Fields cannot be null: {', '.join(nulled)}")

    if "name" in changes and changes["name"] != plan.name:
        clash = await db.execute(select(Plan.id).where(Plan.name == changes["name"], Plan.id != plan_id))
        if clash.first():
            raise HTTPException(status_code=400, detail="Plan with this name already exists")
    if "currency" in changes:
        changes["currency"] = changes["currency"].lower()

    for key, value in changes.items():
        setattr(plan, key, value)

    await db.commit()
    await db.refresh(plan)
    return plan.to_dict()
