from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy import func

from app.models.user import User
from app.models.plan import Plan
from app.models.billing_record import BillingRecord
from app.api.deps import get_db, get_current_user

router = APIRouter()

@router.get("/records")
async def get_billing_records(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    total = await db.scalar(
        select(func.count(BillingRecord.id)).where(BillingRecord.user_id == current_user.id)
    )

    stmt = (
        select(BillingRecord)
        .where(BillingRecord.user_id == current_user.id)
        .order_by(BillingRecord.created_at.desc(), BillingRecord.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    result = await db.execute(stmt)
    records = result.scalars().all()

    # Resolve plan names in one query
    plan_ids = {r.plan_id for r in records if r.plan_id}
    plan_names = {}
    if plan_ids:
        plans = (await db.execute(select(Plan).where(Plan.id.in_(plan_ids)))).scalars().all()
        plan_names = {p.id: p.display_name or p.name for p in plans}

    return {
        "records": [
            {
                "id": record.id,
                "paymentId": record.payment_id,
                "type": record.type.value,
                "amount": float(record.amount or 0),
                "currency": record.currency,
                "description": record.description or "",
                "status": record.status.value,
                "planId": record.plan_id,
                "planName": plan_names.get(record.plan_id, record.plan_id),
                "paymentMethod": record.payment_method or "",
                "created_at": record.created_at,
                "updated_at": record.updated_at,
            }
            for record in records
        ],
        "page": page,
        "limit": limit,
        "total": total or 0,
    }
