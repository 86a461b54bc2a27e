from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from typing import Optional
from app.models.billing_record import BillingRecord, BillingStatus
from app.models.user import User
from app.api.deps import get_db

router = APIRouter()

@router.get("/billing-records")
async def get_billing_records(
    status: Optional[BillingStatus] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db)
):
    stmt = (
        select(BillingRecord, User.email)
        .join(User, BillingRecord.user_id == User.id)
        .order_by(BillingRecord.created_at.desc(), BillingRecord.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    if status:
        stmt = stmt.where(BillingRecord.status == status)

    result = await db.execute(stmt)
    rows = result.all()

    response_data = []
    for record, email in rows:
        data = record.to_dict()
        data["user_email"] = email
        response_data.append(data)

    return response_data
