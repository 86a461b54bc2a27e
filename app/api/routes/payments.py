from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from pydantic import BaseModel
from typing import Optional
from datetime import datetime
import logging

from app.api.deps import get_db, get_current_user
from app.models.billing_record import BillingRecord, BillingRecordType, BillingStatus
from app.models.plan import Plan
from app.models.user import User
from app.utils.stripe_gateway import stripe_gateway, get_stripe_config

logger = logging.getLogger(__name__)

router = APIRouter()

class CreateIntentRequest(BaseModel):
    amount: float
    currency: Optional[str] = None
    description: Optional[str] = None
    planId: Optional[str] = None
    subscriptionId: Optional[str] = None

@router.post("/create-intent")
async def create_payment_intent(
    payload: CreateIntentRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Create a Stripe payment intent and the matching ``pending`` billing record.
    The record is reconciled later by the webhook handler.
    """
    config = await get_stripe_config(db)
    if config is None or not config.is_complete():
        raise HTTPException(status_code=503, detail="支付服务暂不可用")

    if payload.amount <= 0:
        raise HTTPException(status_code=400, detail="无效的金额")

    if payload.planId:
        result = await db.execute(select(Plan).where(Plan.id == payload.planId, Plan.is_active == True))
        if result.scalar_one_or_none() is None:
            raise HTTPException(status_code=404, detail="套餐不存在")

    currency = (payload.currency or config.currency).lower()
    description = payload.description or "套餐购买"

    intent = await stripe_gateway.create_payment_intent(
        db,
        amount=payload.amount,
        currency=currency,
        description=description,
        metadata={
            "userId": str(current_user.id),
            "userEmail": current_user.email,
            "planId": payload.planId or "",
            "subscriptionId": payload.subscriptionId or "",
            "timestamp": datetime.utcnow().isoformat(),
        },
        customer_id=current_user.stripe_customer_id,
    )
    if intent is None:
        raise HTTPException(status_code=500, detail="创建支付意图失败")

    record = BillingRecord(
        payment_id=intent.id,
        user_id=current_user.id,
        type=BillingRecordType.subscription if payload.planId else BillingRecordType.one_time,
        amount=payload.amount,
        currency=currency,
        description=description,
        status=BillingStatus.pending,
        payment_method="stripe",
        subscription_id=payload.subscriptionId,
        extra_data={
            "planId": payload.planId or "",
            "stripePaymentIntentId": intent.id,
        },
    )
    db.add(record)
    await db.commit()

    logger.info(f"Payment intent {intent.id} created for user {current_user.id}")

    return {
        "paymentIntentId": intent.id,
        "clientSecret": intent.client_secret,
        "amount": intent.amount,
        "currency": intent.currency,
        "status": intent.status,
    }
