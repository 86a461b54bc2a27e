from fastapi import APIRouter, Request, Depends, HTTPException, Header
from fastapi.responses import PlainTextResponse
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
import logging

from app.api.deps import get_db
from app.utils.stripe_gateway import stripe_gateway
from app.utils.webhook_dispatcher import dispatch_event

logger = logging.getLogger(__name__)

router = APIRouter()

@router.post("/stripe", response_class=PlainTextResponse)
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db)
):
    if not stripe_signature:
        raise HTTPException(status_code=400, detail="Missing Stripe-Signature header")

    payload = await request.body()
    event = await stripe_gateway.construct_event(db, payload, stripe_signature)
    if event is None:
        raise HTTPException(status_code=401, detail="Invalid webhook signature")

    try:
        await dispatch_event(db, event)
    except Exception as e:
        logger.error(f"Stripe webhook {event.get('id')} ({event.get('type')}) failed: {str(e)}")
        raise HTTPException(status_code=500, detail="Webhook processing failed")

    return PlainTextResponse("OK")
