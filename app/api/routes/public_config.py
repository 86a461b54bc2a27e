from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_db
from app.utils.stripe_gateway import get_stripe_config

router = APIRouter()

@router.get("/stripe-public")
async def get_stripe_public_config(db: AsyncSession = Depends(get_db)):
    """Publishable Stripe settings for the checkout page. Secrets never leave the server."""
    config = await get_stripe_config(db)
    if config is None or not config.is_complete():
        raise HTTPException(status_code=404, detail="Stripe 支付未启用")
    return config.public_view()
