from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
import logging

from app.models.site_config import SiteConfig, DEFAULT_SITE_CONFIG_ID
from app.api.deps import get_db
from app.utils.encryption import generate_key_preview

logger = logging.getLogger(__name__)

router = APIRouter()

class PaymentConfigUpdate(BaseModel):
    stripeEnabled: Optional[bool] = None
    stripePublishableKey: Optional[str] = None
    stripeSecretKey: Optional[str] = None
    stripeWebhookSecret: Optional[str] = None
    stripeTestMode: Optional[bool] = None
    stripeCurrency: Optional[str] = Field(None, min_length=3, max_length=3)
    stripeCountry: Optional[str] = Field(None, min_length=2, max_length=2)

    model_config = {"extra": "forbid"}

# request field -> site_config column
FIELD_COLUMNS = {
    "stripeEnabled": "stripe_enabled",
    "stripePublishableKey": "stripe_publishable_key",
    "stripeSecretKey": "stripe_secret_key",
    "stripeWebhookSecret": "stripe_webhook_secret",
    "stripeTestMode": "stripe_test_mode",
    "stripeCurrency": "stripe_currency",
    "stripeCountry": "stripe_country",
}

def _mask(value: Optional[str]) -> str:
    if not value:
        return ""
    if len(value) < 10:
        return "*" * len(value)
    return generate_key_preview(value)

def serialize_config(config: SiteConfig) -> dict:
    return {
        "stripeEnabled": bool(config.stripe_enabled),
        "stripePublishableKey": config.stripe_publishable_key or "",
        "stripeSecretKey": _mask(config.stripe_secret_key),
        "stripeWebhookSecret": _mask(config.stripe_webhook_secret),
        "stripeTestMode": bool(config.stripe_test_mode),
        "stripeCurrency": config.stripe_currency or "usd",
        "stripeCountry": config.stripe_country or "US",
    }

async def _get_or_create(db: AsyncSession) -> SiteConfig:
    result = await db.execute(select(SiteConfig).where(SiteConfig.id == DEFAULT_SITE_CONFIG_ID))
    config = result.scalar_one_or_none()
    if config is None:
        config = SiteConfig(id=DEFAULT_SITE_CONFIG_ID, stripe_enabled=False)
        db.add(config)
    return config

@router.get("/payments/config")
async def get_payment_config(db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(SiteConfig).where(SiteConfig.id == DEFAULT_SITE_CONFIG_ID))
    config = result.scalar_one_or_none()
    if config is None:
        return serialize_config(SiteConfig(stripe_enabled=False, stripe_test_mode=True))
    return serialize_config(config)

@router.put("/payments/config")
async def update_payment_config(payload: PaymentConfigUpdate, db: AsyncSession = Depends(get_db)):
    config = await _get_or_create(db)

    for field, value in payload.model_dump(exclude_unset=True).items():
        if field in ("stripeCurrency", "stripeCountry") and value:
            value = value.lower() if field == "stripeCurrency" else value.upper()
        setattr(config, FIELD_COLUMNS[field], value)

    await db.commit()
    await db.refresh(config)
    logger.info(f"Payment config updated: {sorted(payload.model_dump(exclude_unset=True))}")
    return serialize_config(config)
