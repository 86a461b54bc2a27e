"""
Stripe payment gateway adapter.

Keys come from the persisted ``site_config`` row and are re-read on every
client acquisition. Every public operation returns ``None`` on failure
(missing configuration or an SDK error) instead of raising.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import stripe
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app.models.site_config import SiteConfig, DEFAULT_SITE_CONFIG_ID

logger = logging.getLogger(__name__)

# Minor-unit multipliers; currencies not listed use 100
CURRENCY_MULTIPLIERS = {
    "jpy": 1,
    "krw": 1,
    "usd": 100,
    "eur": 100,
    "gbp": 100,
    "cny": 100,
    "hkd": 100,
}
DEFAULT_MULTIPLIER = 100

WEBHOOK_TOLERANCE_SECONDS = 300


@dataclass(frozen=True)
class StripeConfig:
    enabled: bool
    publishable_key: str
    secret_key: str
    webhook_secret: str
    test_mode: bool
    currency: str
    country: str

    def is_complete(self) -> bool:
        return bool(
            self.enabled
            and self.publishable_key
            and self.secret_key
            and self.currency
            and self.country
        )

    def public_view(self) -> Dict[str, Any]:
        return {
            "enabled": self.enabled,
            "publishableKey": self.publishable_key,
            "currency": self.currency,
            "country": self.country,
            "testMode": self.test_mode,
        }


def to_stripe_amount(amount: float, currency: str) -> int:
    multiplier = CURRENCY_MULTIPLIERS.get((currency or "").lower(), DEFAULT_MULTIPLIER)
    return int(round(amount * multiplier))


def from_stripe_amount(amount: int, currency: str) -> float:
    divisor = CURRENCY_MULTIPLIERS.get((currency or "").lower(), DEFAULT_MULTIPLIER)
    return amount / divisor


async def get_stripe_config(db: AsyncSession) -> Optional[StripeConfig]:
    """Load the Stripe settings; ``None`` when disabled or unreadable."""
    try:
        stmt = select(SiteConfig).where(SiteConfig.id == DEFAULT_SITE_CONFIG_ID)
        result = await db.execute(stmt)
        row = result.scalar_one_or_none()
    except Exception as e:
        logger.error(f"Failed to load Stripe config: {str(e)}")
        return None

    if row is None or not row.stripe_enabled:
        return None

    return StripeConfig(
        enabled=bool(row.stripe_enabled),
        publishable_key=row.stripe_publishable_key or "",
        secret_key=row.stripe_secret_key or "",
        webhook_secret=row.stripe_webhook_secret or "",
        test_mode=bool(row.stripe_test_mode),
        currency=row.stripe_currency or "usd",
        country=row.stripe_country or "US",
    )


class StripeGateway:
    """
    Holds one ``stripe.StripeClient`` and rebuilds it only when the secret
    key or the test-mode flag changes.
    """

    def __init__(self):
        self._client: Optional[stripe.StripeClient] = None
        self._client_key: Optional[tuple] = None

    def reset(self) -> None:
        self._client = None
        self._client_key = None

    async def get_client(self, db: AsyncSession) -> Optional[stripe.StripeClient]:
        config = await get_stripe_config(db)
        if config is None or not config.is_complete():
            logger.warning("Stripe is disabled or its configuration is incomplete")
            return None

        cache_key = (config.secret_key, config.test_mode)
        if self._client is None or self._client_key != cache_key:
            self._client = stripe.StripeClient(config.secret_key)
            self._client_key = cache_key
            logger.info(f"Stripe client created (test_mode={config.test_mode})")
        return self._client

    async def create_payment_intent(
        self,
        db: AsyncSession,
        amount: float,
        currency: Optional[str] = None,
        description: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
        customer_id: Optional[str] = None,
    ):
        try:
            client = await self.get_client(db)
            config = await get_stripe_config(db)
            if client is None or config is None:
                return None

            currency = (currency or config.currency).lower()
            params: Dict[str, Any] = {
                "amount": to_stripe_amount(amount, currency),
                "currency": currency,
                "metadata": metadata or {},
                "automatic_payment_methods": {"enabled": True},
            }
            if description:
                params["description"] = description
            if customer_id:
                params["customer"] = customer_id

            return await client.payment_intents.create_async(params=params)
        except Exception as e:
            logger.error(f"Failed to create payment intent: {str(e)}")
            return None

    async def confirm_payment_intent(self, db: AsyncSession, payment_intent_id: str, payment_method_id: Optional[str] = None):
        try:
            client = await self.get_client(db)
            if client is None:
                return None

            params: Dict[str, Any] = {}
            if payment_method_id:
                params["payment_method"] = payment_method_id
            return await client.payment_intents.confirm_async(payment_intent_id, params=params)
        except Exception as e:
            logger.error(f"Failed to confirm payment intent {payment_intent_id}: {str(e)}")
            return None

    async def get_payment_intent(self, db: AsyncSession, payment_intent_id: str):
        try:
            client = await self.get_client(db)
            if client is None:
                return None
            return await client.payment_intents.retrieve_async(payment_intent_id)
        except Exception as e:
            logger.error(f"Failed to retrieve payment intent {payment_intent_id}: {str(e)}")
            return None

    async def create_customer(
        self,
        db: AsyncSession,
        email: Optional[str] = None,
        name: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
    ):
        try:
            client = await self.get_client(db)
            if client is None:
                return None

            params: Dict[str, Any] = {"metadata": metadata or {}}
            if email:
                params["email"] = email
            if name:
                params["name"] = name
            return await client.customers.create_async(params=params)
        except Exception as e:
            logger.error(f"Failed to create customer: {str(e)}")
            return None

    async def get_customer(self, db: AsyncSession, customer_id: str):
        try:
            client = await self.get_client(db)
            if client is None:
                return None
            return await client.customers.retrieve_async(customer_id)
        except Exception as e:
            logger.error(f"Failed to retrieve customer {customer_id}: {str(e)}")
            return None

    async def construct_event(self, db: AsyncSession, payload: bytes, signature: str) -> Optional[Dict[str, Any]]:
        """
        Verify the ``Stripe-Signature`` header against the configured webhook
        secret and return the decoded event, or ``None`` if it does not verify.
        """
        try:
            config = await get_stripe_config(db)
            if config is None or not config.webhook_secret:
                logger.error("Stripe webhook secret is not configured")
                return None

            body = payload.decode("utf-8") if isinstance(payload, (bytes, bytearray)) else payload
            stripe.WebhookSignature.verify_header(
                body, signature, config.webhook_secret, tolerance=WEBHOOK_TOLERANCE_SECONDS
            )
            return json.loads(body)
        except stripe.SignatureVerificationError as e:
            logger.error(f"Webhook signature verification failed: {str(e)}")
            return None
        except Exception as e:
            logger.error(f"Webhook payload could not be verified: {str(e)}")
            return None


stripe_gateway = StripeGateway()
