"""
Routes verified Stripe events to billing reconciliation handlers.

Each event is applied in a single transaction together with its entry in the
``stripe_webhook_events`` ledger, so a redelivered event id is acknowledged
without being applied twice.
"""

import enum
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app.models.billing_record import BillingRecord, BillingRecordType, BillingStatus
from app.models.webhook_event import StripeWebhookEvent
from app.utils.subscription_updater import update_user_subscription

logger = logging.getLogger(__name__)


class StripeEventType(str, enum.Enum):
    payment_intent_succeeded = "payment_intent.succeeded"
    payment_intent_payment_failed = "payment_intent.payment_failed"
    payment_intent_canceled = "payment_intent.canceled"
    payment_intent_requires_action = "payment_intent.requires_action"
    customer_created = "customer.created"
    customer_updated = "customer.updated"
    invoice_payment_succeeded = "invoice.payment_succeeded"
    invoice_payment_failed = "invoice.payment_failed"

    @classmethod
    def parse(cls, value: str) -> Optional["StripeEventType"]:
        try:
            return cls(value)
        except ValueError:
            return None


async def find_billing_record(db: AsyncSession, payment_id: str) -> Optional[BillingRecord]:
    stmt = select(BillingRecord).where(BillingRecord.payment_id == payment_id)
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def reconcile_billing_record(
    db: AsyncSession,
    payment_id: str,
    status: BillingStatus,
    metadata_patch: Dict[str, Any],
    **fields: Any,
) -> Optional[BillingRecord]:
    """
    Move the record with ``payment_id`` to ``status`` and merge
    ``metadata_patch`` into its metadata.

    Returns ``None`` when there is no such record or when the record is
    already completed/canceled. Does not commit.
    """
    record = await find_billing_record(db, payment_id)
    if record is None:
        logger.info(f"No billing record for payment {payment_id}; nothing to update")
        return None

    if record.is_terminal():
        logger.warning(
            f"Billing record {payment_id} is already {record.status.value}; "
            f"ignoring transition to {status.value}"
        )
        return None

    record.status = status
    record.merge_metadata(metadata_patch)
    for name, value in fields.items():
        setattr(record, name, value)
    record.updated_at = datetime.utcnow()

    logger.info(f"Billing record {payment_id} -> {status.value}")
    return record


async def handle_payment_succeeded(db: AsyncSession, intent: Dict[str, Any]) -> None:
    now = datetime.utcnow()
    patch = {
        "stripePaymentStatus": intent.get("status"),
        "completedAt": now.isoformat(),
    }
    latest_charge = intent.get("latest_charge")
    if isinstance(latest_charge, str):
        patch["stripeChargeId"] = latest_charge

    record = await reconcile_billing_record(
        db, intent["id"], BillingStatus.completed, patch, completed_at=now
    )
    if record is not None and record.type == BillingRecordType.subscription:
        await update_user_subscription(db, record, now=now)


async def handle_payment_failed(db: AsyncSession, intent: Dict[str, Any]) -> None:
    now = datetime.utcnow()
    error = intent.get("last_payment_error") or {}
    patch = {
        "stripePaymentStatus": intent.get("status"),
        "failureReason": error.get("message") or "支付失败",
        "failedAt": now.isoformat(),
    }
    await reconcile_billing_record(db, intent["id"], BillingStatus.failed, patch, failed_at=now)


async def handle_payment_canceled(db: AsyncSession, intent: Dict[str, Any]) -> None:
    patch = {
        "stripePaymentStatus": intent.get("status"),
        "canceledAt": datetime.utcnow().isoformat(),
    }
    await reconcile_billing_record(db, intent["id"], BillingStatus.canceled, patch)


async def handle_payment_requires_action(db: AsyncSession, intent: Dict[str, Any]) -> None:
    next_action = intent.get("next_action") or {}
    patch = {
        "stripePaymentStatus": intent.get("status"),
        "requiresAction": True,
        "nextAction": next_action.get("type") or "unknown",
    }
    await reconcile_billing_record(db, intent["id"], BillingStatus.requires_action, patch)


async def log_only(db: AsyncSession, obj: Dict[str, Any]) -> None:
    logger.info(f"Stripe object {obj.get('object')} {obj.get('id')} received; no action taken")


EventHandler = Callable[[AsyncSession, Dict[str, Any]], Awaitable[None]]

EVENT_HANDLERS: Dict[StripeEventType, EventHandler] = {
    StripeEventType.payment_intent_succeeded: handle_payment_succeeded,
    StripeEventType.payment_intent_payment_failed: handle_payment_failed,
    StripeEventType.payment_intent_canceled: handle_payment_canceled,
    StripeEventType.payment_intent_requires_action: handle_payment_requires_action,
    StripeEventType.customer_created: log_only,
    StripeEventType.customer_updated: log_only,
    StripeEventType.invoice_payment_succeeded: log_only,
    StripeEventType.invoice_payment_failed: log_only,
}


async def is_processed(db: AsyncSession, event_id: str) -> bool:
    stmt = select(StripeWebhookEvent.id).where(StripeWebhookEvent.stripe_event_id == event_id)
    result = await db.execute(stmt)
    return result.scalar_one_or_none() is not None


async def dispatch_event(db: AsyncSession, event: Dict[str, Any]) -> bool:
    """
    Apply one verified event. Returns ``False`` when the event id was already
    processed and nothing was done.

    Exceptions from handlers propagate after the session is rolled back.
    """
    event_id = event.get("id")
    raw_type = event.get("type", "")
    logger.info(f"Stripe webhook received: {raw_type} ({event_id})")

    if event_id and await is_processed(db, event_id):
        logger.info(f"Stripe event {event_id} already processed; skipping")
        return False

    event_type = StripeEventType.parse(raw_type)
    try:
        if event_type is None:
            logger.info(f"Unhandled Stripe event type: {raw_type}")
        else:
            obj = (event.get("data") or {}).get("object") or {}
            await EVENT_HANDLERS[event_type](db, obj)

        if event_id:
            db.add(StripeWebhookEvent(stripe_event_id=event_id, event_type=raw_type))
        await db.commit()
    except IntegrityError:
        # A concurrent delivery of the same event committed first
        await db.rollback()
        logger.info(f"Stripe event {event_id} recorded concurrently; skipping")
        return False
    except Exception:
        await db.rollback()
        raise

    return True
