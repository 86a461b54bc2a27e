from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from typing import Optional
import logging
from datetime import datetime, timedelta

from app.models.billing_record import BillingRecord
from app.models.plan import Plan
from app.models.user import User

logger = logging.getLogger(__name__)


async def update_user_subscription(
    db: AsyncSession,
    record: BillingRecord,
    now: Optional[datetime] = None,
) -> Optional[datetime]:
    """
    Point the record's user at the plan named in its metadata and set the
    expiration to ``now + plan.duration_days``. Earlier expirations are
    overwritten, never extended.

    Does not commit; the caller owns the transaction. Returns the new
    expiration, or ``None`` when nothing was written.
    """
    plan_id = record.plan_id
    if not plan_id:
        logger.info(f"Billing record {record.payment_id} has no planId; subscription unchanged")
        return None

    result = await db.execute(select(Plan).where(Plan.id == plan_id))
    plan = result.scalar_one_or_none()
    if plan is None:
        logger.warning(f"Plan {plan_id} not found for billing record {record.payment_id}")
        return None

    result = await db.execute(select(User).where(User.id == record.user_id))
    user = result.scalar_one_or_none()
    if user is None:
        logger.warning(f"User {record.user_id} not found for billing record {record.payment_id}")
        return None

    expires_at = (now or datetime.utcnow()) + timedelta(days=plan.duration_days)
    user.subscription_plan_id = plan.id
    user.subscription_expires_at = expires_at

    logger.info(f"User {user.id} subscribed to {plan.id} until {expires_at.isoformat()}")
    return expires_at
