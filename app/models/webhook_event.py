from sqlalchemy import Column, Integer, String, DateTime, func
from app.database import Base

class StripeWebhookEvent(Base):
    """Ledger of dispatched gateway events, used to drop redeliveries."""

    __tablename__ = "stripe_webhook_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    stripe_event_id = Column(String(255), unique=True, nullable=False, index=True)
    event_type = Column(String(100), nullable=False)
    processed_at = Column(DateTime, default=func.now())
