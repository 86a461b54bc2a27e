from sqlalchemy import Column, String, Boolean, DateTime, func
from app.database import Base

DEFAULT_SITE_CONFIG_ID = "default"

class SiteConfig(Base):
    __tablename__ = "site_config"

    id = Column(String(32), primary_key=True, default=DEFAULT_SITE_CONFIG_ID)
    site_name = Column(String, nullable=True)

    # Stripe gateway settings; read on every client acquisition
    stripe_enabled = Column(Boolean, default=False)
    stripe_publishable_key = Column(String, nullable=True)
    stripe_secret_key = Column(String, nullable=True)
    stripe_webhook_secret = Column(String, nullable=True)
    stripe_test_mode = Column(Boolean, default=True)
    stripe_currency = Column(String(3), default="usd")
    stripe_country = Column(String(2), default="US")

    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())
