from __future__ import annotations

import enum
import uuid
from typing import Any, Dict

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum as SAEnum,
    Integer,
    Numeric,
    String,
    Text,
    func,
)
from app.database import Base


class AIAccountStatus(str, enum.Enum):
    active = "active"
    inactive = "inactive"
    maintenance = "maintenance"
    banned = "banned"
    expired = "expired"


class AIAccountTier(str, enum.Enum):
    basic = "basic"
    standard = "standard"
    premium = "premium"
    enterprise = "enterprise"


def _new_account_id() -> str:
    return uuid.uuid4().hex


class AIAccount(Base):
    """
    One upstream provider credential set.

    ``credentials`` holds the encrypted blob produced by
    ``app.utils.encryption.encrypt``; only ``key_preview`` is ever returned
    to API callers. Health fields are rewritten wholesale by each check.
    """

    __tablename__ = "ai_accounts"

    id = Column(String(64), primary_key=True, default=_new_account_id)
    account_name = Column(String(255), nullable=False)
    provider = Column(String(50), nullable=False, index=True)
    account_type = Column(String(50), nullable=False, default="api_key")

    credentials = Column(Text, nullable=False)
    credentials_hash = Column(String(64), nullable=True)
    key_preview = Column(String(64), nullable=True)

    tier = Column(SAEnum(AIAccountTier, name="ai_account_tier"), default=AIAccountTier.basic, nullable=False)
    account_status = Column(
        SAEnum(AIAccountStatus, name="ai_account_status"),
        default=AIAccountStatus.active,
        nullable=False,
    )
    is_shared = Column(Boolean, default=True)

    # Limits
    max_requests_per_minute = Column(Integer, nullable=False, default=60)
    max_tokens_per_minute = Column(Integer, nullable=False, default=100000)
    max_concurrent_requests = Column(Integer, nullable=False, default=3)
    monthly_cost = Column(Numeric(10, 2), nullable=False, default=0)

    # Usage & health
    total_requests = Column(Integer, nullable=False, default=0)
    total_tokens = Column(Integer, nullable=False, default=0)
    health_score = Column(Integer, nullable=False, default=100)
    error_count_24h = Column(Integer, nullable=False, default=0)
    last_used_at = Column(DateTime, nullable=True)
    last_error_at = Column(DateTime, nullable=True)
    last_health_check_at = Column(DateTime, nullable=True)

    description = Column(Text, nullable=True)
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    def to_dict(self) -> Dict[str, Any]:
        """Serialize without the encrypted credentials."""

        def _iso(val):
            return val.isoformat() if val else None

        return {
            "id": self.id,
            "account_name": self.account_name,
            "provider": self.provider,
            "account_type": self.account_type,
            "key_preview": self.key_preview,
            "tier": self.tier.value if self.tier else None,
            "account_status": self.account_status.value if self.account_status else None,
            "is_shared": self.is_shared,
            "max_requests_per_minute": self.max_requests_per_minute,
            "max_tokens_per_minute": self.max_tokens_per_minute,
            "max_concurrent_requests": self.max_concurrent_requests,
            "monthly_cost": float(self.monthly_cost) if self.monthly_cost is not None else 0.0,
            "total_requests": self.total_requests,
            "total_tokens": self.total_tokens,
            "health_score": self.health_score,
            "error_count_24h": self.error_count_24h,
            "last_used_at": _iso(self.last_used_at),
            "last_error_at": _iso(self.last_error_at),
            "last_health_check_at": _iso(self.last_health_check_at),
            "description": self.description,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    def __repr__(self) -> str:  # pragma: no cover - debugging helper
        return f"<AIAccount id={self.id} name={self.account_name!r} provider={self.provider!r} score={self.health_score}>"
