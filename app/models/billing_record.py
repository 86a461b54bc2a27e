from __future__ import annotations

import enum
from typing import Any, Dict

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    func,
)
from sqlalchemy.orm import relationship
from app.database import Base


class BillingRecordType(str, enum.Enum):
    one_time = "one_time"
    subscription = "subscription"


class BillingStatus(str, enum.Enum):
    """Lifecycle states of one payment attempt."""

    pending = "pending"
    completed = "completed"
    failed = "failed"
    canceled = "canceled"
    requires_action = "requires_action"


TERMINAL_STATUSES = (BillingStatus.completed, BillingStatus.canceled)


class BillingRecord(Base):
    """
    One payment attempt, keyed by the gateway's payment id.

    Rows are inserted when a payment intent is created and afterwards only
    mutated by the webhook reconciler.
    """

    __tablename__ = "billing_records"

    id = Column(Integer, primary_key=True, autoincrement=True)
    payment_id = Column(String(255), nullable=False, unique=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)

    type = Column(
        SAEnum(BillingRecordType, name="billing_record_type"),
        default=BillingRecordType.one_time,
        nullable=False,
    )
    amount = Column(Numeric(12, 2), nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="usd")
    description = Column(String(255), nullable=True)
    status = Column(
        SAEnum(BillingStatus, name="billing_status"),
        default=BillingStatus.pending,
        nullable=False,
    )
    payment_method = Column(String(50), default="stripe")
    subscription_id = Column(String(255), nullable=True)

    # "metadata" is reserved on declarative classes
    extra_data = Column("metadata", JSON, default=dict, nullable=True)

    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())
    completed_at = Column(DateTime, nullable=True)
    failed_at = Column(DateTime, nullable=True)

    user = relationship("User", back_populates="billing_records")

    @property
    def plan_id(self):
        return (self.extra_data or {}).get("planId") or None

    def merge_metadata(self, patch: Dict[str, Any]) -> None:
        """Shallow-merge ``patch`` into the stored metadata."""
        merged = dict(self.extra_data or {})
        merged.update(patch)
        # Reassign so the JSON column is flagged dirty
        self.extra_data = merged

    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "payment_id": self.payment_id,
            "user_id": self.user_id,
            "type": self.type.value if self.type else None,
            "amount": float(self.amount or 0),
            "currency": self.currency,
            "description": self.description,
            "status": self.status.value if self.status else None,
            "payment_method": self.payment_method,
            "subscription_id": self.subscription_id,
            "metadata": self.extra_data or {},
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "failed_at": self.failed_at.isoformat() if self.failed_at else None,
        }

    def __repr__(self) -> str:  # pragma: no cover - debugging helper
        return f"<BillingRecord id={self.id} payment_id={self.payment_id!r} status={self.status}>"
