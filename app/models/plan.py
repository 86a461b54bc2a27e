from sqlalchemy import Column, Integer, String, Numeric, Boolean, DateTime, Text, func
from app.database import Base

class Plan(Base):
    __tablename__ = "plans"

    id = Column(String(64), primary_key=True)  # e.g. "pro", "shared"
    name = Column(String, nullable=False, unique=True)
    display_name = Column(String, nullable=True)
    description = Column(Text, nullable=True)
    price = Column(Numeric(12, 2), nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="usd")
    duration_days = Column(Integer, nullable=False, default=30)
    requests_limit = Column(Integer, nullable=True)
    tokens_limit = Column(Integer, nullable=True)
    is_active = Column(Boolean, default=True)
    sort_order = Column(Integer, default=0)
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "display_name": self.display_name,
            "description": self.description,
            "price": float(self.price or 0),
            "currency": self.currency,
            "duration_days": self.duration_days,
            "requests_limit": self.requests_limit,
            "tokens_limit": self.tokens_limit,
            "is_active": self.is_active,
            "sort_order": self.sort_order,
        }
