from sqlalchemy import Boolean, Column, DateTime, Integer, JSON, Numeric, String, Text, func
from .base import Base


ORDER_PENDING = "pending"
ORDER_INITIATED = "initiated"
ORDER_PAID = "paid"
ORDER_CANCELLED = "cancelled"


class Order(Base):
    __tablename__ = "order"

    id = Column(String(36), primary_key=True)
    user_id = Column(String(128), nullable=False, index=True)
    items = Column(JSON, nullable=False)
    shipping_address = Column(JSON, nullable=True)
    payment_method = Column(String(64), nullable=False)
    items_price = Column(Numeric(12, 2), nullable=False)
    shipping_price = Column(Numeric(12, 2), nullable=False)
    tax_price = Column(Numeric(12, 2), nullable=False)
    total_price = Column(Numeric(12, 2), nullable=False)
    total_savings = Column(Numeric(12, 2), nullable=False, default=0)
    currency = Column(String(3), nullable=False)
    status = Column(String(32), nullable=False, default=ORDER_PENDING)
    version = Column(Integer, nullable=False, default=1)
    is_paid = Column(Boolean, nullable=False, default=False)
    paid_at = Column(DateTime, nullable=True)
    is_delivered = Column(Boolean, nullable=False, default=False)
    delivered_at = Column(DateTime, nullable=True)
    is_cancelled = Column(Boolean, nullable=False, default=False)
    cancelled_at = Column(DateTime, nullable=True)
    cancellation_reason = Column(Text, nullable=False, default="")
    payment_result = Column(JSON, nullable=True)
    payment_proof_image = Column(String(512), nullable=False, default="")
    gateway_pidx = Column(String(128), nullable=True, index=True)
    expected_amount = Column(Integer, nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())
