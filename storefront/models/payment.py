from sqlalchemy import Column, DateTime, Integer, JSON, String, func
from .base import Base


class PendingPurchase(Base):
    """Bridges an initiated gateway session to its order until confirmation."""

    __tablename__ = "pending_purchase"

    id = Column(String(36), primary_key=True)
    order_id = Column(String(36), nullable=False, index=True)
    payment_method = Column(String(32), nullable=False, default="khalti")
    expected_amount = Column(Integer, nullable=False)
    pidx = Column(String(128), nullable=True)
    status = Column(String(16), nullable=False, default="pending")
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())


class PaymentRecord(Base):
    __tablename__ = "payment"

    id = Column(String(36), primary_key=True)
    order_id = Column(String(36), nullable=False, index=True)
    pidx = Column(String(128), nullable=False)
    transaction_id = Column(String(128), nullable=True)
    amount = Column(Integer, nullable=False)
    gateway = Column(String(32), nullable=False, default="khalti")
    lookup_data = Column(JSON, nullable=True)
    callback_query = Column(JSON, nullable=True)
    status = Column(String(16), nullable=False, default="success")
    created_at = Column(DateTime, nullable=False, server_default=func.now())
