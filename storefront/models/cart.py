from sqlalchemy import Column, DateTime, Integer, JSON, Numeric, String, UniqueConstraint, func
from .base import Base


class Cart(Base):
    __tablename__ = "cart"

    user_id = Column(String(128), primary_key=True)
    shipping_address = Column(JSON, nullable=True)
    payment_method = Column(String(64), nullable=False, default="")
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())


class CartItem(Base):
    __tablename__ = "cart_item"
    __table_args__ = (UniqueConstraint("user_id", "product_id", name="uq_cart_item_user_product"),)

    id = Column(String(36), primary_key=True)
    user_id = Column(String(128), nullable=False, index=True)
    product_id = Column(String(36), nullable=False)
    name = Column(String(100), nullable=False)
    image = Column(String(512), nullable=True)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(12, 2), nullable=False)
    list_price = Column(Numeric(12, 2), nullable=True)
    discount = Column(JSON, nullable=True)
    added_at = Column(DateTime, nullable=False, server_default=func.now())
