from sqlalchemy import Boolean, Column, DateTime, Integer, Numeric, String, Text, func
from .base import Base


class Product(Base):
    __tablename__ = "product"

    id = Column(String(36), primary_key=True)
    name = Column(String(100), nullable=False)
    brand = Column(String(128), nullable=False, default="")
    category = Column(String(128), nullable=True)
    description = Column(Text, nullable=True)
    image = Column(String(512), nullable=True)
    price = Column(Numeric(12, 2), nullable=False)
    quantity = Column(Integer, nullable=False, default=0)
    in_stock = Column(Boolean, nullable=False, default=True)
    is_active = Column(Boolean, nullable=False, default=True)
    discount_percentage = Column(Numeric(5, 2), nullable=False, default=0)
    discount_active = Column(Boolean, nullable=False, default=False)
    discount_start = Column(DateTime, nullable=True)
    discount_end = Column(DateTime, nullable=True)
    discount_name = Column(String(128), nullable=False, default="")
    rating = Column(Numeric(3, 2), nullable=False, default=0)
    num_reviews = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    @property
    def discount(self) -> dict:
        return {
            "percentage": float(self.discount_percentage or 0),
            "active": bool(self.discount_active),
            "startDate": self.discount_start,
            "endDate": self.discount_end,
            "name": self.discount_name or "",
        }
