from sqlalchemy import Column, DateTime, Integer, String, Text, UniqueConstraint, func
from .base import Base


class Review(Base):
    __tablename__ = "review"
    __table_args__ = (UniqueConstraint("product_id", "user_id", name="uq_review_product_user"),)

    id = Column(String(36), primary_key=True)
    product_id = Column(String(36), nullable=False, index=True)
    user_id = Column(String(128), nullable=False)
    name = Column(String(128), nullable=False, default="")
    rating = Column(Integer, nullable=False)  # 1..5
    comment = Column(Text, nullable=False)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
