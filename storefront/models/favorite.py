from sqlalchemy import Column, DateTime, String, UniqueConstraint, func
from .base import Base


class Favorite(Base):
    __tablename__ = "favorite"
    __table_args__ = (UniqueConstraint("user_id", "product_id", name="uq_favorite_user_product"),)

    id = Column(String(36), primary_key=True)
    user_id = Column(String(128), nullable=False, index=True)
    product_id = Column(String(36), nullable=False)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
