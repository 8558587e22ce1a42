from sqlalchemy import Column, DateTime, Integer, JSON, String
from .base import Base


class OtpEntry(Base):
    __tablename__ = "otp_entry"

    key = Column(String(320), primary_key=True)  # "<purpose>:<email>"
    code = Column(String(12), nullable=False)
    payload = Column(JSON, nullable=True)
    expires_at = Column(DateTime, nullable=False)
    attempts = Column(Integer, nullable=False, default=0)
