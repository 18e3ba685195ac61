"""
Recipient Model - every chat user who ever subscribed
"""
from datetime import datetime

from sqlalchemy import Column, Integer, String, DateTime, UniqueConstraint

from conditions.db.database import Base


class Recipient(Base):
    __tablename__ = "recipients"

    id = Column(Integer, primary_key=True, index=True)
    number = Column(String(50), nullable=False)  # phone number or Telegram chat id
    platform = Column(String(20), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("number", "platform", name="uq_recipients_number_platform"),
    )
