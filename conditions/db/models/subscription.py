"""
Subscription Model - (recipient, massif, platform) with one flag per content type
"""
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Integer, String, UniqueConstraint, Index

from conditions.db.database import Base


class Subscription(Base):
    __tablename__ = "bra_subscriptions"

    id = Column(Integer, primary_key=True, index=True)
    recipient = Column(String(50), nullable=False)
    massif = Column(Integer, nullable=False)
    platform = Column(String(20), nullable=False)

    bulletin = Column(Boolean, nullable=False, default=True)
    snow_report = Column(Boolean, nullable=False, default=False)
    fresh_snow = Column(Boolean, nullable=False, default=False)
    weather = Column(Boolean, nullable=False, default=False)
    last_7_days = Column(Boolean, nullable=False, default=False)
    rose_pentes = Column(Boolean, nullable=False, default=False)
    montagne_risques = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("recipient", "massif", "platform", name="uq_bra_subscriptions_recipient_massif_platform"),
        Index("ix_bra_subscriptions_massif_platform", "massif", "platform"),
    )
