"""
Delivery Record Model - fact table: this recipient received this bulletin version
"""
from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, String, UniqueConstraint

from conditions.db.database import Base


class DeliveryRecord(Base):
    """Written right after a successful send; never updated or deleted"""

    __tablename__ = "deliveries_bras"

    id = Column(Integer, primary_key=True, index=True)
    recipient = Column(String(50), nullable=False)
    massif = Column(Integer, nullable=False)
    valid_from = Column(DateTime, nullable=False)  # bulletin version
    platform = Column(String(20), nullable=False)
    delivery_timestamp = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "recipient", "massif", "valid_from", "platform",
            name="uq_deliveries_bras_recipient_version_platform",
        ),
    )
