"""
Bulletin Model - one stored BRA version per (massif, valid_from)
"""
from datetime import datetime

from sqlalchemy import Column, Integer, String, DateTime, Text, UniqueConstraint, Index

from conditions.db.database import Base


class Bulletin(Base):
    """Append-only; a later valid_from for the same massif is a newer version"""

    __tablename__ = "bras"

    id = Column(Integer, primary_key=True, index=True)
    massif = Column(Integer, nullable=False)
    filename = Column(String(255), nullable=False)
    public_url = Column(Text, nullable=False)
    valid_from = Column(DateTime, nullable=False)
    valid_to = Column(DateTime, nullable=False)
    risk_level = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("massif", "valid_from", name="uq_bras_massif_valid_from"),
        Index("ix_bras_massif_valid_from", "massif", "valid_from"),
    )
