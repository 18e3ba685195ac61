"""
Geocode Cache Model - saves paid geocoding calls for repeated place names
"""
from datetime import datetime

from sqlalchemy import Column, DateTime, Float, Integer, String

from conditions.db.database import Base


class GeocodeCacheEntry(Base):
    __tablename__ = "geocode_cache"

    query = Column(String(255), primary_key=True)  # normalized query text
    massif_code = Column(Integer, nullable=False)
    place_name = Column(String(255), nullable=True)
    lat = Column(Float, nullable=True)
    lng = Column(Float, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
