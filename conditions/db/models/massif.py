"""
Massif Model - reference data for the mountain regions bulletins are issued for
"""
from sqlalchemy import Column, Integer, String, JSON

from conditions.db.database import Base


class MassifRow(Base):
    """One Météo-France massif; code is the upstream id-massif"""

    __tablename__ = "massifs"

    code = Column(Integer, primary_key=True, autoincrement=False)
    name = Column(String(100), nullable=False)
    mountain = Column(String(100), nullable=True)

    # GeoJSON Polygon / MultiPolygon geometry object
    geometry = Column(JSON, nullable=True)
