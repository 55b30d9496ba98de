from sqlalchemy import String, Boolean, Index, JSON, Float, Text, DateTime
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime
from typing import Optional, List, Dict
from backend.app.core.base import Base


class DeliveryLocation(Base):
    """Pre-approved drop-off point (campus gate, hostel block) bounded by a polygon."""
    __tablename__ = 'delivery_locations'

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255))
    code: Mapped[str] = mapped_column(String(50), unique=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    polygon_coords: Mapped[List[Dict[str, float]]] = mapped_column(JSON())
    # Representative point shown to staff; polygon centroid is used when absent
    latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index('ix_delivery_locations_is_active', 'is_active'),
    )
