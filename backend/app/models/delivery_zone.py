from sqlalchemy import String, Integer, DECIMAL, Boolean, Index, JSON, Float, DateTime
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime
from typing import Optional, List, Dict
from backend.app.core.base import Base


class DeliveryZone(Base):
    """
    Priced service area. Either a radius around a centre point or a polygon.

    Zones are never deleted: orders keep referencing them, so operators
    deactivate instead.
    """
    __tablename__ = 'delivery_zones'

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(150))
    # Radius zone
    center_latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    center_longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    radius_meters: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    # Polygon zone: ordered vertices, e.g. [{"lat": -11.39, "lng": 34.02}, ...]
    polygon_coords: Mapped[Optional[List[Dict[str, float]]]] = mapped_column(JSON(), nullable=True)
    delivery_fee: Mapped[float] = mapped_column(DECIMAL(10, 2), default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    # Lower priority number = checked first (for overlapping zones)
    priority: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index('ix_delivery_zones_active_priority', 'is_active', 'priority'),
    )
