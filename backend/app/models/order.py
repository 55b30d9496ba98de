from sqlalchemy import String, ForeignKey, DateTime, DECIMAL, Text, Index, Float
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime
from typing import Optional
from backend.app.core.base import Base

class Order(Base):
    __tablename__ = 'orders'
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    # External identifier shown to customers and staff, e.g. CM-20260301120000-042
    order_id: Mapped[str] = mapped_column(String(50), unique=True)
    user_id: Mapped[int] = mapped_column(ForeignKey('users.id'))
    delivery_location_id: Mapped[Optional[int]] = mapped_column(ForeignKey('delivery_locations.id'), nullable=True)
    delivery_zone_id: Mapped[Optional[int]] = mapped_column(ForeignKey('delivery_zones.id'), nullable=True)
    subtotal: Mapped[float] = mapped_column(DECIMAL(10, 2))
    delivery_fee: Mapped[float] = mapped_column(DECIMAL(10, 2), default=0)
    total_amount: Mapped[float] = mapped_column(DECIMAL(10, 2))
    # 4-digit handshake secret, generated once at checkout
    delivery_code: Mapped[str] = mapped_column(String(4))
    status: Mapped[str] = mapped_column(String(30), default='pending')
    delivery_status: Mapped[str] = mapped_column(String(30), default='pending')
    payment_method: Mapped[str] = mapped_column(String(30))
    payment_status: Mapped[str] = mapped_column(String(30), default='pending')
    customer_name: Mapped[str] = mapped_column(String(255))
    customer_phone: Mapped[str] = mapped_column(String(20))
    customer_address: Mapped[str] = mapped_column(Text)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    # Checkout fix as reported by the customer's device
    latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    accuracy: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    delivered_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    delivered_by: Mapped[Optional[int]] = mapped_column(ForeignKey('users.id'), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index('ix_orders_user_id', 'user_id'),
        Index('ix_orders_status', 'status'),
        Index('ix_orders_created_at', 'created_at'),
        Index('ix_orders_user_created', 'user_id', 'created_at'),
    )
