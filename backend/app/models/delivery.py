from sqlalchemy import String, ForeignKey, DateTime, Text, Index
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime
from typing import Optional
from backend.app.core.base import Base

class Delivery(Base):
    __tablename__ = 'deliveries'

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(ForeignKey('orders.id', ondelete='CASCADE'), unique=True)
    delivery_person_id: Mapped[int] = mapped_column(ForeignKey('users.id'))
    collector_phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    # assigned -> in_transit -> delivered, or failed
    status: Mapped[str] = mapped_column(String(20), default='assigned')
    assigned_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    picked_up_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    delivered_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        # Staff dashboard: my active tasks, newest assignment first
        Index('ix_deliveries_person_status_assigned', 'delivery_person_id', 'status', 'assigned_at'),
    )
