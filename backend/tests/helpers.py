"""Data builders and auth helpers shared by the test modules."""
import itertools
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.auth import create_access_token
from backend.app.models.delivery import Delivery
from backend.app.models.delivery_location import DeliveryLocation
from backend.app.models.delivery_zone import DeliveryZone
from backend.app.models.order import Order
from backend.app.models.user import User

# Square around the main campus (lat/lng degrees)
CAMPUS_POLYGON = [
    {"lat": -11.4200, "lng": 33.9900},
    {"lat": -11.4200, "lng": 34.0100},
    {"lat": -11.4000, "lng": 34.0100},
    {"lat": -11.4000, "lng": 33.9900},
]
INSIDE_CAMPUS = (-11.4100, 34.0000)
# Roughly 20 km north of campus
FAR_AWAY = (-11.2300, 34.0000)

_seq = itertools.count(1)


def auth_header(user: User) -> dict:
    """Bearer header for a user, signed like the auth service would."""
    return {"Authorization": f"Bearer {create_access_token(user.id, user.role)}"}


async def create_user(
    session: AsyncSession,
    name: str,
    role: str = "customer",
    phone: Optional[str] = None,
    is_active: bool = True,
    user_id: Optional[int] = None,
) -> User:
    user = User(
        name=name,
        email=f"user{next(_seq)}@campus.test",
        phone=phone,
        role=role,
        is_active=is_active,
    )
    if user_id is not None:
        user.id = user_id
    session.add(user)
    await session.commit()
    await session.refresh(user)
    return user


async def create_zone(
    session: AsyncSession,
    name: str,
    polygon: Optional[list] = CAMPUS_POLYGON,
    center: Optional[tuple] = None,
    radius_meters: Optional[int] = None,
    delivery_fee: str = "500.00",
    priority: int = 0,
    is_active: bool = True,
) -> DeliveryZone:
    zone = DeliveryZone(
        name=name,
        polygon_coords=polygon,
        center_latitude=center[0] if center else None,
        center_longitude=center[1] if center else None,
        radius_meters=radius_meters,
        delivery_fee=Decimal(delivery_fee),
        priority=priority,
        is_active=is_active,
    )
    session.add(zone)
    await session.commit()
    await session.refresh(zone)
    return zone


async def create_location(
    session: AsyncSession,
    name: str,
    code: str,
    polygon: list = CAMPUS_POLYGON,
    is_active: bool = True,
) -> DeliveryLocation:
    location = DeliveryLocation(
        name=name,
        code=code,
        polygon_coords=polygon,
        is_active=is_active,
    )
    session.add(location)
    await session.commit()
    await session.refresh(location)
    return location


async def create_order(
    session: AsyncSession,
    user: User,
    order_id: Optional[str] = None,
    delivery_code: str = "1234",
    status: str = "pending",
    delivery_status: str = "pending",
    subtotal: str = "2500.00",
    delivery_fee: str = "500.00",
) -> Order:
    order = Order(
        order_id=order_id or f"CM-TEST-{next(_seq):06d}",
        user_id=user.id,
        subtotal=Decimal(subtotal),
        delivery_fee=Decimal(delivery_fee),
        total_amount=Decimal(subtotal) + Decimal(delivery_fee),
        delivery_code=delivery_code,
        status=status,
        delivery_status=delivery_status,
        payment_method="cash",
        payment_status="pending",
        customer_name=user.name,
        customer_phone=user.phone or "+265990000000",
        customer_address="Hostel B, Room 12",
    )
    session.add(order)
    await session.commit()
    await session.refresh(order)
    return order


async def create_delivery(
    session: AsyncSession,
    order: Order,
    staff: User,
    status: str = "assigned",
) -> Delivery:
    delivery = Delivery(
        order_id=order.id,
        delivery_person_id=staff.id,
        collector_phone=order.customer_phone,
        status=status,
        assigned_at=datetime.utcnow(),
        picked_up_at=datetime.utcnow() if status != "assigned" else None,
    )
    session.add(delivery)
    await session.commit()
    await session.refresh(delivery)
    return delivery


async def out_for_delivery_order(
    session: AsyncSession,
    customer: User,
    staff: User,
    order_id: Optional[str] = None,
    delivery_code: str = "1234",
):
    """An order already picked up by ``staff``: ready for the handshake."""
    order = await create_order(
        session,
        customer,
        order_id=order_id,
        delivery_code=delivery_code,
        status="out_for_delivery",
        delivery_status="out_for_delivery",
    )
    delivery = await create_delivery(session, order, staff, status="in_transit")
    return order, delivery
