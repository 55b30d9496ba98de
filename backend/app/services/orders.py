# backend/app/services/orders.py
"""
Order service - checkout order creation, cancellation and customer views.
"""
import secrets
from datetime import datetime
from decimal import Decimal
from typing import Optional, List, Dict, Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.constants import (
    CANCELLABLE_ORDER_STATUSES,
    DELIVERY_ASSIGNED,
    DELIVERY_CODE_LENGTH,
    DELIVERY_FAILED,
    DELIVERY_STATUS_PENDING,
    ORDER_CANCELLED,
    ORDER_ID_PREFIX,
    ORDER_PENDING,
    PAYMENT_FAILED,
    PAYMENT_PENDING,
)
from backend.app.core.exceptions import ServiceError
from backend.app.core.logging import get_logger
from backend.app.core.metrics import orders_created_total
from backend.app.models.delivery import Delivery
from backend.app.models.order import Order
from backend.app.services.delivery_zones import get_active_location
from backend.app.services.geofence import ZONE_TYPE_ZONE, GeofenceDecision

logger = get_logger(__name__)

MAX_ORDER_ID_ATTEMPTS = 20


class OrderServiceError(ServiceError):
    """Base exception for order service errors."""


class OrderNotFoundError(OrderServiceError):
    def __init__(self, order_ref: Any):
        super().__init__("Order not found.", 404)
        self.order_ref = order_ref


class DeliveryLocationInvalidError(OrderServiceError):
    def __init__(self, location_id: int):
        super().__init__("The selected delivery location is invalid.", 422)
        self.location_id = location_id


class OrderNotCancellableError(OrderServiceError):
    def __init__(self, order_ref: str):
        super().__init__(
            "This order cannot be cancelled. Only pending or processing orders can be cancelled.",
            422,
        )
        self.order_ref = order_ref


def generate_delivery_code() -> str:
    """Random 4-digit code, 0000-9999. Codes may repeat across orders; lookups are always per order."""
    return f"{secrets.randbelow(10 ** DELIVERY_CODE_LENGTH):0{DELIVERY_CODE_LENGTH}d}"


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def order_to_dict(order: Order, delivery: Optional[Delivery] = None, include_code: bool = False) -> Dict[str, Any]:
    """
    Serialize an order.

    The delivery code is only included for the owning customer; staff must
    obtain it from the customer at the door.
    """
    data = {
        "id": order.id,
        "order_id": order.order_id,
        "user_id": order.user_id,
        "delivery_location_id": order.delivery_location_id,
        "delivery_zone_id": order.delivery_zone_id,
        "subtotal": float(order.subtotal) if order.subtotal is not None else 0.0,
        "delivery_fee": float(order.delivery_fee) if order.delivery_fee is not None else 0.0,
        "total_amount": float(order.total_amount) if order.total_amount is not None else 0.0,
        "status": order.status,
        "delivery_status": order.delivery_status,
        "payment_method": order.payment_method,
        "payment_status": order.payment_status,
        "customer_name": order.customer_name,
        "customer_phone": order.customer_phone,
        "customer_address": order.customer_address,
        "notes": order.notes,
        "delivered_at": _iso(order.delivered_at),
        "delivered_by": order.delivered_by,
        "created_at": _iso(order.created_at),
        "delivery": delivery_to_dict(delivery) if delivery else None,
    }
    if include_code:
        data["delivery_code"] = order.delivery_code
    return data


def delivery_to_dict(delivery: Delivery) -> Dict[str, Any]:
    return {
        "id": delivery.id,
        "order_id": delivery.order_id,
        "delivery_person_id": delivery.delivery_person_id,
        "collector_phone": delivery.collector_phone,
        "status": delivery.status,
        "assigned_at": _iso(delivery.assigned_at),
        "picked_up_at": _iso(delivery.picked_up_at),
        "delivered_at": _iso(delivery.delivered_at),
        "notes": delivery.notes,
    }


class OrderService:
    """Service class for order operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _generate_order_id(self) -> str:
        """External id like CM-20260301120000-042, unique across orders."""
        for _ in range(MAX_ORDER_ID_ATTEMPTS):
            candidate = (
                f"{ORDER_ID_PREFIX}-{datetime.utcnow():%Y%m%d%H%M%S}-"
                f"{secrets.randbelow(1000):03d}"
            )
            result = await self.session.execute(select(Order.id).where(Order.order_id == candidate))
            if result.scalar_one_or_none() is None:
                return candidate
        raise OrderServiceError("Unable to allocate an order number. Please try again.", 503)

    async def create_order(
        self,
        user_id: int,
        decision: GeofenceDecision,
        subtotal: Decimal,
        payment_method: str,
        customer_name: str,
        customer_phone: str,
        customer_address: str,
        delivery_location_id: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> Order:
        """
        Create a pending order for a checkout that passed the geofence.

        Args:
            user_id: Owning customer
            decision: Result of CheckoutGeofence.check (zone, fee, coordinates)
            subtotal: Cart total computed by the cart service
            payment_method: cash or mobile_money
            delivery_location_id: Selected drop-off point, if any

        Returns:
            Created Order object (flushed, not committed)

        Raises:
            DeliveryLocationInvalidError: Location missing or inactive
        """
        # Caller must commit the session after this returns.
        if delivery_location_id is not None:
            if await get_active_location(self.session, delivery_location_id) is None:
                raise DeliveryLocationInvalidError(delivery_location_id)

        delivery_fee = decision.delivery_fee
        order = Order(
            order_id=await self._generate_order_id(),
            user_id=user_id,
            delivery_location_id=delivery_location_id,
            delivery_zone_id=decision.zone.id if decision.zone and decision.zone.zone_type == ZONE_TYPE_ZONE else None,
            subtotal=subtotal,
            delivery_fee=delivery_fee,
            total_amount=subtotal + delivery_fee,
            delivery_code=generate_delivery_code(),
            status=ORDER_PENDING,
            delivery_status=DELIVERY_STATUS_PENDING,
            payment_method=payment_method,
            payment_status=PAYMENT_PENDING,
            customer_name=customer_name,
            customer_phone=customer_phone,
            customer_address=customer_address,
            notes=notes,
            latitude=decision.latitude,
            longitude=decision.longitude,
            accuracy=decision.accuracy,
        )
        self.session.add(order)
        await self.session.flush()

        orders_created_total.labels(zone=decision.zone.name if decision.zone else "bypass").inc()
        return order

    async def get_customer_orders(self, user_id: int) -> List[Dict[str, Any]]:
        """Orders of one customer, newest first, with their delivery records."""
        result = await self.session.execute(
            select(Order, Delivery)
            .outerjoin(Delivery, Delivery.order_id == Order.id)
            .where(Order.user_id == user_id)
            .order_by(Order.created_at.desc(), Order.id.desc())
        )
        return [order_to_dict(o, d, include_code=True) for o, d in result.all()]

    async def get_customer_order(self, user_id: int, order_ref: str) -> Dict[str, Any]:
        """One order by external id; other customers' orders are reported as not found."""
        result = await self.session.execute(
            select(Order, Delivery)
            .outerjoin(Delivery, Delivery.order_id == Order.id)
            .where(Order.order_id == order_ref.strip().upper(), Order.user_id == user_id)
        )
        row = result.one_or_none()
        if row is None:
            raise OrderNotFoundError(order_ref)
        return order_to_dict(row[0], row[1], include_code=True)

    async def get_all_orders(self, status: Optional[str] = None) -> List[Dict[str, Any]]:
        """Admin view: all orders with their deliveries. Delivery codes are not included."""
        query = (
            select(Order, Delivery)
            .outerjoin(Delivery, Delivery.order_id == Order.id)
            .order_by(Order.created_at.desc(), Order.id.desc())
        )
        if status:
            query = query.where(Order.status == status)
        result = await self.session.execute(query)
        return [order_to_dict(o, d) for o, d in result.all()]

    async def cancel_order(self, user_id: int, order_ref: str) -> Dict[str, Any]:
        """
        Cancel a pending or processing order owned by ``user_id``.
        An already assigned delivery is closed as failed.
        Caller must commit the session after this returns.
        """
        result = await self.session.execute(
            select(Order)
            .where(Order.order_id == order_ref.strip().upper(), Order.user_id == user_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        order = result.scalar_one_or_none()
        if order is None:
            raise OrderNotFoundError(order_ref)
        if order.status not in CANCELLABLE_ORDER_STATUSES:
            raise OrderNotCancellableError(order.order_id)

        swapped = await self.session.execute(
            update(Order)
            .where(Order.id == order.id, Order.status.in_(CANCELLABLE_ORDER_STATUSES))
            .values(status=ORDER_CANCELLED, payment_status=PAYMENT_FAILED)
            .execution_options(synchronize_session=False)
        )
        if swapped.rowcount != 1:
            raise OrderNotCancellableError(order.order_id)

        await self.session.execute(
            update(Delivery)
            .where(Delivery.order_id == order.id, Delivery.status == DELIVERY_ASSIGNED)
            .values(status=DELIVERY_FAILED, notes="Order cancelled by customer")
            .execution_options(synchronize_session=False)
        )
        await self.session.refresh(order)
        delivery = await self._get_delivery(order.id)
        if delivery is not None:
            await self.session.refresh(delivery)

        logger.info("Order cancelled", order_id=order.order_id, user_id=user_id)
        return order_to_dict(order, delivery, include_code=True)

    async def _get_delivery(self, order_pk: int) -> Optional[Delivery]:
        result = await self.session.execute(select(Delivery).where(Delivery.order_id == order_pk))
        return result.scalar_one_or_none()
