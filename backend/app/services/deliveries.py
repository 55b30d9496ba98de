# backend/app/services/deliveries.py
"""
Delivery state machine.

    order:     pending -> processing -> out_for_delivery -> delivered
    delivery:  (none)  -> assigned   -> in_transit       -> delivered
                                  \\-> failed (manual follow-up)

Every transition locks the rows it reads and writes the new status with a
compare-and-swap UPDATE, so repeated or concurrent calls cannot apply the
same transition twice. Methods flush only; the router commits, which makes
the order and delivery writes of one transition a single transaction.
"""
import hmac
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.constants import (
    ACTIVE_DELIVERY_STATUSES,
    ASSIGNABLE_ORDER_STATUSES,
    DEFAULT_TASK_LIMIT,
    DELIVERY_ASSIGNED,
    DELIVERY_DELIVERED,
    DELIVERY_FAILED,
    DELIVERY_IN_TRANSIT,
    DELIVERY_STATUS_DELIVERED,
    DELIVERY_STATUS_OUT_FOR_DELIVERY,
    DELIVERY_STATUS_PENDING,
    HISTORY_PAGE_SIZE,
    MAX_TASK_LIMIT,
    ORDER_CANCELLED,
    ORDER_DELIVERED,
    ORDER_OUT_FOR_DELIVERY,
    ORDER_PROCESSING,
    PAYMENT_COMPLETED,
    TERMINAL_ORDER_STATUSES,
)
from backend.app.core.exceptions import ServiceError
from backend.app.core.logging import get_logger
from backend.app.core.metrics import (
    deliveries_started_total,
    deliveries_verified_total,
    delivery_verification_failures_total,
)
from backend.app.models.delivery import Delivery
from backend.app.models.order import Order
from backend.app.models.user import User
from backend.app.services.orders import OrderNotFoundError, delivery_to_dict, order_to_dict

logger = get_logger(__name__)


class DeliveryServiceError(ServiceError):
    """Base exception for delivery state machine errors."""


class DeliveryNotFoundError(DeliveryServiceError):
    def __init__(self, delivery_id: int):
        super().__init__("Delivery task not found.", 404)
        self.delivery_id = delivery_id


class DeliveryAccessDeniedError(DeliveryServiceError):
    def __init__(self, delivery_id: int):
        super().__init__("You are not assigned to this delivery task.", 403)
        self.delivery_id = delivery_id


class InvalidTransitionError(DeliveryServiceError):
    def __init__(self, message: str):
        super().__init__(message, 422)


class InvalidStaffError(DeliveryServiceError):
    def __init__(self, message: str):
        super().__init__(message, 422)


class AlreadyDeliveredError(DeliveryServiceError):
    def __init__(self, order_ref: str):
        super().__init__("This order has already been delivered.", 422)
        self.order_ref = order_ref


class OrderCancelledError(DeliveryServiceError):
    def __init__(self, order_ref: str):
        super().__init__("This order was cancelled and cannot be verified.", 422)
        self.order_ref = order_ref


class InvalidDeliveryCodeError(DeliveryServiceError):
    # Deliberately says nothing about the expected code
    def __init__(self):
        super().__init__("Invalid delivery code.", 422)


def _clamp_limit(limit: Optional[int]) -> int:
    if limit is None:
        return DEFAULT_TASK_LIMIT
    return max(1, min(int(limit), MAX_TASK_LIMIT))


class DeliveryService:
    """Service class for the assignment/transit/handshake lifecycle."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _lock_order(self, *criteria) -> Optional[Order]:
        """Load an order with a row lock, discarding any stale copy in the identity map."""
        result = await self.session.execute(
            select(Order)
            .where(*criteria)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _lock_delivery(self, *criteria) -> Optional[Delivery]:
        result = await self.session.execute(
            select(Delivery)
            .where(*criteria)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    # --- Assign (admin) ---

    async def assign_delivery(self, order_pk: int, delivery_person_id: int) -> Dict[str, Any]:
        """
        Assign an order to a delivery staff member.

        Creates the Delivery record, or re-points a delivery that has not
        been started yet. Order moves to processing.
        Caller must commit the session after this returns.
        """
        order = await self._lock_order(Order.id == order_pk)
        if order is None:
            raise OrderNotFoundError(order_pk)
        if order.status not in ASSIGNABLE_ORDER_STATUSES:
            raise InvalidTransitionError("This order can no longer be assigned.")

        staff = await self.session.get(User, delivery_person_id)
        if staff is None or not staff.is_delivery_staff():
            raise InvalidStaffError("Selected user is not delivery staff.")
        if not staff.is_active:
            raise InvalidStaffError("Selected delivery staff account is inactive.")

        now = datetime.utcnow()
        delivery = await self._lock_delivery(Delivery.order_id == order.id)
        if delivery is None:
            delivery = Delivery(
                order_id=order.id,
                delivery_person_id=staff.id,
                collector_phone=order.customer_phone,
                status=DELIVERY_ASSIGNED,
                assigned_at=now,
            )
            self.session.add(delivery)
        elif delivery.status == DELIVERY_ASSIGNED:
            delivery.delivery_person_id = staff.id
            delivery.collector_phone = order.customer_phone
            delivery.assigned_at = now
        else:
            raise InvalidTransitionError(
                f"Delivery is already {delivery.status.replace('_', ' ')} and cannot be reassigned."
            )

        order.status = ORDER_PROCESSING
        order.delivery_status = DELIVERY_STATUS_PENDING
        order.delivered_at = None
        order.delivered_by = None
        await self.session.flush()

        logger.info(
            "Delivery assigned",
            order_id=order.order_id,
            delivery_id=delivery.id,
            delivery_person_id=staff.id,
        )
        return {"order": order_to_dict(order, delivery), "delivery": delivery_to_dict(delivery)}

    # --- Start (staff) ---

    async def start_delivery(self, delivery_id: int, staff_id: int) -> Dict[str, Any]:
        """
        Move an assigned delivery to in_transit and its order to out_for_delivery.
        Rejected when repeated: only an ``assigned`` delivery can be started.
        Caller must commit the session after this returns.
        """
        delivery = await self._lock_delivery(Delivery.id == delivery_id)
        if delivery is None:
            raise DeliveryNotFoundError(delivery_id)
        if delivery.delivery_person_id != staff_id:
            raise DeliveryAccessDeniedError(delivery_id)
        if delivery.status != DELIVERY_ASSIGNED:
            raise InvalidTransitionError("Delivery task has already been started or completed.")

        order = await self._lock_order(Order.id == delivery.order_id)
        if order is None or order.status in TERMINAL_ORDER_STATUSES:
            raise InvalidTransitionError("Order cannot be moved to transit from its current status.")

        swapped = await self.session.execute(
            update(Delivery)
            .where(Delivery.id == delivery.id, Delivery.status == DELIVERY_ASSIGNED)
            .values(status=DELIVERY_IN_TRANSIT, picked_up_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        if swapped.rowcount != 1:
            raise InvalidTransitionError("Delivery task has already been started or completed.")

        await self.session.execute(
            update(Order)
            .where(Order.id == order.id)
            .values(status=ORDER_OUT_FOR_DELIVERY, delivery_status=DELIVERY_STATUS_OUT_FOR_DELIVERY)
            .execution_options(synchronize_session=False)
        )
        await self.session.refresh(delivery)
        await self.session.refresh(order)

        deliveries_started_total.inc()
        logger.info("Delivery started", order_id=order.order_id, delivery_id=delivery.id, staff_id=staff_id)
        return {"order": order_to_dict(order, delivery), "delivery": delivery_to_dict(delivery)}

    # --- Report failed attempt (staff) ---

    async def fail_delivery(self, delivery_id: int, staff_id: int, reason: Optional[str] = None) -> Dict[str, Any]:
        """
        Close an active delivery as failed. The order keeps its status and
        needs manual follow-up by an admin.
        Caller must commit the session after this returns.
        """
        delivery = await self._lock_delivery(Delivery.id == delivery_id)
        if delivery is None:
            raise DeliveryNotFoundError(delivery_id)
        if delivery.delivery_person_id != staff_id:
            raise DeliveryAccessDeniedError(delivery_id)

        swapped = await self.session.execute(
            update(Delivery)
            .where(Delivery.id == delivery.id, Delivery.status.in_(ACTIVE_DELIVERY_STATUSES))
            .values(status=DELIVERY_FAILED, notes=reason)
            .execution_options(synchronize_session=False)
        )
        if swapped.rowcount != 1:
            raise InvalidTransitionError("Delivery task is already closed.")
        await self.session.refresh(delivery)

        logger.warning("Delivery attempt failed", delivery_id=delivery.id, staff_id=staff_id, reason=reason)
        return {"delivery": delivery_to_dict(delivery)}

    # --- Handshake (staff) ---

    async def verify_handshake(self, order_ref: str, delivery_code: str, staff_id: int) -> Dict[str, Any]:
        """
        Confirm hand-off with the customer's 4-digit code.

        Checks run in order: order exists, not already delivered, not
        cancelled, delivery started, code matches. Nothing is written unless
        the code matches; then order and delivery are updated together.
        The order status write is a compare-and-swap on ``status != delivered``
        so of two concurrent correct submissions only one succeeds and the
        other gets AlreadyDeliveredError.
        Caller must commit the session after this returns.
        """
        normalized = order_ref.strip().upper()
        order = await self._lock_order(Order.order_id == normalized)
        if order is None:
            self._reject("not_found", normalized, staff_id)
            raise OrderNotFoundError(normalized)

        if order.status == ORDER_DELIVERED or order.delivery_status == DELIVERY_STATUS_DELIVERED:
            self._reject("already_delivered", normalized, staff_id)
            raise AlreadyDeliveredError(normalized)
        if order.status == ORDER_CANCELLED:
            self._reject("cancelled", normalized, staff_id)
            raise OrderCancelledError(normalized)

        delivery = await self._lock_delivery(Delivery.order_id == order.id)
        if delivery is None:
            self._reject("not_assigned", normalized, staff_id)
            raise InvalidTransitionError("Order has not been assigned to delivery staff yet.")
        if delivery.status != DELIVERY_IN_TRANSIT:
            self._reject("not_in_transit", normalized, staff_id)
            raise InvalidTransitionError("Please start delivery before confirming completion.")

        if not hmac.compare_digest(str(order.delivery_code), str(delivery_code)):
            self._reject("invalid_code", normalized, staff_id)
            raise InvalidDeliveryCodeError()

        now = datetime.utcnow()
        swapped = await self.session.execute(
            update(Order)
            .where(Order.id == order.id, Order.status != ORDER_DELIVERED)
            .values(
                status=ORDER_DELIVERED,
                delivery_status=DELIVERY_STATUS_DELIVERED,
                payment_status=PAYMENT_COMPLETED,
                delivered_at=now,
                delivered_by=staff_id,
            )
            .execution_options(synchronize_session=False)
        )
        if swapped.rowcount != 1:
            self._reject("already_delivered", normalized, staff_id)
            raise AlreadyDeliveredError(normalized)

        delivery_swapped = await self.session.execute(
            update(Delivery)
            .where(Delivery.id == delivery.id, Delivery.status == DELIVERY_IN_TRANSIT)
            .values(
                status=DELIVERY_DELIVERED,
                delivered_at=now,
                collector_phone=order.customer_phone or delivery.collector_phone,
            )
            .execution_options(synchronize_session=False)
        )
        if delivery_swapped.rowcount != 1:
            # The order row was already swapped; the router rolls both back
            raise InvalidTransitionError("Delivery task has already been started or completed.")

        await self.session.refresh(order)
        await self.session.refresh(delivery)

        deliveries_verified_total.inc()
        logger.info("Delivery verified", order_id=order.order_id, delivery_id=delivery.id, staff_id=staff_id)
        return {"order": order_to_dict(order, delivery), "delivery": delivery_to_dict(delivery)}

    @staticmethod
    def _reject(reason: str, order_ref: str, staff_id: int) -> None:
        delivery_verification_failures_total.labels(reason=reason).inc()
        logger.warning("Delivery verification failed", reason=reason, order_id=order_ref, staff_id=staff_id)

    # --- Staff task lists ---

    async def get_assigned(self, staff_id: int, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Active tasks (assigned or in transit) for a staff member, newest assignment first."""
        result = await self.session.execute(
            select(Delivery, Order)
            .join(Order, Order.id == Delivery.order_id)
            .where(
                Delivery.delivery_person_id == staff_id,
                Delivery.status.in_(ACTIVE_DELIVERY_STATUSES),
            )
            .order_by(Delivery.assigned_at.desc(), Delivery.id.desc())
            .limit(_clamp_limit(limit))
        )
        return [{**delivery_to_dict(d), "order": order_to_dict(o)} for d, o in result.all()]

    async def get_history(self, staff_id: int, page: int = 1) -> Dict[str, Any]:
        """All tasks of a staff member, paginated, newest first."""
        page = max(1, page)
        result = await self.session.execute(
            select(Delivery, Order)
            .join(Order, Order.id == Delivery.order_id)
            .where(Delivery.delivery_person_id == staff_id)
            .order_by(Delivery.created_at.desc(), Delivery.id.desc())
            .offset((page - 1) * HISTORY_PAGE_SIZE)
            .limit(HISTORY_PAGE_SIZE + 1)
        )
        rows = result.all()
        return {
            "page": page,
            "per_page": HISTORY_PAGE_SIZE,
            "has_more": len(rows) > HISTORY_PAGE_SIZE,
            "items": [{**delivery_to_dict(d), "order": order_to_dict(o)} for d, o in rows[:HISTORY_PAGE_SIZE]],
        }
