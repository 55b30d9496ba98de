"""Delivery staff endpoints: task lists, transit and the code handshake."""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.api.deps import get_session, commit_or_retry_later
from backend.app.core.auth import require_roles
from backend.app.core.constants import ROLE_DELIVERY_STAFF
from backend.app.core.exceptions import ServiceError
from backend.app.core.limiter import limiter
from backend.app.core.logging import get_logger
from backend.app.core.settings import get_settings
from backend.app.models.user import User
from backend.app.schemas import FailDeliveryRequest, VerifyHandshakeRequest
from backend.app.services.deliveries import DeliveryService
from backend.app.services.notifications import notify_order_status_update

router = APIRouter()
logger = get_logger(__name__)

require_staff = require_roles(ROLE_DELIVERY_STAFF)


def _handle_service_error(e: ServiceError):
    """Convert service exceptions to HTTP exceptions."""
    raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/assigned")
async def get_assigned_tasks(
    limit: Optional[int] = Query(None),
    session: AsyncSession = Depends(get_session),
    staff: User = Depends(require_staff),
):
    """Active tasks of the caller, newest assignment first."""
    return await DeliveryService(session).get_assigned(staff.id, limit)


@router.get("/history")
async def get_task_history(
    page: int = Query(1, ge=1),
    session: AsyncSession = Depends(get_session),
    staff: User = Depends(require_staff),
):
    return await DeliveryService(session).get_history(staff.id, page)


@router.patch("/{delivery_id}/start")
async def start_delivery(
    delivery_id: int,
    session: AsyncSession = Depends(get_session),
    staff: User = Depends(require_staff),
):
    """Pick up the order: assigned -> in_transit, order -> out_for_delivery."""
    try:
        result = await DeliveryService(session).start_delivery(delivery_id, staff.id)
        await commit_or_retry_later(session)
    except ServiceError as e:
        await session.rollback()
        logger.warning("Start delivery rejected", delivery_id=delivery_id, staff_id=staff.id, error=e.message)
        _handle_service_error(e)

    order = result["order"]
    await notify_order_status_update(order["user_id"], order["order_id"], order["status"])
    return result


@router.patch("/{delivery_id}/fail")
async def fail_delivery(
    delivery_id: int,
    data: FailDeliveryRequest,
    session: AsyncSession = Depends(get_session),
    staff: User = Depends(require_staff),
):
    """Report that the hand-off could not happen; an admin follows up."""
    try:
        result = await DeliveryService(session).fail_delivery(delivery_id, staff.id, data.reason)
        await commit_or_retry_later(session)
    except ServiceError as e:
        await session.rollback()
        logger.warning("Fail delivery rejected", delivery_id=delivery_id, staff_id=staff.id, error=e.message)
        _handle_service_error(e)
    return result


@router.post("/verify")
@limiter.limit(get_settings().DELIVERY_VERIFY_RATE_LIMIT)
async def verify_handshake(
    request: Request,
    data: VerifyHandshakeRequest,
    session: AsyncSession = Depends(get_session),
    staff: User = Depends(require_staff),
):
    """
    Confirm delivery with the code the customer shows at the door.

    Order and delivery are marked delivered together; of two simultaneous
    submissions only one succeeds.
    """
    try:
        result = await DeliveryService(session).verify_handshake(data.order_id, data.delivery_code, staff.id)
        await commit_or_retry_later(session)
    except ServiceError as e:
        await session.rollback()
        _handle_service_error(e)

    order = result["order"]
    await notify_order_status_update(order["user_id"], order["order_id"], order["status"], delivered_by=staff.id)
    return {
        "message": "Delivery confirmed.",
        "order_id": order["order_id"],
        "status": order["status"],
        "delivery_status": order["delivery_status"],
        "payment_status": order["payment_status"],
        "delivered_at": order["delivered_at"],
        "delivered_by": order["delivered_by"],
        "delivery": result["delivery"],
    }
