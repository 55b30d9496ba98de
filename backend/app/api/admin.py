from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from backend.app.api.deps import get_session, commit_or_retry_later
from backend.app.core.auth import require_roles
from backend.app.core.constants import ROLE_ADMIN, VALID_ORDER_STATUSES
from backend.app.core.exceptions import ServiceError
from backend.app.core.logging import get_logger
from backend.app.schemas import AssignDeliveryRequest, LocationCreate, ZoneCreate, ZoneUpdate
from backend.app.services.deliveries import DeliveryService
from backend.app.services.delivery_zones import DeliveryZoneService
from backend.app.services.notifications import notify_delivery_assigned, notify_order_status_update
from backend.app.services.orders import OrderService

router = APIRouter()
logger = get_logger(__name__)

# Applied to the whole router in main.py
require_admin = require_roles(ROLE_ADMIN)


def _handle_service_error(e: ServiceError):
    """Convert service exceptions to HTTP exceptions."""
    raise HTTPException(status_code=e.status_code, detail=e.message)


# ============================================
# ORDERS
# ============================================

@router.get("/orders")
async def list_orders(
    status: Optional[str] = Query(None),
    session: AsyncSession = Depends(get_session),
):
    """All orders, newest first, optionally filtered by status."""
    if status is not None and status not in VALID_ORDER_STATUSES:
        raise HTTPException(status_code=422, detail=f"Unknown order status: {status}")
    return await OrderService(session).get_all_orders(status)


@router.patch("/orders/{order_id}/assign")
async def assign_delivery(
    order_id: int,
    data: AssignDeliveryRequest,
    session: AsyncSession = Depends(get_session),
):
    """Hand an order to a delivery staff member (or move it to another one before pickup)."""
    try:
        result = await DeliveryService(session).assign_delivery(order_id, data.delivery_person_id)
        await commit_or_retry_later(session)
    except ServiceError as e:
        await session.rollback()
        logger.warning(
            "Delivery assignment rejected",
            order_pk=order_id,
            delivery_person_id=data.delivery_person_id,
            error=e.message,
        )
        _handle_service_error(e)

    order, delivery = result["order"], result["delivery"]
    await notify_delivery_assigned(delivery["delivery_person_id"], order["order_id"], delivery["id"])
    await notify_order_status_update(order["user_id"], order["order_id"], order["status"])
    return result


# ============================================
# DELIVERY ZONES
# ============================================

@router.get("/delivery-zones")
async def list_zones(session: AsyncSession = Depends(get_session)):
    """All zones, inactive included, in matching order."""
    return await DeliveryZoneService(session).get_zones()


@router.post("/delivery-zones", status_code=201)
async def create_zone(data: ZoneCreate, session: AsyncSession = Depends(get_session)):
    try:
        zone = await DeliveryZoneService(session).create_zone(data.model_dump())
        await commit_or_retry_later(session)
    except ServiceError as e:
        await session.rollback()
        _handle_service_error(e)
    logger.info("Delivery zone created", zone_id=zone["id"], name=zone["name"])
    return zone


@router.put("/delivery-zones/{zone_id}")
async def update_zone(zone_id: int, data: ZoneUpdate, session: AsyncSession = Depends(get_session)):
    try:
        zone = await DeliveryZoneService(session).update_zone(zone_id, data.model_dump(exclude_unset=True))
        await commit_or_retry_later(session)
    except ServiceError as e:
        await session.rollback()
        _handle_service_error(e)
    logger.info("Delivery zone updated", zone_id=zone_id)
    return zone


@router.patch("/delivery-zones/{zone_id}/toggle-status")
async def toggle_zone(zone_id: int, session: AsyncSession = Depends(get_session)):
    """Activate or deactivate a zone; takes effect on the next checkout."""
    try:
        result = await DeliveryZoneService(session).toggle_zone(zone_id)
        await commit_or_retry_later(session)
    except ServiceError as e:
        await session.rollback()
        _handle_service_error(e)
    logger.info("Delivery zone toggled", zone_id=zone_id, is_active=result["is_active"])
    return result


# ============================================
# DELIVERY LOCATIONS
# ============================================

@router.get("/delivery-locations")
async def list_locations(session: AsyncSession = Depends(get_session)):
    return await DeliveryZoneService(session).get_locations(active_only=False)


@router.post("/delivery-locations", status_code=201)
async def create_location(data: LocationCreate, session: AsyncSession = Depends(get_session)):
    try:
        location = await DeliveryZoneService(session).create_location(data.model_dump())
        await commit_or_retry_later(session)
    except ServiceError as e:
        await session.rollback()
        _handle_service_error(e)
    logger.info("Delivery location created", location_id=location["id"], code=location["code"])
    return location


@router.patch("/delivery-locations/{location_id}/toggle-status")
async def toggle_location(location_id: int, session: AsyncSession = Depends(get_session)):
    try:
        result = await DeliveryZoneService(session).toggle_location(location_id)
        await commit_or_retry_later(session)
    except ServiceError as e:
        await session.rollback()
        _handle_service_error(e)
    logger.info("Delivery location toggled", location_id=location_id, is_active=result["is_active"])
    return result
