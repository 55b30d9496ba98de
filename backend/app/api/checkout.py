from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.api.deps import get_session, commit_or_retry_later
from backend.app.core.auth import require_roles
from backend.app.core.constants import ROLE_CUSTOMER
from backend.app.core.exceptions import ServiceError
from backend.app.core.logging import get_logger
from backend.app.core.settings import get_settings
from backend.app.models.user import User
from backend.app.schemas import CheckoutRequest
from backend.app.services.geofence import CheckoutGeofence, GeofenceResolver
from backend.app.services.notifications import notify_order_status_update
from backend.app.services.orders import OrderService, order_to_dict

router = APIRouter()
logger = get_logger(__name__)


def _handle_service_error(e: ServiceError):
    """Convert service exceptions to HTTP exceptions."""
    raise HTTPException(status_code=e.status_code, detail=e.message)


async def get_checkout_geofence(session: AsyncSession = Depends(get_session)) -> CheckoutGeofence:
    """Checkout gate configured from settings; overridable in tests."""
    settings = get_settings()
    return CheckoutGeofence(
        GeofenceResolver(session),
        allow_dev_bypass=settings.geofence_bypass_enabled,
        max_accuracy_meters=settings.GPS_MAX_ACCURACY_METERS,
    )


@router.post("", status_code=201)
async def checkout(
    data: CheckoutRequest,
    session: AsyncSession = Depends(get_session),
    geofence: CheckoutGeofence = Depends(get_checkout_geofence),
    user: User = Depends(require_roles(ROLE_CUSTOMER)),
):
    """
    Place an order.

    The delivery coordinate must fall inside an active zone; the zone's fee
    is added to the subtotal. The response carries the 4-digit delivery code
    the customer hands to the courier.
    """
    logger.info(
        "Checkout requested",
        user_id=user.id,
        delivery_location_id=data.delivery_location_id,
        subtotal=float(data.subtotal),
    )
    try:
        decision = await geofence.check(
            data.latitude,
            data.longitude,
            accuracy=data.accuracy,
            delivery_location_id=data.delivery_location_id,
        )
        order = await OrderService(session).create_order(
            user_id=user.id,
            decision=decision,
            subtotal=data.subtotal,
            payment_method=data.payment_method,
            customer_name=data.customer_name,
            customer_phone=data.customer_phone,
            customer_address=data.customer_address,
            delivery_location_id=data.delivery_location_id,
            notes=data.notes,
        )
        await commit_or_retry_later(session)
    except ServiceError as e:
        await session.rollback()
        logger.warning("Checkout rejected", user_id=user.id, error=e.message, error_code=e.status_code)
        _handle_service_error(e)

    logger.info(
        "Order created",
        order_id=order.order_id,
        user_id=user.id,
        zone=decision.zone.name if decision.zone else None,
        bypassed=decision.bypassed,
    )
    await notify_order_status_update(user.id, order.order_id, order.status)
    return {
        "order": order_to_dict(order, include_code=True),
        "geofence": decision.to_dict(),
    }
