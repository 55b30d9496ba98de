from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.api.deps import get_session, commit_or_retry_later
from backend.app.core.auth import require_roles
from backend.app.core.constants import ROLE_CUSTOMER
from backend.app.core.logging import get_logger
from backend.app.models.user import User
from backend.app.services.notifications import notify_order_status_update
from backend.app.services.orders import OrderService, OrderServiceError
from backend.app.core.exceptions import TransientStorageError

router = APIRouter()
logger = get_logger(__name__)


def _handle_service_error(e: OrderServiceError):
    """Convert service exceptions to HTTP exceptions."""
    raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("")
async def list_my_orders(
    session: AsyncSession = Depends(get_session),
    user: User = Depends(require_roles(ROLE_CUSTOMER)),
):
    return await OrderService(session).get_customer_orders(user.id)


@router.get("/{order_id}")
async def get_my_order(
    order_id: str,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(require_roles(ROLE_CUSTOMER)),
):
    try:
        return await OrderService(session).get_customer_order(user.id, order_id)
    except OrderServiceError as e:
        _handle_service_error(e)


@router.patch("/{order_id}/cancel")
async def cancel_order(
    order_id: str,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(require_roles(ROLE_CUSTOMER)),
):
    """Cancel an order that has not left for delivery yet."""
    try:
        result = await OrderService(session).cancel_order(user.id, order_id)
        await commit_or_retry_later(session)
    except (OrderServiceError, TransientStorageError) as e:
        await session.rollback()
        logger.warning("Order cancel rejected", order_id=order_id, user_id=user.id, error=e.message)
        _handle_service_error(e)

    await notify_order_status_update(user.id, result["order_id"], result["status"])
    return result
