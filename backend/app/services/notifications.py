# backend/app/services/notifications.py
"""Order status events for customers and delivery staff, sent after commit."""
from typing import Optional, Dict, Any

import httpx

from backend.app.core.logging import get_logger
from backend.app.core.settings import get_settings

logger = get_logger(__name__)

STATUS_LABELS = {
    "pending": "Your order has been received.",
    "processing": "Your order is being prepared.",
    "out_for_delivery": "Your order is on its way. Have your delivery code ready.",
    "delivered": "Your order has been delivered.",
    "cancelled": "Your order was cancelled.",
}


async def _post_event(payload: Dict[str, Any]) -> bool:
    """Deliver one event to the configured webhook. Returns True if accepted."""
    url = get_settings().NOTIFY_WEBHOOK_URL
    if not url:
        return False
    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            r = await client.post(url, json=payload)
    except httpx.HTTPError as e:
        # The transition is already committed; a lost notification is not retried
        logger.warning("Notification webhook unreachable", event_type=payload.get("event"), error=str(e))
        return False
    if not r.is_success:
        logger.warning(
            "Notification webhook rejected event",
            event_type=payload.get("event"),
            status_code=r.status_code,
            body=r.text[:500],
        )
        return False
    return True


async def notify_order_status_update(
    user_id: int,
    order_id: str,
    new_status: str,
    delivered_by: Optional[int] = None,
) -> bool:
    """Tell the customer their order changed status."""
    payload = {
        "event": "order_status",
        "user_id": user_id,
        "order_id": order_id,
        "status": new_status,
        "message": STATUS_LABELS.get(new_status, new_status),
    }
    if delivered_by is not None:
        payload["delivered_by"] = delivered_by
    logger.info("Order status notification", user_id=user_id, order_id=order_id, status=new_status)
    return await _post_event(payload)


async def notify_delivery_assigned(delivery_person_id: int, order_id: str, delivery_id: int) -> bool:
    """Tell a staff member a delivery task is waiting for them."""
    logger.info(
        "Delivery assignment notification",
        delivery_person_id=delivery_person_id,
        order_id=order_id,
        delivery_id=delivery_id,
    )
    return await _post_event({
        "event": "delivery_assigned",
        "user_id": delivery_person_id,
        "order_id": order_id,
        "delivery_id": delivery_id,
    })
