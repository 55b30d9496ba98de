# backend/app/services/__init__.py
"""
Services layer for business logic.
Keeps API endpoints thin and business logic testable and reusable.
"""

from backend.app.services.geofence import (
    CheckoutGeofence,
    GeofenceDecision,
    GeofenceError,
    GeofenceResolver,
    NoZoneMatchError,
)
from backend.app.services.orders import (
    OrderService,
    OrderServiceError,
    OrderNotFoundError,
    DeliveryLocationInvalidError,
    OrderNotCancellableError,
)
from backend.app.services.deliveries import (
    DeliveryService,
    DeliveryServiceError,
    DeliveryNotFoundError,
    DeliveryAccessDeniedError,
    InvalidTransitionError,
    AlreadyDeliveredError,
    InvalidDeliveryCodeError,
)
from backend.app.services.delivery_zones import (
    DeliveryZoneService,
    DeliveryZoneServiceError,
)

__all__ = [
    # Geofence
    "CheckoutGeofence",
    "GeofenceDecision",
    "GeofenceError",
    "GeofenceResolver",
    "NoZoneMatchError",
    # Order service
    "OrderService",
    "OrderServiceError",
    "OrderNotFoundError",
    "DeliveryLocationInvalidError",
    "OrderNotCancellableError",
    # Delivery state machine
    "DeliveryService",
    "DeliveryServiceError",
    "DeliveryNotFoundError",
    "DeliveryAccessDeniedError",
    "InvalidTransitionError",
    "AlreadyDeliveredError",
    "InvalidDeliveryCodeError",
    # Zones & locations
    "DeliveryZoneService",
    "DeliveryZoneServiceError",
]
