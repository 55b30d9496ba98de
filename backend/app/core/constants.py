"""
Shared constants for the backend application.
"""
from decimal import Decimal

# ---------------------------------------------------------------------------
# Roles
# ---------------------------------------------------------------------------
ROLE_CUSTOMER = "customer"
ROLE_ADMIN = "admin"
ROLE_DELIVERY_STAFF = "delivery_staff"

USER_ROLES = (ROLE_CUSTOMER, ROLE_ADMIN, ROLE_DELIVERY_STAFF)

# ---------------------------------------------------------------------------
# Order statuses
# ---------------------------------------------------------------------------
ORDER_PENDING = "pending"
ORDER_PROCESSING = "processing"
ORDER_OUT_FOR_DELIVERY = "out_for_delivery"
ORDER_DELIVERED = "delivered"
ORDER_CANCELLED = "cancelled"

VALID_ORDER_STATUSES = [
    ORDER_PENDING, ORDER_PROCESSING, ORDER_OUT_FOR_DELIVERY, ORDER_DELIVERED, ORDER_CANCELLED,
]

CANCELLABLE_ORDER_STATUSES = (ORDER_PENDING, ORDER_PROCESSING)
ASSIGNABLE_ORDER_STATUSES = (ORDER_PENDING, ORDER_PROCESSING)
TERMINAL_ORDER_STATUSES = (ORDER_DELIVERED, ORDER_CANCELLED)

# Order.delivery_status mirrors delivery progress as seen by the customer
DELIVERY_STATUS_PENDING = "pending"
DELIVERY_STATUS_OUT_FOR_DELIVERY = "out_for_delivery"
DELIVERY_STATUS_DELIVERED = "delivered"

# ---------------------------------------------------------------------------
# Delivery (assignment record) statuses, in progression order
# ---------------------------------------------------------------------------
DELIVERY_ASSIGNED = "assigned"
DELIVERY_IN_TRANSIT = "in_transit"
DELIVERY_DELIVERED = "delivered"
DELIVERY_FAILED = "failed"

ACTIVE_DELIVERY_STATUSES = (DELIVERY_ASSIGNED, DELIVERY_IN_TRANSIT)

# ---------------------------------------------------------------------------
# Payment
# ---------------------------------------------------------------------------
PAYMENT_METHODS = ("cash", "mobile_money")
PAYMENT_PENDING = "pending"
PAYMENT_COMPLETED = "completed"
PAYMENT_FAILED = "failed"

# ---------------------------------------------------------------------------
# Geofence
# ---------------------------------------------------------------------------
EARTH_RADIUS_METERS = 6371000
MIN_ZONE_RADIUS_METERS = 100

# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------
ORDER_ID_PREFIX = "CM"
DELIVERY_CODE_LENGTH = 4

ZERO = Decimal("0")

# ---------------------------------------------------------------------------
# Staff task lists
# ---------------------------------------------------------------------------
DEFAULT_TASK_LIMIT = 12
MAX_TASK_LIMIT = 25
HISTORY_PAGE_SIZE = 10
