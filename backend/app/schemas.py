from pydantic import BaseModel, Field, model_validator, field_validator
from typing import Any, Optional, List
from decimal import Decimal

from backend.app.core.constants import MIN_ZONE_RADIUS_METERS, PAYMENT_METHODS


def sanitize_user_input(text: Optional[str], max_length: int = 5000) -> Optional[str]:
    """Trim, cut to max_length and drop null bytes and control characters."""
    if text is None:
        return None
    text = text.strip()[:max_length]
    return ''.join(char for char in text if ord(char) >= 32 or char in '\n\r\t')


# --- Checkout ---
class CheckoutRequest(BaseModel):
    # Coordinates are taken raw; the geofence gate decides what is valid
    latitude: Any = None
    longitude: Any = None
    accuracy: Any = None
    delivery_location_id: Optional[int] = None
    subtotal: Decimal = Field(ge=0)
    payment_method: str = "cash"
    customer_name: str = Field(min_length=1, max_length=255)
    customer_phone: str = Field(min_length=3, max_length=20)
    customer_address: str = Field(min_length=1, max_length=500)
    notes: Optional[str] = Field(None, max_length=500)

    @field_validator("payment_method")
    @classmethod
    def check_payment_method(cls, v: str) -> str:
        if v not in PAYMENT_METHODS:
            raise ValueError(f"payment_method must be one of: {', '.join(PAYMENT_METHODS)}")
        return v

    @field_validator("customer_name", "customer_address", "notes")
    @classmethod
    def sanitize_text_fields(cls, v: Optional[str]) -> Optional[str]:
        return sanitize_user_input(v, max_length=500)


class GeofenceCheckRequest(BaseModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)


# --- Delivery ---
class VerifyHandshakeRequest(BaseModel):
    order_id: str = Field(min_length=1, max_length=50)
    delivery_code: str

    @field_validator("delivery_code")
    @classmethod
    def check_code_format(cls, v: str) -> str:
        v = v.strip()
        if len(v) != 4 or not v.isascii() or not v.isdigit():
            raise ValueError("Delivery code must be exactly 4 digits.")
        return v


class FailDeliveryRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)

    @field_validator("reason")
    @classmethod
    def sanitize_reason(cls, v: Optional[str]) -> Optional[str]:
        return sanitize_user_input(v, max_length=500)


class AssignDeliveryRequest(BaseModel):
    delivery_person_id: int


# --- Zones & locations (admin) ---
class PolygonPoint(BaseModel):
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)


class ZoneBase(BaseModel):
    center_latitude: Optional[float] = Field(None, ge=-90, le=90)
    center_longitude: Optional[float] = Field(None, ge=-180, le=180)
    radius_meters: Optional[int] = Field(None, ge=MIN_ZONE_RADIUS_METERS)
    polygon_coords: Optional[List[PolygonPoint]] = None
    delivery_fee: Optional[Decimal] = Field(None, ge=0)
    priority: Optional[int] = None
    is_active: Optional[bool] = None

    @field_validator("polygon_coords")
    @classmethod
    def check_polygon(cls, v: Optional[List[PolygonPoint]]) -> Optional[List[PolygonPoint]]:
        if v is not None and len(v) < 3:
            raise ValueError("A polygon needs at least 3 points.")
        return v


class ZoneCreate(ZoneBase):
    name: str = Field(min_length=1, max_length=100)
    priority: int = 0
    is_active: bool = True

    @model_validator(mode="after")
    def check_geometry(self):
        has_circle = (
            self.center_latitude is not None
            and self.center_longitude is not None
            and self.radius_meters is not None
        )
        if not self.polygon_coords and not has_circle:
            raise ValueError("Provide polygon_coords or center_latitude, center_longitude and radius_meters.")
        return self


class ZoneUpdate(ZoneBase):
    name: Optional[str] = Field(None, min_length=1, max_length=100)

    @field_validator("name", "priority", "is_active")
    @classmethod
    def not_null(cls, v):
        # Omit the field to leave it unchanged; these columns cannot be cleared
        if v is None:
            raise ValueError("This field cannot be null.")
        return v


class LocationCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    code: str = Field(min_length=1, max_length=30)
    description: Optional[str] = Field(None, max_length=500)
    polygon_coords: List[PolygonPoint] = Field(min_length=3)
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    is_active: bool = True

    @field_validator("code")
    @classmethod
    def normalize_code(cls, v: str) -> str:
        return v.strip().upper()
