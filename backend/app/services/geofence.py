# backend/app/services/geofence.py
"""
Geofence resolution for checkout.

Both kinds of served area (priced DeliveryZone rows and polygon-bounded
DeliveryLocation rows) are turned into one ``Zone`` abstraction exposing
``contains(lat, lng)``, so the resolver walks a single ordered list.

Distances use the haversine great-circle formula on a spherical Earth
(radius 6 371 000 m). Polygon membership uses ray casting on raw lat/lng
degrees with an explicit on-edge check, so boundary points count as inside.
"""
import math
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.constants import EARTH_RADIUS_METERS, ZERO
from backend.app.core.exceptions import ServiceError
from backend.app.core.logging import get_logger
from backend.app.core.metrics import geofence_checks_total
from backend.app.models.delivery_location import DeliveryLocation
from backend.app.models.delivery_zone import DeliveryZone

logger = get_logger(__name__)

# Tolerance (degrees) for treating a point as lying on a polygon edge
_EDGE_EPSILON = 1e-12

ZONE_TYPE_ZONE = "delivery_zone"
ZONE_TYPE_LOCATION = "delivery_location"


class GeofenceError(ServiceError):
    """Base exception for checkout geofence rejections."""
    def __init__(self, message: str, status_code: int = 422):
        super().__init__(message, status_code)


class GeofenceValidationError(GeofenceError):
    """The request itself is unusable (caller must fix the input)."""


class CoordinatesRequiredError(GeofenceValidationError):
    def __init__(self):
        super().__init__("Valid latitude and longitude are required for checkout.")


class GpsAccuracyTooLowError(GeofenceValidationError):
    def __init__(self, max_accuracy: float):
        super().__init__(
            f"GPS accuracy is too low. Please ensure accuracy is within {max_accuracy:g} meters."
        )


class NoZoneMatchError(GeofenceError):
    def __init__(self):
        super().__init__("Delivery is not available in your location.")


# ---------------------------------------------------------------------------
# Geometry
# ---------------------------------------------------------------------------

def haversine_distance(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance between two points in meters."""
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_METERS * c


def _on_segment(px: float, py: float, ax: float, ay: float, bx: float, by: float) -> bool:
    cross = (bx - ax) * (py - ay) - (by - ay) * (px - ax)
    if abs(cross) > _EDGE_EPSILON:
        return False
    return min(ax, bx) - _EDGE_EPSILON <= px <= max(ax, bx) + _EDGE_EPSILON and \
        min(ay, by) - _EDGE_EPSILON <= py <= max(ay, by) + _EDGE_EPSILON


def point_in_polygon(lat: float, lng: float, vertices: Sequence[Tuple[float, float]]) -> bool:
    """
    Ray-casting point-in-polygon test over (lat, lng) vertices.

    Edges are inclusive. Fewer than three vertices never contain anything.
    """
    n = len(vertices)
    if n < 3:
        return False

    px, py = lng, lat
    inside = False
    j = n - 1
    for i in range(n):
        yi, xi = vertices[i]
        yj, xj = vertices[j]
        if _on_segment(px, py, xi, yi, xj, yj):
            return True
        if (yi > py) != (yj > py):
            x_cross = (xj - xi) * (py - yi) / (yj - yi) + xi
            if px < x_cross:
                inside = not inside
        j = i
    return inside


def parse_polygon(coords: Optional[Sequence[Dict[str, Any]]]) -> Tuple[Tuple[float, float], ...]:
    """Convert stored [{"lat": .., "lng": ..}, ...] JSON into (lat, lng) tuples."""
    if not coords:
        return ()
    return tuple((float(p["lat"]), float(p["lng"])) for p in coords)


# ---------------------------------------------------------------------------
# Zone abstraction
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Zone:
    """A served area. Subclasses decide membership."""

    id: int
    name: str
    zone_type: str
    delivery_fee: Decimal = ZERO

    def contains(self, lat: float, lng: float) -> bool:
        raise NotImplementedError

    def center(self) -> Tuple[float, float]:
        raise NotImplementedError

    def distance_to(self, lat: float, lng: float) -> float:
        """Distance from the point to the zone centre in meters."""
        c_lat, c_lng = self.center()
        return haversine_distance(lat, lng, c_lat, c_lng)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "zone_id": self.id,
            "zone_name": self.name,
            "zone_type": self.zone_type,
            "delivery_fee": float(self.delivery_fee),
        }


@dataclass(frozen=True)
class RadiusZone(Zone):
    center_lat: float = 0.0
    center_lng: float = 0.0
    radius_meters: float = 0.0

    def contains(self, lat: float, lng: float) -> bool:
        return self.distance_to(lat, lng) <= self.radius_meters

    def center(self) -> Tuple[float, float]:
        return self.center_lat, self.center_lng


@dataclass(frozen=True)
class PolygonZone(Zone):
    vertices: Tuple[Tuple[float, float], ...] = field(default_factory=tuple)
    anchor: Optional[Tuple[float, float]] = None

    def contains(self, lat: float, lng: float) -> bool:
        return point_in_polygon(lat, lng, self.vertices)

    def center(self) -> Tuple[float, float]:
        if self.anchor is not None:
            return self.anchor
        lats = [v[0] for v in self.vertices]
        lngs = [v[1] for v in self.vertices]
        return sum(lats) / len(lats), sum(lngs) / len(lngs)


def zone_from_delivery_zone(zone: DeliveryZone) -> Optional[Zone]:
    """Build the geometric zone for a DeliveryZone row; None if the row has no usable geometry."""
    fee = Decimal(str(zone.delivery_fee or 0))
    vertices = parse_polygon(zone.polygon_coords)
    if len(vertices) >= 3:
        return PolygonZone(
            id=zone.id, name=zone.name, zone_type=ZONE_TYPE_ZONE, delivery_fee=fee, vertices=vertices,
        )
    if zone.center_latitude is not None and zone.center_longitude is not None and zone.radius_meters:
        return RadiusZone(
            id=zone.id,
            name=zone.name,
            zone_type=ZONE_TYPE_ZONE,
            delivery_fee=fee,
            center_lat=float(zone.center_latitude),
            center_lng=float(zone.center_longitude),
            radius_meters=float(zone.radius_meters),
        )
    logger.warning("Delivery zone has no usable geometry", zone_id=zone.id)
    return None


def zone_from_delivery_location(location: DeliveryLocation) -> Optional[Zone]:
    vertices = parse_polygon(location.polygon_coords)
    if len(vertices) < 3:
        logger.warning("Delivery location polygon has fewer than 3 vertices", location_id=location.id)
        return None
    anchor = None
    if location.latitude is not None and location.longitude is not None:
        anchor = (float(location.latitude), float(location.longitude))
    return PolygonZone(
        id=location.id,
        name=location.name,
        zone_type=ZONE_TYPE_LOCATION,
        vertices=vertices,
        anchor=anchor,
    )


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------

class GeofenceResolver:
    """
    Finds the delivery zone containing a coordinate.

    Candidate order is fixed: active DeliveryZones by (priority, id), then
    active DeliveryLocations by id. The first zone that contains the point
    wins, so fee and routing never depend on database row order.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def active_zones(self) -> List[Zone]:
        zones_result = await self.session.execute(
            select(DeliveryZone)
            .where(DeliveryZone.is_active == True)  # noqa: E712
            .order_by(DeliveryZone.priority, DeliveryZone.id)
        )
        locations_result = await self.session.execute(
            select(DeliveryLocation)
            .where(DeliveryLocation.is_active == True)  # noqa: E712
            .order_by(DeliveryLocation.id)
        )
        candidates: List[Optional[Zone]] = [zone_from_delivery_zone(z) for z in zones_result.scalars().all()]
        candidates += [zone_from_delivery_location(loc) for loc in locations_result.scalars().all()]
        return [z for z in candidates if z is not None]

    async def find_valid_delivery_zone(self, latitude: float, longitude: float) -> Optional[Zone]:
        """Return the first active zone containing the point, or None."""
        for zone in await self.active_zones():
            if zone.contains(latitude, longitude):
                return zone
        return None

    async def validate_location(self, latitude: float, longitude: float) -> Dict[str, Any]:
        """
        Public geofence check.

        Returns the matching zone, or, when the point is outside every zone,
        the name of the nearest active zone so the UI can hint where delivery
        is offered.
        """
        zones = await self.active_zones()
        for zone in zones:
            if zone.contains(latitude, longitude):
                return {
                    "is_valid": True,
                    **zone.to_dict(),
                    "distance_meters": round(zone.distance_to(latitude, longitude), 1),
                    "nearest_zone": None,
                }

        nearest = min(zones, key=lambda z: z.distance_to(latitude, longitude), default=None)
        return {
            "is_valid": False,
            "zone_id": None,
            "zone_name": None,
            "zone_type": None,
            "delivery_fee": None,
            "distance_meters": round(nearest.distance_to(latitude, longitude), 1) if nearest else None,
            "nearest_zone": nearest.name if nearest else None,
        }


# ---------------------------------------------------------------------------
# Checkout gate
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class GeofenceDecision:
    """Outcome of the checkout gate: the matched zone, or a development bypass."""

    zone: Optional[Zone]
    latitude: float
    longitude: float
    accuracy: Optional[float] = None
    bypassed: bool = False

    @property
    def delivery_fee(self) -> Decimal:
        return self.zone.delivery_fee if self.zone else ZERO

    def to_dict(self) -> Dict[str, Any]:
        if self.zone is not None:
            data = self.zone.to_dict()
            data["distance_meters"] = round(self.zone.distance_to(self.latitude, self.longitude), 1)
        else:
            data = {"zone_id": None, "zone_name": None, "zone_type": None,
                    "delivery_fee": 0.0, "distance_meters": None}
        data["bypassed"] = self.bypassed
        return data


def _coerce_number(value: Any) -> Optional[float]:
    """Float for numeric input (numbers or numeric strings), None otherwise."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    if not math.isfinite(number):
        return None
    return number


class CheckoutGeofence:
    """
    Validates a checkout coordinate before an order is created.

    ``allow_dev_bypass`` is decided once from configuration and passed in;
    when set, a checkout outside every zone still proceeds as long as the
    customer picked a delivery location.
    """

    def __init__(
        self,
        resolver: GeofenceResolver,
        allow_dev_bypass: bool = False,
        max_accuracy_meters: float = 100.0,
    ):
        self.resolver = resolver
        self.allow_dev_bypass = allow_dev_bypass
        self.max_accuracy_meters = max_accuracy_meters

    async def check(
        self,
        latitude: Any,
        longitude: Any,
        accuracy: Any = None,
        delivery_location_id: Optional[int] = None,
    ) -> GeofenceDecision:
        """
        Run the checkout geofence in order: coordinates, GPS accuracy, zone match.

        Raises:
            CoordinatesRequiredError: missing, non-numeric or out-of-range coordinates
            GpsAccuracyTooLowError: reported accuracy worse than the configured maximum
            NoZoneMatchError: no active zone contains the point (and no bypass applies)
        """
        lat = _coerce_number(latitude)
        lng = _coerce_number(longitude)
        if lat is None or lng is None or not -90 <= lat <= 90 or not -180 <= lng <= 180:
            geofence_checks_total.labels(result="invalid_coordinates").inc()
            raise CoordinatesRequiredError()

        acc = None
        if accuracy is not None and accuracy != "":
            acc = _coerce_number(accuracy)
            if acc is None or acc < 0 or acc > self.max_accuracy_meters:
                geofence_checks_total.labels(result="low_accuracy").inc()
                raise GpsAccuracyTooLowError(self.max_accuracy_meters)

        zone = await self.resolver.find_valid_delivery_zone(lat, lng)
        if zone is not None:
            geofence_checks_total.labels(result="matched").inc()
            return GeofenceDecision(zone=zone, latitude=lat, longitude=lng, accuracy=acc)

        if self.allow_dev_bypass and delivery_location_id is not None:
            geofence_checks_total.labels(result="bypassed").inc()
            logger.warning(
                "Geofence bypassed for checkout outside every zone",
                latitude=lat,
                longitude=lng,
                delivery_location_id=delivery_location_id,
            )
            return GeofenceDecision(zone=None, latitude=lat, longitude=lng, accuracy=acc, bypassed=True)

        geofence_checks_total.labels(result="no_zone").inc()
        raise NoZoneMatchError()
