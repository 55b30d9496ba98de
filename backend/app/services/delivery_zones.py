"""Delivery zone and delivery location management service."""
from typing import List, Dict, Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.exceptions import ServiceError
from backend.app.models.delivery_location import DeliveryLocation
from backend.app.models.delivery_zone import DeliveryZone

ZONE_FIELDS = (
    "name", "center_latitude", "center_longitude", "radius_meters",
    "polygon_coords", "delivery_fee", "is_active", "priority",
)


class DeliveryZoneServiceError(ServiceError):
    """Base exception for zone/location management errors."""


class DeliveryZoneNotFoundError(DeliveryZoneServiceError):
    def __init__(self, zone_id: int):
        super().__init__("Delivery zone not found.", 404)
        self.zone_id = zone_id


class DeliveryLocationNotFoundError(DeliveryZoneServiceError):
    def __init__(self, location_id: int):
        super().__init__("Delivery location not found.", 404)
        self.location_id = location_id


class DeliveryLocationCodeTakenError(DeliveryZoneServiceError):
    def __init__(self, code: str):
        super().__init__(f"Delivery location code '{code}' is already in use.", 409)


class DeliveryZoneService:
    def __init__(self, session: AsyncSession):
        self.session = session

    # --- Zones ---

    async def get_zones(self, active_only: bool = False) -> List[Dict[str, Any]]:
        """All delivery zones in matching order (priority, then id)."""
        query = select(DeliveryZone).order_by(DeliveryZone.priority, DeliveryZone.id)
        if active_only:
            query = query.where(DeliveryZone.is_active == True)  # noqa: E712
        result = await self.session.execute(query)
        return [self._zone_to_dict(z) for z in result.scalars().all()]

    async def create_zone(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Create a new delivery zone. Caller must commit."""
        zone = DeliveryZone(
            name=data["name"],
            center_latitude=data.get("center_latitude"),
            center_longitude=data.get("center_longitude"),
            radius_meters=data.get("radius_meters"),
            polygon_coords=data.get("polygon_coords"),
            delivery_fee=data.get("delivery_fee") or 0,
            is_active=data.get("is_active", True),
            priority=data.get("priority", 0),
        )
        self.session.add(zone)
        await self.session.flush()
        return self._zone_to_dict(zone)

    async def update_zone(self, zone_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
        """Update fields present in ``data``. Caller must commit."""
        zone = await self._get_zone(zone_id)
        for field in ZONE_FIELDS:
            if field in data:
                value = data[field]
                if field == "delivery_fee" and value is None:
                    value = 0
                setattr(zone, field, value)
        await self.session.flush()
        return self._zone_to_dict(zone)

    async def toggle_zone(self, zone_id: int) -> Dict[str, Any]:
        """Flip is_active. Zones are deactivated, never deleted, because orders reference them."""
        zone = await self._get_zone(zone_id)
        zone.is_active = not zone.is_active
        await self.session.flush()
        return {"id": zone.id, "is_active": zone.is_active}

    # --- Locations ---

    async def get_locations(self, active_only: bool = True) -> List[Dict[str, Any]]:
        query = select(DeliveryLocation).order_by(DeliveryLocation.name, DeliveryLocation.id)
        if active_only:
            query = query.where(DeliveryLocation.is_active == True)  # noqa: E712
        result = await self.session.execute(query)
        return [self._location_to_dict(loc) for loc in result.scalars().all()]

    async def create_location(self, data: Dict[str, Any]) -> Dict[str, Any]:
        existing = await self.session.execute(
            select(DeliveryLocation.id).where(DeliveryLocation.code == data["code"])
        )
        if existing.scalar_one_or_none() is not None:
            raise DeliveryLocationCodeTakenError(data["code"])
        location = DeliveryLocation(
            name=data["name"],
            code=data["code"],
            description=data.get("description"),
            polygon_coords=data["polygon_coords"],
            latitude=data.get("latitude"),
            longitude=data.get("longitude"),
            is_active=data.get("is_active", True),
        )
        self.session.add(location)
        await self.session.flush()
        return self._location_to_dict(location)

    async def toggle_location(self, location_id: int) -> Dict[str, Any]:
        location = await self.session.get(DeliveryLocation, location_id)
        if not location:
            raise DeliveryLocationNotFoundError(location_id)
        location.is_active = not location.is_active
        await self.session.flush()
        return {"id": location.id, "is_active": location.is_active}

    async def _get_zone(self, zone_id: int) -> DeliveryZone:
        zone = await self.session.get(DeliveryZone, zone_id)
        if not zone:
            raise DeliveryZoneNotFoundError(zone_id)
        return zone

    @staticmethod
    def _zone_to_dict(zone: DeliveryZone) -> Dict[str, Any]:
        return {
            "id": zone.id,
            "name": zone.name,
            "center_latitude": zone.center_latitude,
            "center_longitude": zone.center_longitude,
            "radius_meters": zone.radius_meters,
            "polygon_coords": zone.polygon_coords,
            "delivery_fee": float(zone.delivery_fee or 0),
            "is_active": zone.is_active,
            "priority": zone.priority,
        }

    @staticmethod
    def _location_to_dict(location: DeliveryLocation) -> Dict[str, Any]:
        return {
            "id": location.id,
            "name": location.name,
            "code": location.code,
            "description": location.description,
            "polygon_coords": location.polygon_coords,
            "latitude": location.latitude,
            "longitude": location.longitude,
            "is_active": location.is_active,
        }


async def get_active_location(session: AsyncSession, location_id: int) -> Optional[DeliveryLocation]:
    """Active delivery location by id, or None."""
    location = await session.get(DeliveryLocation, location_id)
    if location is None or not location.is_active:
        return None
    return location
