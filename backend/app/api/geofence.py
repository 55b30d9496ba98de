"""Public geofence endpoints: where can we deliver."""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.api.deps import get_session
from backend.app.schemas import GeofenceCheckRequest
from backend.app.services.delivery_zones import DeliveryZoneService
from backend.app.services.geofence import GeofenceResolver

router = APIRouter()


@router.post("/geofence/validate")
async def validate_location(
    data: GeofenceCheckRequest,
    session: AsyncSession = Depends(get_session),
):
    """Check a coordinate before checkout; suggests the nearest zone when outside."""
    return await GeofenceResolver(session).validate_location(data.latitude, data.longitude)


@router.get("/delivery-zones")
async def list_delivery_zones(session: AsyncSession = Depends(get_session)):
    return await DeliveryZoneService(session).get_zones(active_only=True)


@router.get("/delivery-locations")
async def list_delivery_locations(session: AsyncSession = Depends(get_session)):
    return await DeliveryZoneService(session).get_locations(active_only=True)
