"""
Tests for geofence resolution.

Tests cover:
- Haversine distance and point-in-polygon geometry
- Zone resolution order and deactivation
- Public /geofence/validate endpoint
"""
import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.models.delivery_zone import DeliveryZone
from backend.app.models.user import User
from backend.app.services.geofence import (
    GeofenceResolver,
    PolygonZone,
    RadiusZone,
    haversine_distance,
    point_in_polygon,
)
from backend.tests.helpers import (
    CAMPUS_POLYGON,
    FAR_AWAY,
    INSIDE_CAMPUS,
    auth_header,
    create_location,
    create_zone,
)

SQUARE = ((0.0, 0.0), (0.0, 1.0), (1.0, 1.0), (1.0, 0.0))


# --- Geometry ---

def test_haversine_distance_one_degree_latitude():
    """One degree of latitude is about 111.2 km on a 6371 km sphere."""
    assert haversine_distance(0.0, 0.0, 1.0, 0.0) == pytest.approx(111195, rel=1e-3)


def test_haversine_distance_same_point_is_zero():
    assert haversine_distance(-11.41, 34.0, -11.41, 34.0) == 0


def test_point_in_polygon_inside_and_outside():
    assert point_in_polygon(0.5, 0.5, SQUARE) is True
    assert point_in_polygon(1.5, 0.5, SQUARE) is False
    assert point_in_polygon(-0.1, -0.1, SQUARE) is False


def test_point_in_polygon_boundary_counts_as_inside():
    assert point_in_polygon(0.0, 0.5, SQUARE) is True
    assert point_in_polygon(1.0, 1.0, SQUARE) is True


def test_point_in_polygon_needs_three_vertices():
    assert point_in_polygon(0.0, 0.0, ((0.0, 0.0), (1.0, 1.0))) is False


def test_radius_zone_contains():
    zone = RadiusZone(id=1, name="Library", zone_type="delivery_zone",
                      center_lat=-11.41, center_lng=34.0, radius_meters=500)
    assert zone.contains(-11.41, 34.003) is True  # ~330 m east
    assert zone.contains(-11.41, 34.01) is False  # ~1.1 km east


def test_polygon_zone_center_defaults_to_vertex_average():
    zone = PolygonZone(id=1, name="Square", zone_type="delivery_zone", vertices=SQUARE)
    assert zone.center() == (0.5, 0.5)


# --- Resolver ---

@pytest.mark.asyncio
async def test_resolver_matches_point_inside_active_zone(test_session: AsyncSession, campus_zone: DeliveryZone):
    zone = await GeofenceResolver(test_session).find_valid_delivery_zone(*INSIDE_CAMPUS)
    assert zone is not None
    assert zone.id == campus_zone.id
    assert zone.name == "Main Campus"


@pytest.mark.asyncio
async def test_resolver_returns_none_outside_all_zones(test_session: AsyncSession, campus_zone: DeliveryZone):
    assert await GeofenceResolver(test_session).find_valid_delivery_zone(*FAR_AWAY) is None


@pytest.mark.asyncio
async def test_resolver_matches_radius_zone(test_session: AsyncSession):
    await create_zone(test_session, "North Gate", polygon=None, center=FAR_AWAY, radius_meters=300)
    zone = await GeofenceResolver(test_session).find_valid_delivery_zone(*FAR_AWAY)
    assert zone is not None
    assert zone.name == "North Gate"


@pytest.mark.asyncio
async def test_resolver_ignores_inactive_zone(test_session: AsyncSession):
    await create_zone(test_session, "Closed Campus", is_active=False)
    assert await GeofenceResolver(test_session).find_valid_delivery_zone(*INSIDE_CAMPUS) is None


@pytest.mark.asyncio
async def test_resolver_overlap_resolved_by_priority_then_id(test_session: AsyncSession):
    await create_zone(test_session, "Campus Wide", delivery_fee="800.00", priority=5)
    await create_zone(test_session, "Hostels", delivery_fee="300.00", priority=1)
    await create_zone(test_session, "Hostels Annex", delivery_fee="200.00", priority=1)

    zone = await GeofenceResolver(test_session).find_valid_delivery_zone(*INSIDE_CAMPUS)
    assert zone.name == "Hostels"
    assert float(zone.delivery_fee) == 300.0


@pytest.mark.asyncio
async def test_resolver_checks_zones_before_locations(test_session: AsyncSession):
    await create_location(test_session, "Library Drop Point", "LIB")
    await create_zone(test_session, "Main Campus")

    zone = await GeofenceResolver(test_session).find_valid_delivery_zone(*INSIDE_CAMPUS)
    assert zone.zone_type == "delivery_zone"


@pytest.mark.asyncio
async def test_resolver_falls_back_to_delivery_location(test_session: AsyncSession):
    await create_location(test_session, "Library Drop Point", "LIB")
    zone = await GeofenceResolver(test_session).find_valid_delivery_zone(*INSIDE_CAMPUS)
    assert zone.zone_type == "delivery_location"
    assert zone.delivery_fee == 0


# --- Deactivation through the admin API ---

@pytest.mark.asyncio
async def test_zone_toggle_takes_effect_immediately(
    client: AsyncClient,
    test_session: AsyncSession,
    campus_zone: DeliveryZone,
    admin: User,
):
    response = await client.patch(
        f"/admin/delivery-zones/{campus_zone.id}/toggle-status", headers=auth_header(admin)
    )
    assert response.status_code == 200
    assert response.json() == {"id": campus_zone.id, "is_active": False}
    assert await GeofenceResolver(test_session).find_valid_delivery_zone(*INSIDE_CAMPUS) is None

    response = await client.patch(
        f"/admin/delivery-zones/{campus_zone.id}/toggle-status", headers=auth_header(admin)
    )
    assert response.json()["is_active"] is True

    zone = await GeofenceResolver(test_session).find_valid_delivery_zone(*INSIDE_CAMPUS)
    assert zone.id == campus_zone.id
    await test_session.refresh(campus_zone)
    assert campus_zone.name == "Main Campus"
    assert campus_zone.polygon_coords == CAMPUS_POLYGON
    assert float(campus_zone.delivery_fee) == 500.0


# --- Public endpoints ---

@pytest.mark.asyncio
async def test_validate_location_inside_zone(client: AsyncClient, campus_zone: DeliveryZone):
    lat, lng = INSIDE_CAMPUS
    response = await client.post("/geofence/validate", json={"latitude": lat, "longitude": lng})

    assert response.status_code == 200
    data = response.json()
    assert data["is_valid"] is True
    assert data["zone_id"] == campus_zone.id
    assert data["zone_name"] == "Main Campus"
    assert data["delivery_fee"] == 500.0
    assert data["nearest_zone"] is None


@pytest.mark.asyncio
async def test_validate_location_outside_suggests_nearest_zone(client: AsyncClient, campus_zone: DeliveryZone):
    lat, lng = FAR_AWAY
    response = await client.post("/geofence/validate", json={"latitude": lat, "longitude": lng})

    data = response.json()
    assert data["is_valid"] is False
    assert data["zone_id"] is None
    assert data["nearest_zone"] == "Main Campus"
    assert data["distance_meters"] > 15000


@pytest.mark.asyncio
async def test_validate_location_rejects_out_of_range(client: AsyncClient):
    response = await client.post("/geofence/validate", json={"latitude": 95, "longitude": 34})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_public_zone_list_hides_inactive(client: AsyncClient, test_session: AsyncSession, campus_zone: DeliveryZone):
    await create_zone(test_session, "Old Market", is_active=False)

    response = await client.get("/delivery-zones")
    assert response.status_code == 200
    assert [z["name"] for z in response.json()] == ["Main Campus"]


@pytest.mark.asyncio
async def test_public_location_list(client: AsyncClient, test_session: AsyncSession):
    await create_location(test_session, "Library Drop Point", "LIB")
    await create_location(test_session, "Old Gate", "OLD", is_active=False)

    response = await client.get("/delivery-locations")
    assert [loc["code"] for loc in response.json()] == ["LIB"]
