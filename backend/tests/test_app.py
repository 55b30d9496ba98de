"""
Tests for operational endpoints and shared infrastructure.
"""
from datetime import timedelta

import jwt
import pytest
from httpx import AsyncClient

from backend.app.core.auth import create_access_token, decode_access_token
from backend.app.core.logging import mask_sensitive_values
from backend.app.core.settings import get_settings
from backend.app.models.user import User
from backend.tests.helpers import auth_header


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.json()["checks"]["database"] == "ok"


@pytest.mark.asyncio
async def test_metrics_exposes_business_counters(client: AsyncClient):
    response = await client.get("/metrics")
    assert response.status_code == 200
    assert "deliveries_verified_total" in response.text
    assert "geofence_checks_total" in response.text


def test_delivery_code_is_masked_in_logs():
    event = mask_sensitive_values(None, "info", {"event": "x", "delivery_code": "2468", "order_id": "CM-1"})
    assert event["delivery_code"] == "****"
    assert event["order_id"] == "CM-1"


def test_token_round_trip():
    token = create_access_token(42, "delivery_staff")
    assert decode_access_token(token) == 42


def test_expired_or_forged_token_rejected():
    expired = create_access_token(42, "customer", expires_in=timedelta(seconds=-10))
    assert decode_access_token(expired) is None

    forged = jwt.encode({"sub": "42", "role": "admin"}, "not-the-secret", algorithm="HS256")
    assert decode_access_token(forged) is None


def test_unknown_role_rejected():
    settings = get_settings()
    token = jwt.encode({"sub": "42", "role": "superuser"}, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)
    assert decode_access_token(token) is None


@pytest.mark.asyncio
async def test_malformed_authorization_header(client: AsyncClient):
    response = await client.get("/orders", headers={"Authorization": "Token abc"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_token_for_deleted_user(client: AsyncClient):
    response = await client.get("/orders", headers={"Authorization": f"Bearer {create_access_token(999, 'customer')}"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_role_comes_from_user_record(client: AsyncClient, customer: User):
    """A token claiming staff for a customer account does not grant staff access."""
    token = create_access_token(customer.id, "delivery_staff")
    response = await client.get("/delivery/assigned", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 403

    response = await client.get("/orders", headers=auth_header(customer))
    assert response.status_code == 200
