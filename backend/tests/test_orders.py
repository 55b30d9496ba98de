"""
Tests for customer order endpoints.

Tests cover:
- Listing and fetching own orders
- Cancellation rules
- Admin order list
"""
import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.models.user import User
from backend.tests.helpers import auth_header, create_delivery, create_order

NOT_CANCELLABLE = "This order cannot be cancelled. Only pending or processing orders can be cancelled."


@pytest.mark.asyncio
async def test_list_own_orders_includes_code(
    client: AsyncClient,
    test_session: AsyncSession,
    customer: User,
    other_customer: User,
):
    mine = await create_order(test_session, customer, delivery_code="0815")
    await create_order(test_session, other_customer)

    response = await client.get("/orders", headers=auth_header(customer))

    assert response.status_code == 200
    orders = response.json()
    assert [o["order_id"] for o in orders] == [mine.order_id]
    assert orders[0]["delivery_code"] == "0815"


@pytest.mark.asyncio
async def test_get_own_order(client: AsyncClient, test_session: AsyncSession, customer: User, staff: User):
    order = await create_order(test_session, customer, status="processing")
    await create_delivery(test_session, order, staff)

    response = await client.get(f"/orders/{order.order_id}", headers=auth_header(customer))

    assert response.status_code == 200
    data = response.json()
    assert data["order_id"] == order.order_id
    assert data["delivery"]["status"] == "assigned"
    assert data["delivery"]["delivery_person_id"] == staff.id


@pytest.mark.asyncio
async def test_other_customers_order_is_not_found(
    client: AsyncClient,
    test_session: AsyncSession,
    customer: User,
    other_customer: User,
):
    order = await create_order(test_session, other_customer)
    response = await client.get(f"/orders/{order.order_id}", headers=auth_header(customer))
    assert response.status_code == 404
    assert response.json()["detail"] == "Order not found."


@pytest.mark.asyncio
@pytest.mark.parametrize("status", ["pending", "processing"])
async def test_cancel_open_order(client: AsyncClient, test_session: AsyncSession, customer: User, status: str):
    order = await create_order(test_session, customer, status=status)

    response = await client.patch(f"/orders/{order.order_id}/cancel", headers=auth_header(customer))

    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"
    assert response.json()["payment_status"] == "failed"
    await test_session.refresh(order)
    assert order.status == "cancelled"


@pytest.mark.asyncio
async def test_cancel_closes_assigned_delivery(
    client: AsyncClient,
    test_session: AsyncSession,
    customer: User,
    staff: User,
):
    order = await create_order(test_session, customer, status="processing")
    delivery = await create_delivery(test_session, order, staff)

    response = await client.patch(f"/orders/{order.order_id}/cancel", headers=auth_header(customer))

    assert response.status_code == 200
    assert response.json()["delivery"]["status"] == "failed"
    await test_session.refresh(delivery)
    assert delivery.status == "failed"


@pytest.mark.asyncio
@pytest.mark.parametrize("status", ["out_for_delivery", "delivered", "cancelled"])
async def test_cancel_rejected_after_dispatch(
    client: AsyncClient,
    test_session: AsyncSession,
    customer: User,
    status: str,
):
    order = await create_order(test_session, customer, status=status)

    response = await client.patch(f"/orders/{order.order_id}/cancel", headers=auth_header(customer))

    assert response.status_code == 422
    assert response.json()["detail"] == NOT_CANCELLABLE
    await test_session.refresh(order)
    assert order.status == status


@pytest.mark.asyncio
async def test_cannot_cancel_someone_elses_order(
    client: AsyncClient,
    test_session: AsyncSession,
    customer: User,
    other_customer: User,
):
    order = await create_order(test_session, other_customer)
    response = await client.patch(f"/orders/{order.order_id}/cancel", headers=auth_header(customer))
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_admin_order_list_hides_codes(
    client: AsyncClient,
    test_session: AsyncSession,
    admin: User,
    customer: User,
):
    await create_order(test_session, customer, status="pending")
    await create_order(test_session, customer, status="delivered", delivery_status="delivered")

    response = await client.get("/admin/orders", params={"status": "pending"}, headers=auth_header(admin))

    assert response.status_code == 200
    orders = response.json()
    assert len(orders) == 1
    assert "delivery_code" not in orders[0]


@pytest.mark.asyncio
async def test_admin_order_list_unknown_status(client: AsyncClient, admin: User):
    response = await client.get("/admin/orders", params={"status": "lost"}, headers=auth_header(admin))
    assert response.status_code == 422
