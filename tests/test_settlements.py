"""
Tests for merchant settlements: eligibility, fee arithmetic and the status
workflow.
"""

from decimal import Decimal

import pytest
import pytest_asyncio
from httpx import AsyncClient

from conftest import headers_for


@pytest_asyncio.fixture
async def paid_bookings(student, booking_factory):
    """Two paid bookings (600 and 400) and one still awaiting payment."""
    first = await booking_factory(student, "A1")
    second = await booking_factory(student, "A2", total=Decimal("400.00"))
    unpaid = await booking_factory(student, "A3", status="pending", payment_status="pending")
    return first, second, unpaid


@pytest_asyncio.fixture
async def manager_headers(settlement_manager) -> dict:
    return headers_for(settlement_manager)


async def eligible_ids(client: AsyncClient, headers: dict, merchant_id=None) -> list[int]:
    params = {"merchant_id": merchant_id} if merchant_id else {}
    response = await client.get("/api/v1/settlements/eligible", params=params, headers=headers)
    assert response.status_code == 200
    return [t["transaction_id"] for t in response.json()]


async def settle(client: AsyncClient, headers: dict, merchant_id: int, transaction_ids: list, **extra):
    return await client.post(
        "/api/v1/settlements/",
        json={"merchant_id": merchant_id, "transaction_ids": transaction_ids, **extra},
        headers=headers,
    )


@pytest.mark.asyncio
async def test_only_completed_transactions_are_eligible(
    client: AsyncClient, paid_bookings, merchant_headers
):
    first, second, unpaid = paid_bookings
    eligible = await client.get("/api/v1/settlements/eligible", headers=merchant_headers)
    assert {t["booking_id"] for t in eligible.json()} == {first.id, second.id}

    summary = await client.get("/api/v1/settlements/unsettled", headers=merchant_headers)
    assert summary.status_code == 200
    data = summary.json()
    assert data["count"] == 2
    assert Decimal(data["total_amount"]) == Decimal("1000")


@pytest.mark.asyncio
async def test_create_settlement_with_default_fee(
    client: AsyncClient, paid_bookings, merchant, merchant_headers, manager_headers
):
    ids = await eligible_ids(client, merchant_headers)

    response = await settle(client, manager_headers, merchant.id, ids, notes="October payout")
    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "pending"
    assert Decimal(data["total_booking_amount"]) == Decimal("1000")
    assert Decimal(data["platform_fee_percentage"]) == Decimal("10")
    assert Decimal(data["platform_fee_amount"]) == Decimal("100")
    assert Decimal(data["net_settlement_amount"]) == Decimal("900")
    assert sorted(item["transaction_id"] for item in data["items"]) == sorted(ids)

    assert await eligible_ids(client, merchant_headers) == []
    summary = await client.get("/api/v1/settlements/unsettled", headers=merchant_headers)
    assert summary.json()["count"] == 0


@pytest.mark.asyncio
async def test_create_settlement_with_custom_fee(
    client: AsyncClient, paid_bookings, merchant, merchant_headers, admin_headers
):
    ids = await eligible_ids(client, merchant_headers)
    response = await settle(client, admin_headers, merchant.id, ids, platform_fee_percentage="2.5")
    assert response.status_code == 201
    assert Decimal(response.json()["platform_fee_amount"]) == Decimal("25")
    assert Decimal(response.json()["net_settlement_amount"]) == Decimal("975")


@pytest.mark.asyncio
async def test_ineligible_transactions_rejected(
    client: AsyncClient, paid_bookings, merchant, merchant_headers, manager_headers
):
    ids = await eligible_ids(client, merchant_headers)

    response = await settle(client, manager_headers, merchant.id, ids + [9999])
    assert response.status_code == 400
    assert "9999" in response.json()["detail"]

    # Already settled transactions cannot be settled twice
    await settle(client, manager_headers, merchant.id, ids[:1])
    response = await settle(client, manager_headers, merchant.id, ids)
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_settlement_for_unknown_merchant(client: AsyncClient, student, manager_headers):
    response = await settle(client, manager_headers, student.id, [1])
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_merchants_cannot_settle_themselves(
    client: AsyncClient, paid_bookings, merchant, merchant_headers
):
    ids = await eligible_ids(client, merchant_headers)
    response = await settle(client, merchant_headers, merchant.id, ids)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_status_workflow(
    client: AsyncClient, paid_bookings, merchant, merchant_headers, manager_headers
):
    ids = await eligible_ids(client, merchant_headers)
    settlement_id = (await settle(client, manager_headers, merchant.id, ids)).json()["id"]
    url = f"/api/v1/settlements/{settlement_id}/status"

    response = await client.patch(url, json={"status": "processing"}, headers=manager_headers)
    assert response.status_code == 200
    assert response.json()["status"] == "processing"

    response = await client.patch(url, json={"status": "paid"}, headers=manager_headers)
    assert response.status_code == 400

    response = await client.patch(
        url,
        json={"status": "paid", "payment_method": "bank_transfer", "payment_reference": "NEFT-42"},
        headers=manager_headers,
    )
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "paid"
    assert data["payment_reference"] == "NEFT-42"
    assert data["payment_date"] is not None

    response = await client.patch(url, json={"status": "cancelled"}, headers=manager_headers)
    assert response.status_code == 400

    notifications = await client.get("/api/v1/notifications/", headers=merchant_headers)
    assert "Settlement paid" in {n["title"] for n in notifications.json()}


@pytest.mark.asyncio
async def test_cancelling_releases_transactions(
    client: AsyncClient, paid_bookings, merchant, merchant_headers, manager_headers
):
    ids = await eligible_ids(client, merchant_headers)
    settlement_id = (await settle(client, manager_headers, merchant.id, ids)).json()["id"]

    response = await client.patch(
        f"/api/v1/settlements/{settlement_id}/status",
        json={"status": "cancelled"},
        headers=manager_headers,
    )
    assert response.status_code == 200
    assert sorted(await eligible_ids(client, merchant_headers)) == sorted(ids)

    # The released transactions can go into a new settlement
    response = await settle(client, manager_headers, merchant.id, ids)
    assert response.status_code == 201


@pytest.mark.asyncio
async def test_settlement_visibility(
    client: AsyncClient, paid_bookings, merchant, other_merchant, merchant_headers, manager_headers
):
    ids = await eligible_ids(client, merchant_headers)
    settlement_id = (await settle(client, manager_headers, merchant.id, ids)).json()["id"]

    mine = await client.get("/api/v1/settlements/", headers=merchant_headers)
    assert [s["id"] for s in mine.json()] == [settlement_id]

    rival_headers = headers_for(other_merchant)
    assert (await client.get("/api/v1/settlements/", headers=rival_headers)).json() == []
    response = await client.get(f"/api/v1/settlements/{settlement_id}", headers=rival_headers)
    assert response.status_code == 404

    staff_view = await client.get(
        "/api/v1/settlements/", params={"merchant_id": merchant.id}, headers=manager_headers
    )
    assert [s["id"] for s in staff_view.json()] == [settlement_id]


@pytest.mark.asyncio
async def test_balance_scope(
    client: AsyncClient, paid_bookings, merchant, manager_headers, student_headers
):
    response = await client.get("/api/v1/settlements/unsettled", headers=manager_headers)
    assert response.status_code == 400

    assert len(await eligible_ids(client, manager_headers, merchant_id=merchant.id)) == 2

    response = await client.get("/api/v1/settlements/unsettled", headers=student_headers)
    assert response.status_code == 403
