"""
Tests for CSV exports.
"""

import csv
import io
from datetime import date, timedelta

import pytest
from httpx import AsyncClient

from conftest import headers_for


def parse(text: str) -> list[list[str]]:
    return list(csv.reader(io.StringIO(text)))


@pytest.mark.asyncio
async def test_bookings_export_for_student(
    client: AsyncClient, student, other_student, booking_factory, student_headers
):
    mine = await booking_factory(student, "A1")
    await booking_factory(other_student, "A2")

    response = await client.get("/api/v1/exports/bookings.csv", headers=student_headers)
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert response.headers["content-disposition"] == (
        f'attachment; filename="bookings_{date.today().isoformat()}.csv"'
    )

    rows = parse(response.text)
    assert rows[0][:3] == ["booking_id", "created_at", "student_email"]
    assert len(rows) == 2
    assert rows[1][0] == str(mine.id)
    assert rows[1][2] == "student@example.com"
    assert rows[1][3] == "Quiet Corner"
    assert rows[1][4] == "A1"


@pytest.mark.asyncio
async def test_bookings_export_scoped_to_merchant(
    client: AsyncClient, student, other_student, booking_factory, merchant_headers, other_merchant
):
    await booking_factory(student, "A1")
    await booking_factory(other_student, "A2")

    rows = parse((await client.get("/api/v1/exports/bookings.csv", headers=merchant_headers)).text)
    assert len(rows) == 3

    rival = await client.get("/api/v1/exports/bookings.csv", headers=headers_for(other_merchant))
    assert len(parse(rival.text)) == 1


@pytest.mark.asyncio
async def test_export_date_range(client: AsyncClient, student, booking_factory, student_headers):
    await booking_factory(student, "A1")
    today = date.today()

    included = await client.get(
        "/api/v1/exports/bookings.csv",
        params={"start_date": today.isoformat(), "end_date": today.isoformat()},
        headers=student_headers,
    )
    assert len(parse(included.text)) == 2

    excluded = await client.get(
        "/api/v1/exports/bookings.csv",
        params={"start_date": (today + timedelta(days=1)).isoformat()},
        headers=student_headers,
    )
    assert len(parse(excluded.text)) == 1

    reversed_range = await client.get(
        "/api/v1/exports/bookings.csv",
        params={"start_date": today.isoformat(), "end_date": (today - timedelta(days=1)).isoformat()},
        headers=student_headers,
    )
    assert reversed_range.status_code == 400


@pytest.mark.asyncio
async def test_transactions_export(client: AsyncClient, student, booking_factory, merchant_headers):
    booking = await booking_factory(student, "B1", payment_method="ekqr")

    response = await client.get("/api/v1/exports/transactions.csv", headers=merchant_headers)
    assert response.status_code == 200
    assert "transactions_" in response.headers["content-disposition"]

    rows = parse(response.text)
    assert rows[0][0] == "transaction_id"
    assert len(rows) == 2
    record = dict(zip(rows[0], rows[1]))
    assert record["booking_id"] == str(booking.id)
    assert record["payment_method"] == "ekqr"
    assert record["status"] == "completed"
    assert record["qr_id"] == f"qr_{booking.id}"


@pytest.mark.asyncio
async def test_settlements_export_roles(
    client: AsyncClient, student, booking_factory, merchant, merchant_headers, student_headers, settlement_manager
):
    await booking_factory(student, "A1")
    manager_headers = headers_for(settlement_manager)
    eligible = await client.get(
        "/api/v1/settlements/eligible", params={"merchant_id": merchant.id}, headers=manager_headers
    )
    await client.post(
        "/api/v1/settlements/",
        json={"merchant_id": merchant.id, "transaction_ids": [t["transaction_id"] for t in eligible.json()]},
        headers=manager_headers,
    )

    response = await client.get("/api/v1/exports/settlements.csv", headers=merchant_headers)
    rows = parse(response.text)
    assert rows[0][0] == "settlement_id"
    record = dict(zip(rows[0], rows[1]))
    assert record["merchant_id"] == str(merchant.id)
    assert record["status"] == "pending"
    assert record["transactions"] == "1"

    denied = await client.get("/api/v1/exports/settlements.csv", headers=student_headers)
    assert denied.status_code == 403
