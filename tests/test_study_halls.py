"""
Tests for study hall management, seat maps and availability lookups.
"""

from datetime import date, timedelta

import pytest
from httpx import AsyncClient

from conftest import future, headers_for
from studyhall.models.booking import BookingStatus


def hall_payload(**overrides) -> dict:
    payload = {
        "name": "Focus Point",
        "location": "Koramangala, Bengaluru",
        "amenities": ["wifi", "locker"],
        "rows": 2,
        "seats_per_row": 4,
        "daily_price": "250.00",
        "weekly_price": "1500.00",
        "monthly_price": "5000.00",
    }
    payload.update(overrides)
    return payload


@pytest.mark.asyncio
async def test_create_hall_generates_seats(client: AsyncClient, merchant, merchant_headers):
    response = await client.post("/api/v1/study-halls/", json=hall_payload(), headers=merchant_headers)
    assert response.status_code == 201
    data = response.json()
    assert data["merchant_id"] == merchant.id
    assert data["total_seats"] == 8
    labels = [seat["seat_label"] for seat in data["seats"]]
    assert labels == ["A1", "A2", "A3", "A4", "B1", "B2", "B3", "B4"]
    assert all(seat["is_available"] for seat in data["seats"])


@pytest.mark.asyncio
async def test_create_hall_with_custom_row_names(client: AsyncClient, merchant_headers):
    response = await client.post(
        "/api/v1/study-halls/",
        json=hall_payload(seats_per_row=2, custom_row_names=["Front", "Back"]),
        headers=merchant_headers,
    )
    assert response.status_code == 201
    labels = [seat["seat_label"] for seat in response.json()["seats"]]
    assert labels == ["Front1", "Front2", "Back1", "Back2"]


@pytest.mark.asyncio
async def test_custom_row_names_must_match_rows(client: AsyncClient, merchant_headers):
    response = await client.post(
        "/api/v1/study-halls/",
        json=hall_payload(custom_row_names=["Only"]),
        headers=merchant_headers,
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_row_names_cannot_share_seat_labels(client: AsyncClient, merchant_headers):
    # Row "A" seat 11 and row "A1" seat 1 would both be "A11"
    response = await client.post(
        "/api/v1/study-halls/",
        json=hall_payload(rows=2, seats_per_row=11, custom_row_names=["A", "A1"]),
        headers=merchant_headers,
    )
    assert response.status_code == 422
    assert "A11" in response.text

    short_rows = await client.post(
        "/api/v1/study-halls/",
        json=hall_payload(rows=2, seats_per_row=9, custom_row_names=["A", "A1"]),
        headers=merchant_headers,
    )
    assert short_rows.status_code == 201
    assert len({seat["seat_label"] for seat in short_rows.json()["seats"]}) == 18


@pytest.mark.asyncio
async def test_row_names_fit_the_seat_columns(client: AsyncClient, merchant_headers):
    response = await client.post(
        "/api/v1/study-halls/",
        json=hall_payload(custom_row_names=["Mezzanine-East", "Back"]),
        headers=merchant_headers,
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_layout_update_rejects_colliding_labels(client: AsyncClient, study_hall, merchant_headers):
    response = await client.patch(
        f"/api/v1/study-halls/{study_hall.id}",
        json={"seats_per_row": 12, "custom_row_names": ["B", "B1"]},
        headers=merchant_headers,
    )
    assert response.status_code == 400
    assert "B11" in response.json()["detail"]


@pytest.mark.asyncio
async def test_student_cannot_create_hall(client: AsyncClient, student_headers):
    response = await client.post("/api/v1/study-halls/", json=hall_payload(), headers=student_headers)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_admin_creates_hall_for_merchant(client: AsyncClient, merchant, admin_headers):
    response = await client.post(
        "/api/v1/study-halls/",
        json=hall_payload(merchant_id=merchant.id),
        headers=admin_headers,
    )
    assert response.status_code == 201
    assert response.json()["merchant_id"] == merchant.id


@pytest.mark.asyncio
async def test_admin_must_name_a_merchant(client: AsyncClient, admin_headers):
    response = await client.post("/api/v1/study-halls/", json=hall_payload(), headers=admin_headers)
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_list_and_search_halls(client: AsyncClient, study_hall, merchant_headers):
    await client.post(
        "/api/v1/study-halls/",
        json=hall_payload(name="Night Owl", location="Pune"),
        headers=merchant_headers,
    )

    response = await client.get("/api/v1/study-halls/")
    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 2
    assert data["cached"] is False

    response = await client.get("/api/v1/study-halls/", params={"search": "indiranagar"})
    names = [hall["name"] for hall in response.json()["items"]]
    assert names == ["Quiet Corner"]

    response = await client.get("/api/v1/study-halls/", params={"max_price": "260"})
    names = [hall["name"] for hall in response.json()["items"]]
    assert names == ["Night Owl"]


@pytest.mark.asyncio
async def test_inactive_halls_are_hidden(client: AsyncClient, study_hall, admin_headers):
    response = await client.patch(
        f"/api/v1/study-halls/{study_hall.id}/status",
        json={"status": "maintenance"},
        headers=admin_headers,
    )
    assert response.status_code == 200

    response = await client.get("/api/v1/study-halls/")
    assert response.json()["total"] == 0


@pytest.mark.asyncio
async def test_get_hall_detail(client: AsyncClient, study_hall):
    response = await client.get(f"/api/v1/study-halls/{study_hall.id}")
    assert response.status_code == 200
    assert len(response.json()["seats"]) == 6


@pytest.mark.asyncio
async def test_get_missing_hall(client: AsyncClient):
    response = await client.get("/api/v1/study-halls/999")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_merchant_grows_layout(client: AsyncClient, study_hall, merchant_headers):
    response = await client.patch(
        f"/api/v1/study-halls/{study_hall.id}",
        json={"rows": 3, "daily_price": "320.00"},
        headers=merchant_headers,
    )
    assert response.status_code == 200
    data = response.json()
    assert data["total_seats"] == 9
    assert {"C1", "C2", "C3"} <= {seat["seat_label"] for seat in data["seats"]}
    assert data["daily_price"] == "320.00"


@pytest.mark.asyncio
async def test_layout_locked_while_bookings_are_upcoming(
    client: AsyncClient, study_hall, student, booking_factory, merchant_headers
):
    await booking_factory(student, "A1", start=future(3))

    response = await client.patch(
        f"/api/v1/study-halls/{study_hall.id}",
        json={"seats_per_row": 2},
        headers=merchant_headers,
    )
    assert response.status_code == 409

    # Non-layout fields can still change
    response = await client.patch(
        f"/api/v1/study-halls/{study_hall.id}",
        json={"description": "Now with filtered water"},
        headers=merchant_headers,
    )
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_shrinking_layout_retires_seats_with_history(
    client: AsyncClient, study_hall, student, booking_factory, merchant_headers
):
    past = date.today() - timedelta(days=20)
    await booking_factory(
        student,
        "B3",
        start=past,
        end=past + timedelta(days=2),
        status=BookingStatus.COMPLETED.value,
    )

    response = await client.patch(
        f"/api/v1/study-halls/{study_hall.id}",
        json={"rows": 1},
        headers=merchant_headers,
    )
    assert response.status_code == 200
    data = response.json()
    assert data["total_seats"] == 3
    seats = {seat["seat_label"]: seat for seat in data["seats"]}
    assert "B1" not in seats
    assert seats["B3"]["is_available"] is False
    assert seats["A1"]["is_available"] is True


@pytest.mark.asyncio
async def test_other_merchant_cannot_edit(client: AsyncClient, study_hall, other_merchant):
    response = await client.patch(
        f"/api/v1/study-halls/{study_hall.id}",
        json={"name": "Hijacked"},
        headers=headers_for(other_merchant),
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_block_seat(client: AsyncClient, study_hall, seat_ids, merchant_headers, other_merchant):
    response = await client.patch(
        f"/api/v1/study-halls/{study_hall.id}/seats/{seat_ids['A2']}",
        json={"is_available": False},
        headers=merchant_headers,
    )
    assert response.status_code == 200
    assert response.json()["is_available"] is False

    response = await client.patch(
        f"/api/v1/study-halls/{study_hall.id}/seats/{seat_ids['A2']}",
        json={"is_available": True},
        headers=headers_for(other_merchant),
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_seat_availability_reports_conflicts(
    client: AsyncClient, study_hall, seat_ids, student, booking_factory
):
    booking = await booking_factory(student, "A1", start=future(1), end=future(3))

    response = await client.get(
        f"/api/v1/study-halls/{study_hall.id}/seats/{seat_ids['A1']}/availability",
        params={"start_date": future(3).isoformat(), "end_date": future(5).isoformat()},
    )
    assert response.status_code == 200
    data = response.json()
    assert data["available"] is False
    assert [c["booking_id"] for c in data["conflicts"]] == [booking.id]

    # The day after the stay ends is free
    response = await client.get(
        f"/api/v1/study-halls/{study_hall.id}/seats/{seat_ids['A1']}/availability",
        params={"start_date": future(4).isoformat(), "end_date": future(5).isoformat()},
    )
    assert response.json()["available"] is True


@pytest.mark.asyncio
async def test_hall_availability_map(client: AsyncClient, study_hall, seat_ids, student, booking_factory):
    await booking_factory(student, "A1", start=future(1), end=future(3))

    response = await client.get(
        f"/api/v1/study-halls/{study_hall.id}/availability",
        params={"start_date": future(2).isoformat(), "end_date": future(2).isoformat()},
    )
    assert response.status_code == 200
    seats = response.json()["seats"]
    assert seats[str(seat_ids["A1"])] is False
    assert seats[str(seat_ids["A2"])] is True


@pytest.mark.asyncio
async def test_cancelled_bookings_do_not_block(
    client: AsyncClient, study_hall, seat_ids, student, booking_factory
):
    await booking_factory(
        student,
        "A1",
        start=future(1),
        end=future(3),
        status=BookingStatus.CANCELLED.value,
    )
    response = await client.get(
        f"/api/v1/study-halls/{study_hall.id}/availability",
        params={"start_date": future(1).isoformat(), "end_date": future(3).isoformat()},
    )
    assert response.json()["seats"][str(seat_ids["A1"])] is True


@pytest.mark.asyncio
async def test_per_date_availability(client: AsyncClient, study_hall, seat_ids, student, booking_factory):
    await booking_factory(student, "A1", start=future(1), end=future(2))

    response = await client.get(
        f"/api/v1/study-halls/{study_hall.id}/availability/dates",
        params={"start_date": future(1).isoformat(), "end_date": future(3).isoformat()},
    )
    assert response.status_code == 200
    days = response.json()
    assert len(days) == 3
    assert days[0]["occupied_seat_ids"] == [seat_ids["A1"]]
    assert seat_ids["A1"] not in days[1]["available_seat_ids"]
    assert seat_ids["A1"] in days[2]["available_seat_ids"]
    assert days[2]["total_seats"] == 6


@pytest.mark.asyncio
async def test_per_date_availability_range_limit(client: AsyncClient, study_hall):
    response = await client.get(
        f"/api/v1/study-halls/{study_hall.id}/availability/dates",
        params={"start_date": future(1).isoformat(), "end_date": future(100).isoformat()},
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_reversed_range_rejected(client: AsyncClient, study_hall):
    response = await client.get(
        f"/api/v1/study-halls/{study_hall.id}/availability",
        params={"start_date": future(5).isoformat(), "end_date": future(1).isoformat()},
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_occupancy_for_managers_only(
    client: AsyncClient, study_hall, student, booking_factory, merchant_headers, student_headers
):
    today = date.today()
    await booking_factory(
        student, "A1", start=today, end=today + timedelta(days=1), status=BookingStatus.ACTIVE.value
    )

    response = await client.get(
        f"/api/v1/study-halls/{study_hall.id}/occupancy", headers=merchant_headers
    )
    assert response.status_code == 200
    data = response.json()
    assert data["occupied"] == 1
    assert data["total"] == 6
    assert data["rate"] == pytest.approx(16.67)

    response = await client.get(
        f"/api/v1/study-halls/{study_hall.id}/occupancy", headers=student_headers
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_merchant_lists_own_halls(client: AsyncClient, study_hall, merchant_headers, other_merchant):
    response = await client.get("/api/v1/study-halls/mine", headers=merchant_headers)
    assert [hall["id"] for hall in response.json()] == [study_hall.id]

    response = await client.get("/api/v1/study-halls/mine", headers=headers_for(other_merchant))
    assert response.json() == []
