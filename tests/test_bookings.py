"""
Tests for booking endpoints including concurrency scenarios.
"""

import asyncio
from datetime import date, timedelta

import pytest
from httpx import AsyncClient
from sqlalchemy import select, update

from conftest import TestSessionLocal, future, headers_for
from studyhall.models.booking import Booking, BookingStatus, PaymentStatus
from studyhall.models.study_hall import Seat
from studyhall.services import booking_service


def booking_payload(hall_id: int, seat_id: int, start: date, end: date, method: str = "offline", **extra):
    return {
        "study_hall_id": hall_id,
        "seat_id": seat_id,
        "start_date": start.isoformat(),
        "end_date": end.isoformat(),
        "payment_method": method,
        **extra,
    }


@pytest.mark.asyncio
async def test_create_offline_booking(client: AsyncClient, study_hall, seat_ids, student, student_headers):
    """A new booking holds the seat as pending until it is paid."""
    response = await client.post(
        "/api/v1/bookings/",
        json=booking_payload(study_hall.id, seat_ids["A1"], future(1), future(3)),
        headers=student_headers,
    )
    assert response.status_code == 201
    data = response.json()
    booking = data["booking"]
    assert booking["user_id"] == student.id
    assert booking["seat_id"] == seat_ids["A1"]
    assert booking["status"] == "pending"
    assert booking["payment_status"] == "pending"
    assert booking["booking_period"] == "daily"
    assert float(booking["base_amount"]) == 600
    assert float(booking["convenience_fee"]) == 0
    assert float(booking["total_amount"]) == 600

    payment = data["payment"]
    assert payment["payment_method"] == "offline"
    assert payment["status"] == "pending"
    assert "instructions" in payment["checkout"]


@pytest.mark.asyncio
async def test_create_razorpay_booking(client: AsyncClient, study_hall, seat_ids, student_headers, gateways):
    response = await client.post(
        "/api/v1/bookings/",
        json=booking_payload(study_hall.id, seat_ids["A1"], future(1), future(3), "razorpay"),
        headers=student_headers,
    )
    assert response.status_code == 201
    data = response.json()
    booking_id = data["booking"]["id"]
    assert float(data["booking"]["convenience_fee"]) == 13
    assert float(data["booking"]["total_amount"]) == 613
    assert data["payment"]["status"] == "processing"
    assert data["payment"]["provider_order_id"] == f"order_{booking_id}"
    assert [started[0] for started in gateways["razorpay"].started] == [booking_id]


@pytest.mark.asyncio
async def test_create_qr_booking(client: AsyncClient, study_hall, seat_ids, student_headers):
    response = await client.post(
        "/api/v1/bookings/",
        json=booking_payload(study_hall.id, seat_ids["B1"], future(1), future(1), "ekqr"),
        headers=student_headers,
    )
    assert response.status_code == 201
    data = response.json()
    booking_id = data["booking"]["id"]
    assert data["payment"]["qr_id"] == f"qr_{booking_id}"
    assert data["payment"]["qr_image_url"].endswith(f"/{booking_id}.png")


@pytest.mark.asyncio
async def test_book_unauthenticated(client: AsyncClient, study_hall, seat_ids):
    """Unauthenticated booking returns 401."""
    response = await client.post(
        "/api/v1/bookings/",
        json=booking_payload(study_hall.id, seat_ids["A1"], future(1), future(3)),
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_overlapping_booking_rejected(
    client: AsyncClient, study_hall, seat_ids, student_headers, other_student_headers
):
    """A second booking for the same seat and overlapping dates returns 409."""
    first = await client.post(
        "/api/v1/bookings/",
        json=booking_payload(study_hall.id, seat_ids["A1"], future(1), future(3)),
        headers=student_headers,
    )
    assert first.status_code == 201

    second = await client.post(
        "/api/v1/bookings/",
        json=booking_payload(study_hall.id, seat_ids["A1"], future(3), future(6)),
        headers=other_student_headers,
    )
    assert second.status_code == 409
    assert "A1" in second.json()["detail"]

    # Back-to-back stays on the same seat are fine
    adjacent = await client.post(
        "/api/v1/bookings/",
        json=booking_payload(study_hall.id, seat_ids["A1"], future(4), future(6)),
        headers=other_student_headers,
    )
    assert adjacent.status_code == 201


@pytest.mark.asyncio
async def test_same_user_cannot_hold_two_seats_in_a_hall(
    client: AsyncClient, study_hall, seat_ids, student_headers
):
    first = await client.post(
        "/api/v1/bookings/",
        json=booking_payload(study_hall.id, seat_ids["A1"], future(1), future(3)),
        headers=student_headers,
    )
    assert first.status_code == 201

    second = await client.post(
        "/api/v1/bookings/",
        json=booking_payload(study_hall.id, seat_ids["B2"], future(2), future(2)),
        headers=student_headers,
    )
    assert second.status_code == 409


@pytest.mark.asyncio
async def test_blocked_seat_rejected(client: AsyncClient, db_session, study_hall, seat_ids, student_headers):
    seat = await db_session.get(Seat, seat_ids["A3"])
    seat.is_available = False
    await db_session.commit()

    response = await client.post(
        "/api/v1/bookings/",
        json=booking_payload(study_hall.id, seat_ids["A3"], future(1), future(2)),
        headers=student_headers,
    )
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_past_start_date_rejected(client: AsyncClient, study_hall, seat_ids, student_headers):
    yesterday = date.today() - timedelta(days=1)
    response = await client.post(
        "/api/v1/bookings/",
        json=booking_payload(study_hall.id, seat_ids["A1"], yesterday, future(2)),
        headers=student_headers,
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_reversed_dates_rejected(client: AsyncClient, study_hall, seat_ids, student_headers):
    response = await client.post(
        "/api/v1/bookings/",
        json=booking_payload(study_hall.id, seat_ids["A1"], future(5), future(2)),
        headers=student_headers,
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_overlong_stay_rejected(client: AsyncClient, study_hall, seat_ids, student_headers):
    response = await client.post(
        "/api/v1/bookings/",
        json=booking_payload(study_hall.id, seat_ids["A1"], future(1), future(400)),
        headers=student_headers,
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_unknown_seat(client: AsyncClient, study_hall, student_headers):
    response = await client.post(
        "/api/v1/bookings/",
        json=booking_payload(study_hall.id, 9999, future(1), future(2)),
        headers=student_headers,
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_inactive_hall_rejects_bookings(
    client: AsyncClient, study_hall, seat_ids, student_headers, admin_headers
):
    await client.patch(
        f"/api/v1/study-halls/{study_hall.id}/status",
        json={"status": "inactive"},
        headers=admin_headers,
    )
    response = await client.post(
        "/api/v1/bookings/",
        json=booking_payload(study_hall.id, seat_ids["A1"], future(1), future(2)),
        headers=student_headers,
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_disabled_payment_method_rejected(
    client: AsyncClient, study_hall, seat_ids, student_headers, admin_headers
):
    response = await client.patch(
        "/api/v1/admin/settings", json={"offline_enabled": False}, headers=admin_headers
    )
    assert response.status_code == 200

    response = await client.post(
        "/api/v1/bookings/",
        json=booking_payload(study_hall.id, seat_ids["A1"], future(1), future(2)),
        headers=student_headers,
    )
    assert response.status_code == 400

    public = await client.get("/api/v1/settings/public")
    assert public.json()["available_payment_methods"] == ["razorpay", "ekqr"]


@pytest.mark.asyncio
async def test_quote_prices_without_reserving(client: AsyncClient, study_hall, seat_ids, student_headers):
    response = await client.post(
        "/api/v1/bookings/quote",
        json=booking_payload(
            study_hall.id, seat_ids["A1"], future(1), future(3), "razorpay", coupon_code="NOPE"
        ),
        headers=student_headers,
    )
    assert response.status_code == 200
    data = response.json()
    assert data["days"] == 3
    assert float(data["total_amount"]) == 613
    assert float(data["coupon_discount"]) == 0
    assert data["coupon_error"] == "Invalid or inactive coupon code"

    bookings = await client.get("/api/v1/bookings/", headers=student_headers)
    assert bookings.json() == []


@pytest.mark.asyncio
async def test_unknown_coupon_rejects_booking(client: AsyncClient, study_hall, seat_ids, student_headers):
    response = await client.post(
        "/api/v1/bookings/",
        json=booking_payload(study_hall.id, seat_ids["A1"], future(1), future(3), coupon_code="NOPE"),
        headers=student_headers,
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_version_conflict_is_retried(
    client: AsyncClient, study_hall, seat_ids, student_headers, monkeypatch
):
    """A concurrent bump of the seat version between read and update forces one retry."""
    original = booking_service.find_conflicts
    calls = {"count": 0}

    async def racing_find_conflicts(db, seat_id, start, end, exclude_booking_id=None):
        calls["count"] += 1
        if calls["count"] == 1:
            await db.execute(
                update(Seat).where(Seat.id == seat_id).values(version=Seat.version + 1)
            )
        return await original(db, seat_id, start, end, exclude_booking_id)

    monkeypatch.setattr(booking_service, "find_conflicts", racing_find_conflicts)

    response = await client.post(
        "/api/v1/bookings/",
        json=booking_payload(study_hall.id, seat_ids["A1"], future(1), future(3)),
        headers=student_headers,
    )
    assert response.status_code == 201
    assert calls["count"] == 2

    async with TestSessionLocal() as session:
        version = (
            await session.execute(select(Seat.version).where(Seat.id == seat_ids["A1"]))
        ).scalar_one()
    assert version == 3


@pytest.mark.asyncio
async def test_persistent_version_conflicts_give_up(
    client: AsyncClient, study_hall, seat_ids, student_headers, monkeypatch
):
    original = booking_service.find_conflicts

    async def always_racing(db, seat_id, start, end, exclude_booking_id=None):
        await db.execute(update(Seat).where(Seat.id == seat_id).values(version=Seat.version + 1))
        return await original(db, seat_id, start, end, exclude_booking_id)

    monkeypatch.setattr(booking_service, "find_conflicts", always_racing)

    response = await client.post(
        "/api/v1/bookings/",
        json=booking_payload(study_hall.id, seat_ids["A1"], future(1), future(3)),
        headers=student_headers,
    )
    assert response.status_code == 409
    assert "high demand" in response.json()["detail"]

    async with TestSessionLocal() as session:
        count = len((await session.execute(select(Booking))).scalars().all())
    assert count == 0


@pytest.mark.asyncio
async def test_concurrent_requests_for_one_seat(
    client: AsyncClient, study_hall, seat_ids, student_headers, other_student_headers
):
    """Two simultaneous overlapping requests: exactly one wins."""
    payload = booking_payload(study_hall.id, seat_ids["B3"], future(2), future(4))
    responses = await asyncio.gather(
        client.post("/api/v1/bookings/", json=payload, headers=student_headers),
        client.post("/api/v1/bookings/", json=payload, headers=other_student_headers),
    )
    assert sorted(r.status_code for r in responses) == [201, 409]


@pytest.mark.asyncio
async def test_list_bookings_is_scoped(
    client: AsyncClient,
    study_hall,
    student,
    other_student,
    booking_factory,
    student_headers,
    merchant_headers,
    other_merchant,
):
    mine = await booking_factory(student, "A1")
    theirs = await booking_factory(other_student, "A2")

    response = await client.get("/api/v1/bookings/", headers=student_headers)
    assert [b["id"] for b in response.json()] == [mine.id]

    response = await client.get("/api/v1/bookings/", headers=merchant_headers)
    assert {b["id"] for b in response.json()} == {mine.id, theirs.id}

    response = await client.get("/api/v1/bookings/", headers=headers_for(other_merchant))
    assert response.json() == []

    response = await client.get(f"/api/v1/bookings/{theirs.id}", headers=student_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_list_bookings_status_filter(client: AsyncClient, student, booking_factory, student_headers):
    await booking_factory(student, "A1", start=future(1), end=future(2))
    cancelled = await booking_factory(
        student, "A2", start=future(5), end=future(6), status=BookingStatus.CANCELLED.value
    )

    response = await client.get(
        "/api/v1/bookings/", params={"status": "cancelled"}, headers=student_headers
    )
    assert [b["id"] for b in response.json()] == [cancelled.id]


@pytest.mark.asyncio
async def test_student_cancels_unpaid_booking(
    client: AsyncClient, study_hall, seat_ids, student_headers, other_student_headers
):
    created = await client.post(
        "/api/v1/bookings/",
        json=booking_payload(study_hall.id, seat_ids["A1"], future(1), future(3)),
        headers=student_headers,
    )
    booking_id = created.json()["booking"]["id"]

    response = await client.post(f"/api/v1/bookings/{booking_id}/cancel", headers=student_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "cancelled"
    assert data["payment_status"] == "failed"

    # The seat is free again
    rebook = await client.post(
        "/api/v1/bookings/",
        json=booking_payload(study_hall.id, seat_ids["A1"], future(1), future(3)),
        headers=other_student_headers,
    )
    assert rebook.status_code == 201

    again = await client.post(f"/api/v1/bookings/{booking_id}/cancel", headers=student_headers)
    assert again.status_code == 400


@pytest.mark.asyncio
async def test_student_cannot_cancel_paid_booking(client: AsyncClient, student, booking_factory, student_headers):
    booking = await booking_factory(student, "A1")
    response = await client.post(f"/api/v1/bookings/{booking.id}/cancel", headers=student_headers)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_merchant_cancels_paid_booking_with_refund(
    client: AsyncClient, student, booking_factory, merchant_headers, student_headers
):
    booking = await booking_factory(student, "A1")

    response = await client.post(
        f"/api/v1/bookings/{booking.id}/cancel",
        json={"reason": "Hall closed for repairs"},
        headers=merchant_headers,
    )
    assert response.status_code == 200
    assert response.json()["payment_status"] == "refunded"

    transactions = await client.get("/api/v1/payments/transactions", headers=student_headers)
    assert transactions.json()[0]["status"] == "refunded"

    notifications = await client.get("/api/v1/notifications/", headers=student_headers)
    assert notifications.json()[0]["title"] == "Booking cancelled"


@pytest.mark.asyncio
async def test_vacate_frees_seat_from_vacate_date(
    client: AsyncClient, study_hall, seat_ids, student, booking_factory, merchant_headers, other_student_headers
):
    today = date.today()
    booking = await booking_factory(
        student,
        "A1",
        start=today - timedelta(days=2),
        end=today + timedelta(days=10),
        status=BookingStatus.ACTIVE.value,
    )

    response = await client.post(
        f"/api/v1/bookings/{booking.id}/vacate",
        json={"vacated_on": future(2).isoformat(), "reason": "Moving cities"},
        headers=merchant_headers,
    )
    assert response.status_code == 200
    data = response.json()
    assert data["is_vacated"] is True
    assert data["vacated_on"] == future(2).isoformat()
    assert data["status"] == "active"

    # Still held the day before the vacate date
    blocked = await client.post(
        "/api/v1/bookings/",
        json=booking_payload(study_hall.id, seat_ids["A1"], future(1), future(1)),
        headers=other_student_headers,
    )
    assert blocked.status_code == 409

    free = await client.post(
        "/api/v1/bookings/",
        json=booking_payload(study_hall.id, seat_ids["A1"], future(2), future(5)),
        headers=other_student_headers,
    )
    assert free.status_code == 201


@pytest.mark.asyncio
async def test_vacate_today_completes_booking(client: AsyncClient, student, booking_factory, merchant_headers):
    today = date.today()
    booking = await booking_factory(
        student, "A1", start=today - timedelta(days=1), end=future(5), status=BookingStatus.ACTIVE.value
    )
    response = await client.post(f"/api/v1/bookings/{booking.id}/vacate", headers=merchant_headers)
    assert response.status_code == 200
    assert response.json()["status"] == "completed"


@pytest.mark.asyncio
async def test_vacate_rules(client: AsyncClient, student, booking_factory, merchant_headers, student_headers):
    pending = await booking_factory(
        student,
        "A1",
        status=BookingStatus.PENDING.value,
        payment_status=PaymentStatus.PENDING.value,
    )
    response = await client.post(f"/api/v1/bookings/{pending.id}/vacate", headers=merchant_headers)
    assert response.status_code == 400

    today = date.today()
    active = await booking_factory(
        student, "B1", start=today, end=future(3), status=BookingStatus.ACTIVE.value
    )
    response = await client.post(f"/api/v1/bookings/{active.id}/vacate", headers=student_headers)
    assert response.status_code == 403

    response = await client.post(
        f"/api/v1/bookings/{active.id}/vacate",
        json={"vacated_on": future(10).isoformat()},
        headers=merchant_headers,
    )
    assert response.status_code == 400
