"""
Tests for referral codes: sharing, applying at sign up or later, and the
rewards credited once the referred user pays for a booking.
"""

import pytest
from httpx import AsyncClient
from sqlalchemy import select

from conftest import TestSessionLocal, future, headers_for
from studyhall.models.booking import Booking
from studyhall.models.referral import Referral
from studyhall.models.reward import RewardTransaction
from studyhall.models.user import User
from studyhall.services import referral_service


async def code_of(client: AsyncClient, headers: dict) -> str:
    response = await client.get("/api/v1/referrals/me", headers=headers)
    assert response.status_code == 200
    return response.json()["code"]


async def register(client: AsyncClient, email: str, referral_code: str | None = None):
    payload = {"email": email, "full_name": "Referred Friend", "password": "securepassword123"}
    if referral_code is not None:
        payload["referral_code"] = referral_code
    return await client.post("/api/v1/auth/register", json=payload)


async def user_by_email(email: str) -> User | None:
    async with TestSessionLocal() as session:
        result = await session.execute(select(User).where(User.email == email))
        return result.scalar_one_or_none()


async def pay_offline(
    client: AsyncClient, headers: dict, merchant_headers: dict, hall_id: int, seat_id: int, first_day: int = 1
) -> int:
    created = await client.post(
        "/api/v1/bookings/",
        json={
            "study_hall_id": hall_id,
            "seat_id": seat_id,
            "start_date": future(first_day).isoformat(),
            "end_date": future(first_day + 2).isoformat(),
            "payment_method": "offline",
        },
        headers=headers,
    )
    assert created.status_code == 201
    confirmed = await client.post(
        f"/api/v1/payments/transactions/{created.json()['payment']['transaction_id']}/confirm-offline",
        json={"reference": "CASH-REF"},
        headers=merchant_headers,
    )
    assert confirmed.status_code == 200
    return created.json()["booking"]["id"]


@pytest.mark.asyncio
async def test_referral_code_is_created_once(client: AsyncClient, student, student_headers):
    first = await client.get("/api/v1/referrals/me", headers=student_headers)
    assert first.status_code == 200
    data = first.json()
    assert data["code"].startswith("ASHA")
    assert len(data["code"]) == 10
    assert data["total_referrals"] == 0

    assert await code_of(client, student_headers) == data["code"]


def test_generated_codes_fall_back_for_names_without_letters():
    assert referral_service.generate_code("42").startswith("SH")
    assert referral_service.normalize_code("  abcd12ef ") == "ABCD12EF"


@pytest.mark.asyncio
async def test_referral_completes_on_first_paid_booking(
    client: AsyncClient, student, student_headers, study_hall, seat_ids, merchant_headers
):
    code = await code_of(client, student_headers)

    registered = await register(client, "friend@example.com", code.lower())
    assert registered.status_code == 201
    friend = await user_by_email("friend@example.com")
    friend_headers = headers_for(friend)

    listed = await client.get("/api/v1/referrals/", headers=student_headers)
    assert [r["status"] for r in listed.json()] == ["pending"]
    assert (await client.get("/api/v1/referrals/me", headers=student_headers)).json()["total_referrals"] == 1

    booking_id = await pay_offline(client, friend_headers, merchant_headers, study_hall.id, seat_ids["A1"])

    referral = (await client.get("/api/v1/referrals/", headers=student_headers)).json()[0]
    assert referral["status"] == "completed"
    assert referral["booking_id"] == booking_id

    referrer = (await client.get("/api/v1/rewards/me", headers=student_headers)).json()
    assert referrer["available_points"] == 1000
    referee = (await client.get("/api/v1/rewards/me", headers=friend_headers)).json()
    assert referee["available_points"] == 510

    stats = (await client.get("/api/v1/referrals/me", headers=student_headers)).json()
    assert stats["successful_referrals"] == 1
    assert stats["total_earnings"] == 1000

    # A second paid booking credits nothing more
    await pay_offline(client, friend_headers, merchant_headers, study_hall.id, seat_ids["A2"], first_day=5)
    async with TestSessionLocal() as session:
        reasons = await session.execute(
            select(RewardTransaction.reason).where(RewardTransaction.user_id == student.id)
        )
        assert reasons.scalars().all() == ["Referral reward"]


@pytest.mark.asyncio
async def test_unknown_code_blocks_registration(client: AsyncClient):
    response = await register(client, "nobody@example.com", "NOPE0000")
    assert response.status_code == 404
    assert response.json()["detail"] == "Invalid referral code"
    assert await user_by_email("nobody@example.com") is None


@pytest.mark.asyncio
async def test_referral_code_rules(
    client: AsyncClient, student, student_headers, other_student, other_student_headers
):
    code = await code_of(client, student_headers)

    own = await client.post(
        "/api/v1/referrals/apply", json={"referral_code": code}, headers=student_headers
    )
    assert own.status_code == 400

    unknown = await client.post(
        "/api/v1/referrals/apply", json={"referral_code": "ZZZZ0000"}, headers=other_student_headers
    )
    assert unknown.status_code == 404

    applied = await client.post(
        "/api/v1/referrals/apply", json={"referral_code": code}, headers=other_student_headers
    )
    assert applied.status_code == 201
    assert applied.json()["status"] == "pending"
    assert applied.json()["referee_id"] == other_student.id

    again = await client.post(
        "/api/v1/referrals/apply", json={"referral_code": code}, headers=other_student_headers
    )
    assert again.status_code == 409


@pytest.mark.asyncio
async def test_apply_with_a_paid_booking_completes_at_once(
    client: AsyncClient,
    student_headers,
    other_student,
    other_student_headers,
    booking_factory,
):
    code = await code_of(client, student_headers)
    unpaid = await booking_factory(other_student, "A1", status="pending", payment_status="pending")
    paid = await booking_factory(
        other_student, "A2", status="confirmed", payment_status="paid", transaction_status="completed"
    )

    rejected = await client.post(
        "/api/v1/referrals/apply",
        json={"referral_code": code, "booking_id": unpaid.id},
        headers=other_student_headers,
    )
    assert rejected.status_code == 400

    response = await client.post(
        "/api/v1/referrals/apply",
        json={"referral_code": code, "booking_id": paid.id},
        headers=other_student_headers,
    )
    assert response.status_code == 201
    assert response.json()["status"] == "completed"
    assert response.json()["booking_id"] == paid.id

    referee = (await client.get("/api/v1/rewards/me", headers=other_student_headers)).json()
    assert referee["available_points"] == 500


@pytest.mark.asyncio
async def test_cannot_claim_someone_elses_booking(
    client: AsyncClient, student, student_headers, other_student_headers, merchant, booking_factory
):
    code = await code_of(client, headers_for(merchant))
    theirs = await booking_factory(
        student, "A1", status="confirmed", payment_status="paid", transaction_status="completed"
    )
    response = await client.post(
        "/api/v1/referrals/apply",
        json={"referral_code": code, "booking_id": theirs.id},
        headers=other_student_headers,
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_monthly_referral_limit(
    client: AsyncClient, student_headers, other_student, other_student_headers, booking_factory, monkeypatch
):
    monkeypatch.setattr(referral_service.settings, "REFERRAL_MONTHLY_LIMIT", 1)
    code = await code_of(client, student_headers)
    paid = await booking_factory(
        other_student, "A1", status="confirmed", payment_status="paid", transaction_status="completed"
    )
    first = await client.post(
        "/api/v1/referrals/apply",
        json={"referral_code": code, "booking_id": paid.id},
        headers=other_student_headers,
    )
    assert first.status_code == 201

    late = await register(client, "late@example.com", code)
    assert late.status_code == 400
    assert late.json()["detail"] == "Referral limit reached for this month"


@pytest.mark.asyncio
async def test_pending_referral_completes_once_under_repeat_payment(
    client: AsyncClient, student_headers, other_student, booking_factory
):
    code = await code_of(client, student_headers)
    paid = await booking_factory(
        other_student, "A1", status="confirmed", payment_status="paid", transaction_status="completed"
    )
    async with TestSessionLocal() as session:
        friend = await session.get(User, other_student.id)
        await referral_service.apply_code(session, friend, code)
        await session.commit()

    async with TestSessionLocal() as first, TestSessionLocal() as second:
        booking_a = await first.get(Booking, paid.id)
        booking_b = await second.get(Booking, paid.id)
        stale = (
            await second.execute(select(Referral).where(Referral.referee_id == other_student.id))
        ).scalar_one()
        await second.commit()
        assert stale.status == "pending"

        assert await referral_service.complete_for_booking(first, booking_a) is True
        await first.commit()
        assert await referral_service.complete(second, stale, booking_b.id) is False
        await second.commit()

    async with TestSessionLocal() as session:
        rows = await session.execute(
            select(RewardTransaction).where(RewardTransaction.reason == "Referral bonus")
        )
        assert len(rows.scalars().all()) == 1
