"""
Tests for incharge invitations and what an incharge may do once active.
"""

from datetime import timedelta

import pytest
from httpx import AsyncClient
from sqlalchemy import select, update

from conftest import PASSWORD, TestSessionLocal, future, headers_for
from studyhall.db.base import utcnow
from studyhall.models.incharge import Incharge

INCHARGE_PASSWORD = "incharge-pass-1"


def invite_payload(hall_ids: list, **overrides) -> dict:
    payload = {
        "full_name": "Kiran Incharge",
        "email": "Kiran@Example.com",
        "mobile": "9876543210",
        "study_hall_ids": hall_ids,
        "permissions": {"confirm_payments": True},
    }
    payload.update(overrides)
    return payload


async def pending_token(incharge_id: int) -> str:
    """The invitee's copy of the token, as delivered to them."""
    async with TestSessionLocal() as session:
        result = await session.execute(
            select(Incharge.invitation_token).where(Incharge.id == incharge_id)
        )
        return result.scalar_one()


async def invite(client: AsyncClient, headers: dict, hall_ids: list, **overrides):
    return await client.post(
        "/api/v1/incharges/", json=invite_payload(hall_ids, **overrides), headers=headers
    )


async def onboard(client: AsyncClient, merchant_headers: dict, hall_id: int) -> dict:
    """Invite, accept and log in; returns auth headers for the new incharge."""
    invited = await invite(client, merchant_headers, [hall_id])
    token = await pending_token(invited.json()["id"])
    accepted = await client.post(
        "/api/v1/incharges/accept", json={"token": token, "password": INCHARGE_PASSWORD}
    )
    assert accepted.status_code == 200
    login = await client.post(
        "/api/v1/auth/login", json={"email": "kiran@example.com", "password": INCHARGE_PASSWORD}
    )
    return {"Authorization": f"Bearer {login.json()['access_token']}"}


@pytest.mark.asyncio
async def test_merchant_invites_incharge(client: AsyncClient, study_hall, merchant, merchant_headers):
    response = await invite(client, merchant_headers, [study_hall.id])
    assert response.status_code == 201
    data = response.json()
    assert data["merchant_id"] == merchant.id
    assert data["email"] == "kiran@example.com"
    assert data["status"] == "invited"
    assert data["account_activated"] is False
    assert data["user_id"] is None
    assert data["assigned_study_hall_ids"] == [study_hall.id]
    assert "invitation_link" not in data
    assert await pending_token(data["id"]) not in response.text

    listing = await client.get("/api/v1/incharges/", headers=merchant_headers)
    assert [i["id"] for i in listing.json()] == [data["id"]]


@pytest.mark.asyncio
async def test_invitation_rules(
    client: AsyncClient, study_hall, merchant_headers, other_merchant, student_headers
):
    assert (await invite(client, merchant_headers, [study_hall.id], mobile="123")).status_code == 422
    assert (await invite(client, student_headers, [study_hall.id])).status_code == 403

    # Halls must belong to the inviting merchant
    response = await invite(client, headers_for(other_merchant), [study_hall.id])
    assert response.status_code == 400

    assert (await invite(client, merchant_headers, [study_hall.id])).status_code == 201
    assert (await invite(client, merchant_headers, [study_hall.id])).status_code == 409


@pytest.mark.asyncio
async def test_accept_invitation_creates_account(client: AsyncClient, study_hall, merchant_headers):
    invited = await invite(client, merchant_headers, [study_hall.id])
    token = await pending_token(invited.json()["id"])

    response = await client.post(
        "/api/v1/incharges/accept", json={"token": token, "password": INCHARGE_PASSWORD}
    )
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "active"
    assert data["account_activated"] is True
    assert data["user_id"] is not None

    login = await client.post(
        "/api/v1/auth/login", json={"email": "kiran@example.com", "password": INCHARGE_PASSWORD}
    )
    assert login.status_code == 200
    assert login.json()["role"] == "incharge"

    # Tokens are single use
    again = await client.post(
        "/api/v1/incharges/accept", json={"token": token, "password": INCHARGE_PASSWORD}
    )
    assert again.status_code == 404


@pytest.mark.asyncio
async def test_expired_invitation(client: AsyncClient, study_hall, merchant_headers):
    invited = await invite(client, merchant_headers, [study_hall.id])
    async with TestSessionLocal() as session:
        await session.execute(
            update(Incharge)
            .where(Incharge.id == invited.json()["id"])
            .values(invitation_sent_at=utcnow() - timedelta(days=8))
        )
        await session.commit()

    response = await client.post(
        "/api/v1/incharges/accept",
        json={"token": await pending_token(invited.json()["id"]), "password": INCHARGE_PASSWORD},
    )
    assert response.status_code == 410


@pytest.mark.asyncio
async def test_unknown_token(client: AsyncClient, db_session):
    response = await client.post(
        "/api/v1/incharges/accept", json={"token": "x" * 43, "password": INCHARGE_PASSWORD}
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_incharge_manages_only_assigned_halls(
    client: AsyncClient, study_hall, merchant_headers
):
    other_hall = await client.post(
        "/api/v1/study-halls/",
        json={
            "name": "Annex",
            "location": "HSR Layout, Bengaluru",
            "rows": 1,
            "seats_per_row": 2,
            "daily_price": "250.00",
            "weekly_price": "1500.00",
            "monthly_price": "5000.00",
        },
        headers=merchant_headers,
    )
    headers = await onboard(client, merchant_headers, study_hall.id)

    response = await client.get(f"/api/v1/study-halls/{study_hall.id}/occupancy", headers=headers)
    assert response.status_code == 200

    response = await client.get(
        f"/api/v1/study-halls/{other_hall.json()['id']}/occupancy", headers=headers
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_incharge_actions_are_logged(
    client: AsyncClient, study_hall, seat_ids, merchant_headers, student_headers
):
    headers = await onboard(client, merchant_headers, study_hall.id)
    created = await client.post(
        "/api/v1/bookings/",
        json={
            "study_hall_id": study_hall.id,
            "seat_id": seat_ids["A1"],
            "start_date": future(1).isoformat(),
            "end_date": future(3).isoformat(),
            "payment_method": "offline",
        },
        headers=student_headers,
    )
    booking_id = created.json()["booking"]["id"]

    visible = await client.get("/api/v1/bookings/", headers=headers)
    assert [b["id"] for b in visible.json()] == [booking_id]

    response = await client.post(
        f"/api/v1/payments/transactions/{created.json()['payment']['transaction_id']}/confirm-offline",
        json={"reference": "CASH-12"},
        headers=headers,
    )
    assert response.status_code == 200

    activity = await client.get("/api/v1/incharges/activity", headers=merchant_headers)
    entries = activity.json()
    assert [e["action"] for e in entries] == ["offline_payment_confirmed"]
    assert entries[0]["booking_id"] == booking_id
    assert entries[0]["details"]["reference"] == "CASH-12"


@pytest.mark.asyncio
async def test_deactivated_incharge_loses_access(client: AsyncClient, study_hall, merchant_headers):
    headers = await onboard(client, merchant_headers, study_hall.id)
    incharge_id = (await client.get("/api/v1/incharges/", headers=merchant_headers)).json()[0]["id"]

    response = await client.patch(
        f"/api/v1/incharges/{incharge_id}", json={"status": "inactive"}, headers=merchant_headers
    )
    assert response.status_code == 200
    assert response.json()["status"] == "inactive"

    response = await client.get(f"/api/v1/study-halls/{study_hall.id}/occupancy", headers=headers)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_other_merchant_cannot_see_incharge(
    client: AsyncClient, study_hall, merchant_headers, other_merchant
):
    invited = await invite(client, merchant_headers, [study_hall.id])
    response = await client.get(
        f"/api/v1/incharges/{invited.json()['id']}", headers=headers_for(other_merchant)
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_existing_account_cannot_be_invited(client: AsyncClient, study_hall, student, merchant_headers):
    response = await invite(client, merchant_headers, [study_hall.id], email="student@example.com")
    assert response.status_code == 409

    login = await client.post(
        "/api/v1/auth/login", json={"email": "student@example.com", "password": PASSWORD}
    )
    assert login.status_code == 200
    assert login.json()["role"] == "student"


@pytest.mark.asyncio
async def test_accepting_never_changes_an_existing_account(
    client: AsyncClient, study_hall, merchant_headers
):
    invited = await invite(client, merchant_headers, [study_hall.id])
    registered = await client.post(
        "/api/v1/auth/register",
        json={"email": "kiran@example.com", "full_name": "Kiran", "password": "kirans-own-pass"},
    )
    assert registered.status_code == 201

    response = await client.post(
        "/api/v1/incharges/accept",
        json={"token": await pending_token(invited.json()["id"]), "password": "chosen-by-someone"},
    )
    assert response.status_code == 409

    own = await client.post(
        "/api/v1/auth/login", json={"email": "kiran@example.com", "password": "kirans-own-pass"}
    )
    assert own.status_code == 200
    assert own.json()["role"] == "student"
    other = await client.post(
        "/api/v1/auth/login", json={"email": "kiran@example.com", "password": "chosen-by-someone"}
    )
    assert other.status_code == 401


@pytest.mark.asyncio
async def test_second_merchant_invitation_after_acceptance(
    client: AsyncClient, study_hall, merchant_headers, other_merchant
):
    rival_headers = headers_for(other_merchant)
    rival_hall = await client.post(
        "/api/v1/study-halls/",
        json={
            "name": "Rival Hall",
            "location": "Jayanagar, Bengaluru",
            "rows": 1,
            "seats_per_row": 2,
            "daily_price": "250.00",
            "weekly_price": "1500.00",
            "monthly_price": "5000.00",
        },
        headers=rival_headers,
    )
    first = await invite(client, merchant_headers, [study_hall.id])
    second = await invite(client, rival_headers, [rival_hall.json()["id"]])
    assert second.status_code == 201

    accepted = await client.post(
        "/api/v1/incharges/accept",
        json={"token": await pending_token(first.json()["id"]), "password": INCHARGE_PASSWORD},
    )
    assert accepted.status_code == 200

    response = await client.post(
        "/api/v1/incharges/accept",
        json={"token": await pending_token(second.json()["id"]), "password": INCHARGE_PASSWORD},
    )
    assert response.status_code == 409
