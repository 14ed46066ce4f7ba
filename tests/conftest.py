"""
Pytest fixtures for test database, client, and authentication.

Runs against a throwaway SQLite database (override with TEST_DATABASE_URL).
Tables are created and dropped around every test; each request gets its own
session, committed on success like the production dependency.
"""

import os

# Settings are read once at import time, so the environment is set first
TEST_DATABASE_URL = os.environ.setdefault(
    "TEST_DATABASE_URL", "sqlite+aiosqlite:///./test_studyhall.db"
)
os.environ["DATABASE_URL"] = TEST_DATABASE_URL
os.environ["REDIS_ENABLED"] = "false"
os.environ["BACKGROUND_TASKS_ENABLED"] = "false"
os.environ["ENVIRONMENT"] = "test"
os.environ["RAZORPAY_KEY_ID"] = "rzp_test_key"
os.environ["RAZORPAY_KEY_SECRET"] = "rzp_test_secret"
os.environ["RAZORPAY_WEBHOOK_SECRET"] = "rzp_webhook_secret"
os.environ["EKQR_API_KEY"] = "ekqr_test_key"
os.environ["EKQR_WEBHOOK_SECRET"] = "ekqr_webhook_secret"

from datetime import date, timedelta
from decimal import Decimal
from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from studyhall.core.security import create_access_token, hash_password
from studyhall.db.base import Base
from studyhall.db.session import get_db
from studyhall.infrastructure.signatures import compute_hmac_sha256
from studyhall.main import app
from studyhall.models.booking import Booking, BookingStatus, PaymentStatus
from studyhall.models.study_hall import Seat, StudyHall, StudyHallStatus
from studyhall.models.transaction import PaymentMethod, Transaction, TransactionStatus
from studyhall.models.user import User, UserRole
from studyhall.services.gateway_factory import clear_gateway_overrides, override_gateway
from studyhall.services.interfaces.payment_gateway import (
    GatewayPayment,
    GatewayStatus,
    PaymentGateway,
)
from studyhall.services.settings_service import get_business_settings
from studyhall.services.realtime import commit_and_publish, discard_queued
from studyhall.services.study_hall_service import layout_labels

test_engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=NullPool)
TestSessionLocal = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)

PASSWORD = "testpassword123"


class FakeGateway(PaymentGateway):
    """In-memory rail: records started payments and answers status checks with `state`."""

    def __init__(self, name: str, state: str = "pending"):
        self.name = name
        self.state = state
        self.started: list[tuple[int, Decimal]] = []
        self.checked: list[str] = []

    @property
    def is_configured(self) -> bool:
        return True

    async def create_payment(self, booking_id, amount, description) -> GatewayPayment:
        self.started.append((booking_id, amount))
        if self.name == PaymentMethod.EKQR.value:
            return GatewayPayment(
                provider_order_id=f"SH{booking_id}",
                qr_id=f"qr_{booking_id}",
                qr_image_url=f"https://qr.example.com/{booking_id}.png",
                checkout={"qr_id": f"qr_{booking_id}"},
            )
        return GatewayPayment(
            provider_order_id=f"order_{booking_id}",
            checkout={"key_id": "rzp_test_key", "order_id": f"order_{booking_id}"},
        )

    async def check_status(self, reference: str) -> GatewayStatus:
        self.checked.append(reference)
        payment_id = f"pay_{reference}" if self.state == "success" else None
        return GatewayStatus(state=self.state, payment_id=payment_id)


def sign(secret_env: str, payload: bytes) -> str:
    return compute_hmac_sha256(os.environ[secret_env], payload)


def headers_for(user: User) -> dict:
    token = create_access_token(data={"sub": str(user.id), "role": user.role})
    return {"Authorization": f"Bearer {token}"}


def future(days: int) -> date:
    return date.today() + timedelta(days=days)


@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create tables and the settings row, yield a session, then drop tables."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with TestSessionLocal() as session:
        await get_business_settings(session)
        await session.commit()
        yield session

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
def gateways():
    fakes = {
        PaymentMethod.RAZORPAY.value: FakeGateway(PaymentMethod.RAZORPAY.value),
        PaymentMethod.EKQR.value: FakeGateway(PaymentMethod.EKQR.value),
    }
    for method, gateway in fakes.items():
        override_gateway(method, gateway)
    yield fakes
    clear_gateway_overrides()


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession, gateways: dict) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client whose requests each run in a fresh test session."""

    async def override_get_db():
        async with TestSessionLocal() as session:
            try:
                yield session
                await commit_and_publish(session)
            except Exception:
                discard_queued(session)
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


async def _make_user(session: AsyncSession, email: str, role: str, name: str) -> User:
    user = User(
        email=email,
        full_name=name,
        hashed_password=hash_password(PASSWORD),
        role=role,
        is_active=True,
    )
    session.add(user)
    await session.commit()
    await session.refresh(user)
    return user


@pytest_asyncio.fixture
async def student(db_session: AsyncSession) -> User:
    return await _make_user(db_session, "student@example.com", UserRole.STUDENT.value, "Asha Student")


@pytest_asyncio.fixture
async def other_student(db_session: AsyncSession) -> User:
    return await _make_user(db_session, "other@example.com", UserRole.STUDENT.value, "Ravi Student")


@pytest_asyncio.fixture
async def merchant(db_session: AsyncSession) -> User:
    return await _make_user(db_session, "merchant@example.com", UserRole.MERCHANT.value, "Meera Merchant")


@pytest_asyncio.fixture
async def other_merchant(db_session: AsyncSession) -> User:
    return await _make_user(db_session, "rival@example.com", UserRole.MERCHANT.value, "Rival Merchant")


@pytest_asyncio.fixture
async def admin(db_session: AsyncSession) -> User:
    return await _make_user(db_session, "admin@example.com", UserRole.ADMIN.value, "Ada Admin")


@pytest_asyncio.fixture
async def settlement_manager(db_session: AsyncSession) -> User:
    return await _make_user(
        db_session, "settle@example.com", UserRole.SETTLEMENT_MANAGER.value, "Sam Settler"
    )


@pytest_asyncio.fixture
async def student_headers(student: User) -> dict:
    return headers_for(student)


@pytest_asyncio.fixture
async def other_student_headers(other_student: User) -> dict:
    return headers_for(other_student)


@pytest_asyncio.fixture
async def merchant_headers(merchant: User) -> dict:
    return headers_for(merchant)


@pytest_asyncio.fixture
async def admin_headers(admin: User) -> dict:
    return headers_for(admin)


@pytest_asyncio.fixture
async def study_hall(db_session: AsyncSession, merchant: User) -> StudyHall:
    """Two rows of three seats (A1..B3) at 300 / 1800 / 6000."""
    hall = StudyHall(
        merchant_id=merchant.id,
        name="Quiet Corner",
        description="A silent reading room",
        location="Indiranagar, Bengaluru",
        amenities=["wifi", "ac"],
        rows=2,
        seats_per_row=3,
        custom_row_names=[],
        total_seats=6,
        daily_price=Decimal("300.00"),
        weekly_price=Decimal("1800.00"),
        monthly_price=Decimal("6000.00"),
        status=StudyHallStatus.ACTIVE.value,
        average_rating=Decimal("0"),
        total_reviews=0,
    )
    hall.seats = [
        Seat(row_name=row, seat_number=number, seat_label=label, is_available=True, version=1)
        for row, number, label in layout_labels(2, 3)
    ]
    db_session.add(hall)
    await db_session.commit()
    await db_session.refresh(hall)
    return hall


@pytest.fixture
def seat_ids(study_hall: StudyHall) -> dict[str, int]:
    return {seat.seat_label: seat.id for seat in study_hall.seats}


@pytest_asyncio.fixture
async def booking_factory(db_session: AsyncSession, study_hall: StudyHall):
    """Insert a booking and its transaction directly, bypassing checkout."""

    async def make(
        user: User,
        seat_label: str = "A1",
        start: Optional[date] = None,
        end: Optional[date] = None,
        status: str = BookingStatus.CONFIRMED.value,
        payment_status: str = PaymentStatus.PAID.value,
        payment_method: str = PaymentMethod.OFFLINE.value,
        total: Decimal = Decimal("600.00"),
        transaction_status: Optional[str] = None,
        **extra,
    ) -> Booking:
        start = start or future(1)
        end = end or start + timedelta(days=2)
        seat = next(s for s in study_hall.seats if s.seat_label == seat_label)
        fields = {
            "booking_period": "daily",
            "base_amount": total,
            "coupon_discount": Decimal("0"),
            "reward_points_used": 0,
            "reward_discount": Decimal("0"),
            "convenience_fee": Decimal("0"),
            "platform_fee": Decimal("0"),
            "total_amount": total,
            "is_vacated": False,
        }
        fields.update(extra)
        booking = Booking(
            user_id=user.id,
            study_hall_id=study_hall.id,
            seat_id=seat.id,
            start_date=start,
            end_date=end,
            status=status,
            payment_status=payment_status,
            payment_method=payment_method,
            **fields,
        )
        if transaction_status is None:
            transaction_status = (
                TransactionStatus.COMPLETED.value
                if payment_status == PaymentStatus.PAID.value
                else TransactionStatus.PENDING.value
            )
        db_session.add(booking)
        await db_session.flush()
        db_session.add(
            Transaction(
                booking_id=booking.id,
                user_id=user.id,
                amount=total,
                payment_method=payment_method,
                status=transaction_status,
                qr_id=f"qr_{booking.id}" if payment_method == PaymentMethod.EKQR.value else None,
                payment_data={},
            )
        )
        await db_session.commit()
        return booking

    return make
