"""
Booking service with concurrency-safe seat reservation.

CONCURRENCY STRATEGY: Optimistic Locking with Retry
====================================================

Problem:
  Two students ask for the same seat for overlapping dates at the same time.
  Both run the overlap check, both see no conflict, both insert a booking.
  Result: a double-booked seat.

Solution:
  Every seat row carries a `version` column. Creating a booking:

  1. Read the seat's current version
  2. Re-run the overlap check against blocking bookings of the seat
  3. UPDATE seats SET version = version + 1
     WHERE id = :seat_id AND version = :read_version
  4. If rows_affected == 0, another request touched the seat -> retry
  5. Insert the pending booking in the same transaction

  The version UPDATE takes the seat's row lock, so a concurrent request for
  the same seat waits for the first transaction to commit, then finds the
  version moved and retries; its second overlap check sees the committed
  booking and fails with 409. Requests for different seats never contend.

Pending bookings block the seat exactly like confirmed ones until they are
paid, fail, or expire through the lifecycle job.
"""

import secrets
import time
from datetime import date, timedelta
from decimal import Decimal
from typing import Optional

from sqlalchemy import and_, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from fastapi import HTTPException, status

from studyhall.core.config import get_settings
from studyhall.core.errors import PaymentGatewayError
from studyhall.core.logging import get_logger
from studyhall.core.metrics import booking_latency, record_booking_attempt, seat_version_conflicts
from studyhall.db.base import utcnow
from studyhall.models.booking import (
    BLOCKING_STATUSES,
    FINAL_STATUSES,
    Booking,
    BookingStatus,
    PaymentStatus,
)
from studyhall.models.notification import NotificationType
from studyhall.models.study_hall import Seat, StudyHall, StudyHallStatus
from studyhall.models.transaction import (
    ONLINE_METHODS,
    OPEN_TRANSACTION_STATUSES,
    PaymentMethod,
    Transaction,
    TransactionStatus,
)
from studyhall.models.user import STAFF_ROLES, User, UserRole
from studyhall.schemas.booking import BookingCreate, GuestBookingCreate, QuoteRequest
from studyhall.services import coupon_service, incharge_service, payment_service, reward_service
from studyhall.services.availability_service import find_conflicts, overlap_filter
from studyhall.services.interfaces.payment_gateway import GatewayPayment
from studyhall.services.notification_service import notify
from studyhall.services.pricing import (
    PriceBreakdown,
    choose_tier,
    count_days,
    price_booking,
    tier_totals,
)
from studyhall.services.realtime import queue_change
from studyhall.services.settings_service import available_payment_methods, get_business_settings
from studyhall.services.study_hall_service import get_seat, get_study_hall, get_walk_in_hall

logger = get_logger(__name__)
settings = get_settings()

MAX_RETRY_ATTEMPTS = 3


def validate_booking_dates(start: date, end: date, today: Optional[date] = None) -> int:
    today = today or date.today()
    days = count_days(start, end)
    if start < today:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Start date cannot be in the past",
        )
    if days > settings.MAX_BOOKING_DAYS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Bookings cannot span more than {settings.MAX_BOOKING_DAYS} days",
        )
    return days


async def build_quote(
    db: AsyncSession,
    user: Optional[User],
    hall: StudyHall,
    start: date,
    end: date,
    payment_method: str,
    coupon_code: Optional[str] = None,
    reward_points: int = 0,
    strict: bool = False,
) -> PriceBreakdown:
    """
    Price a stay. With `strict`, an unusable coupon or points request is a
    400; otherwise the reason is reported on the quote and the discount is 0.
    """
    days = count_days(start, end)
    biz = await get_business_settings(db)
    totals = tier_totals(
        days,
        hall.daily_price,
        hall.weekly_price,
        hall.monthly_price,
        settings.MERCHANT_PRICE_MARGIN,
    )
    _, base = choose_tier(days, totals)

    coupon_discount = Decimal("0")
    coupon_error = None
    applied_code = None
    if coupon_code:
        check = await coupon_service.validate_coupon(db, user.id, coupon_code, base, hall)
        if check.valid:
            coupon_discount = check.discount
            applied_code = check.code
        elif strict:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=check.reason)
        else:
            coupon_error = check.reason

    points_used = 0
    reward_discount = Decimal("0")
    reward_error = None
    if reward_points:
        redemption = await reward_service.validate_redemption(
            db, user.id, reward_points, base - coupon_discount, biz
        )
        if redemption.valid:
            points_used = redemption.points
            reward_discount = redemption.discount
        elif strict:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=redemption.reason)
        else:
            reward_error = redemption.reason

    breakdown = price_booking(
        days,
        totals,
        payment_method,
        settings.GATEWAY_FEE_RATE,
        coupon_discount=coupon_discount,
        reward_points_used=points_used,
        reward_discount=reward_discount,
        platform_fee_enabled=biz.platform_fee_enabled,
        platform_fee_type=biz.platform_fee_type,
        platform_fee_value=biz.platform_fee_value,
    )
    breakdown.coupon_code = applied_code
    breakdown.coupon_error = coupon_error
    breakdown.reward_error = reward_error
    return breakdown


async def quote(db: AsyncSession, user: User, data: QuoteRequest) -> PriceBreakdown:
    hall = await get_study_hall(db, data.study_hall_id)
    if data.seat_id is not None:
        await get_seat(db, hall.id, data.seat_id)
    return await build_quote(
        db,
        user,
        hall,
        data.start_date,
        data.end_date,
        data.payment_method,
        data.coupon_code,
        data.reward_points,
    )


async def _user_overlap(
    db: AsyncSession, user_id: int, hall_id: int, start: date, end: date
) -> Optional[Booking]:
    result = await db.execute(
        select(Booking)
        .where(
            Booking.user_id == user_id,
            Booking.study_hall_id == hall_id,
            overlap_filter(start, end),
        )
        .limit(1)
    )
    return result.scalars().first()


async def _reserve_seat(
    db: AsyncSession,
    user: Optional[User],
    hall: StudyHall,
    seat: Seat,
    data: BookingCreate | GuestBookingCreate,
    price: PriceBreakdown,
    guest: Optional[dict] = None,
) -> Booking:
    for attempt in range(1, MAX_RETRY_ATTEMPTS + 1):
        # Step 1: read the seat version
        current_version = (
            await db.execute(select(Seat.version).where(Seat.id == seat.id))
        ).scalar_one()

        # Step 2: overlap check
        conflicts = await find_conflicts(db, seat.id, data.start_date, data.end_date)
        if conflicts:
            record_booking_attempt("conflict")
            logger.warning(
                "booking_failed_seat_taken",
                seat_id=seat.id,
                start=str(data.start_date),
                end=str(data.end_date),
                conflicts=[b.id for b in conflicts],
            )
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"Seat {seat.seat_label} is already booked for the selected dates",
            )

        # Step 3: optimistic lock on the seat row
        update_result = await db.execute(
            update(Seat)
            .where(Seat.id == seat.id, Seat.version == current_version)
            .values(version=Seat.version + 1)
        )
        if update_result.rowcount == 0:
            seat_version_conflicts.inc()
            logger.info(
                "booking_retry",
                seat_id=seat.id,
                attempt=attempt,
                reason="version_conflict",
            )
            if attempt == MAX_RETRY_ATTEMPTS:
                record_booking_attempt("conflict")
                raise HTTPException(
                    status_code=status.HTTP_409_CONFLICT,
                    detail="Booking failed due to high demand. Please try again.",
                )
            continue

        # Step 4: pending booking row holds the seat
        booking = Booking(
            user=user,
            study_hall=hall,
            seat=seat,
            booking_period=price.booking_period,
            start_date=data.start_date,
            end_date=data.end_date,
            base_amount=price.base_amount,
            coupon_code=price.coupon_code,
            coupon_discount=price.coupon_discount,
            reward_points_used=price.reward_points_used,
            reward_discount=price.reward_discount,
            convenience_fee=price.convenience_fee,
            platform_fee=price.platform_fee,
            total_amount=price.total_amount,
            status=BookingStatus.PENDING.value,
            payment_status=PaymentStatus.PENDING.value,
            payment_method=data.payment_method,
            is_vacated=False,
            **(guest or {}),
        )
        db.add(booking)
        await db.flush()
        logger.info(
            "booking_created",
            booking_id=booking.id,
            user_id=booking.user_id,
            guest=guest is not None,
            seat_id=seat.id,
            attempt=attempt,
        )
        return booking

    raise HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Booking failed unexpectedly",
    )


async def create_booking(
    db: AsyncSession, user: User, data: BookingCreate
) -> tuple[Booking, Transaction, GatewayPayment]:
    """
    Reserve a seat and start its payment.
    Returns the pending booking, its transaction and what the rail needs for checkout.
    """
    started = time.perf_counter()

    hall = await get_study_hall(db, data.study_hall_id)
    seat = await _check_bookable(db, hall, data)

    existing = await _user_overlap(db, user.id, hall.id, data.start_date, data.end_date)
    if existing:
        record_booking_attempt("rejected")
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="You already have a booking in this study hall for these dates",
        )

    price = await build_quote(
        db,
        user,
        hall,
        data.start_date,
        data.end_date,
        data.payment_method,
        data.coupon_code,
        data.reward_points,
        strict=True,
    )

    booking = await _reserve_seat(db, user, hall, seat, data, price)
    transaction = await _add_transaction(db, booking, hall, seat, data, price)

    if price.reward_points_used:
        await reward_service.redeem(
            db, user.id, price.reward_points_used, booking.id, price.reward_discount
        )

    if booking.total_amount <= 0:
        payment = GatewayPayment(checkout={"message": "Nothing to pay"})
        await payment_service.finalize_payment(db, transaction, source="zero_amount")
    else:
        payment = await payment_service.start_payment(db, booking, transaction)

    record_booking_attempt("created")
    booking_latency.observe(time.perf_counter() - started)
    queue_change(
        db, "bookings", "insert", booking.id, user_id=user.id, merchant_id=hall.merchant_id
    )
    return booking, transaction, payment


async def create_guest_booking(
    db: AsyncSession, hall_id: int, data: GuestBookingCreate
) -> tuple[Booking, Transaction, GatewayPayment]:
    """
    Walk-in checkout from a hall's QR code: no account, no coupons or points,
    online payment only. The guest gets a token to look the booking up.
    """
    started = time.perf_counter()

    hall = await get_walk_in_hall(db, hall_id)
    seat = await _check_bookable(db, hall, data)

    price = await build_quote(
        db, None, hall, data.start_date, data.end_date, data.payment_method, strict=True
    )
    guest = {
        "guest_name": data.guest_name,
        "guest_phone": data.guest_phone,
        "guest_email": data.guest_email.lower() if data.guest_email else None,
        "guest_token": secrets.token_urlsafe(32),
    }
    booking = await _reserve_seat(db, None, hall, seat, data, price, guest=guest)
    transaction = await _add_transaction(db, booking, hall, seat, data, price)
    payment = await payment_service.start_payment(db, booking, transaction)

    record_booking_attempt("created")
    booking_latency.observe(time.perf_counter() - started)
    logger.info("guest_booking_created", booking_id=booking.id, study_hall_id=hall.id)
    queue_change(db, "bookings", "insert", booking.id, merchant_id=hall.merchant_id)
    return booking, transaction, payment


async def get_guest_booking(db: AsyncSession, booking_id: int, token: str) -> Booking:
    booking = await db.get(Booking, booking_id)
    if (
        booking is None
        or booking.guest_token is None
        or not secrets.compare_digest(booking.guest_token, token)
    ):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Booking not found",
        )
    return booking


async def guest_payment_status(db: AsyncSession, booking_id: int, token: str) -> dict:
    """Status of a guest booking, asking the provider once while it is open."""
    booking = await get_guest_booking(db, booking_id, token)
    transaction = await _open_transaction(db, booking.id)
    state = None
    try:
        state = await payment_service.refresh_from_provider(db, transaction)
    except PaymentGatewayError as exc:
        logger.warning("guest_status_check_failed", booking_id=booking.id, error=exc.message)
    return payment_service.status_report(transaction, state)


async def _check_bookable(
    db: AsyncSession, hall: StudyHall, data: BookingCreate | GuestBookingCreate
) -> Seat:
    if hall.status != StudyHallStatus.ACTIVE.value:
        record_booking_attempt("rejected")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="This study hall is not accepting bookings",
        )
    seat = await get_seat(db, hall.id, data.seat_id)
    if not seat.is_available:
        record_booking_attempt("rejected")
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Seat {seat.seat_label} is blocked for maintenance",
        )

    validate_booking_dates(data.start_date, data.end_date)

    biz = await get_business_settings(db)
    if data.payment_method not in available_payment_methods(biz):
        record_booking_attempt("rejected")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Payment method {data.payment_method} is not available",
        )
    return seat


async def _add_transaction(
    db: AsyncSession,
    booking: Booking,
    hall: StudyHall,
    seat: Seat,
    data: BookingCreate | GuestBookingCreate,
    price: PriceBreakdown,
) -> Transaction:
    transaction = Transaction(
        booking=booking,
        user_id=booking.user_id,
        amount=booking.total_amount,
        payment_method=data.payment_method,
        status=TransactionStatus.PENDING.value,
        payment_data={
            "intent": {
                "study_hall_id": hall.id,
                "seat_id": seat.id,
                "seat_label": seat.seat_label,
                "start_date": data.start_date.isoformat(),
                "end_date": data.end_date.isoformat(),
                "booking_period": price.booking_period,
                "coupon_code": price.coupon_code,
                "reward_points": price.reward_points_used,
                "total_amount": str(price.total_amount),
            }
        },
    )
    db.add(transaction)
    await db.flush()
    return transaction


async def _scoped_query(db: AsyncSession, user: User, query):
    """Restrict a booking query to what `user` may see."""
    if user.role in STAFF_ROLES:
        return query
    if user.role == UserRole.MERCHANT.value:
        return query.where(
            Booking.study_hall_id.in_(
                select(StudyHall.id).where(StudyHall.merchant_id == user.id)
            )
        )
    if user.role == UserRole.INCHARGE.value:
        hall_ids = await incharge_service.assigned_hall_ids(db, user)
        return query.where(Booking.study_hall_id.in_(hall_ids or [-1]))
    return query.where(Booking.user_id == user.id)


async def list_bookings(
    db: AsyncSession,
    user: User,
    status_filter: Optional[str] = None,
    study_hall_id: Optional[int] = None,
    limit: int = 50,
    offset: int = 0,
) -> list[Booking]:
    query = await _scoped_query(db, user, select(Booking))
    if status_filter:
        query = query.where(Booking.status == status_filter)
    if study_hall_id is not None:
        query = query.where(Booking.study_hall_id == study_hall_id)
    result = await db.execute(
        query.order_by(Booking.created_at.desc(), Booking.id.desc()).offset(offset).limit(limit)
    )
    return list(result.scalars().unique().all())


async def get_booking(db: AsyncSession, user: User, booking_id: int) -> Booking:
    query = await _scoped_query(db, user, select(Booking).where(Booking.id == booking_id))
    booking = (await db.execute(query)).scalars().first()
    if not booking:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Booking not found",
        )
    return booking


async def _open_transaction(db: AsyncSession, booking_id: int) -> Optional[Transaction]:
    result = await db.execute(select(Transaction).where(Transaction.booking_id == booking_id))
    return result.scalars().first()


async def cancel_booking(
    db: AsyncSession, user: User, booking_id: int, reason: Optional[str] = None
) -> Booking:
    """
    Owners may cancel their own unpaid pending bookings; the hall's merchant,
    its incharges and admins may cancel any booking that is not final.
    """
    booking = await get_booking(db, user, booking_id)

    if booking.status in FINAL_STATUSES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Booking is already {booking.status}",
        )

    is_manager = await incharge_service.can_manage_hall(db, user, booking.study_hall)
    if not is_manager:
        if booking.user_id != user.id:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You cannot cancel this booking",
            )
        if booking.status != BookingStatus.PENDING.value or booking.payment_status == PaymentStatus.PAID.value:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Paid bookings can only be cancelled by the study hall",
            )

    transaction = await _open_transaction(db, booking.id)
    was_paid = booking.payment_status == PaymentStatus.PAID.value

    if was_paid:
        booking.payment_status = PaymentStatus.REFUNDED.value
        if transaction is not None:
            transaction.status = TransactionStatus.REFUNDED.value
            transaction.payment_data = {
                **(transaction.payment_data or {}),
                "refund": {"reason": reason or "cancelled", "by": user.id},
            }
    else:
        if transaction is not None and transaction.status in OPEN_TRANSACTION_STATUSES:
            claimed = await payment_service.claim_transaction(
                db, transaction, TransactionStatus.FAILED.value, OPEN_TRANSACTION_STATUSES
            )
            if not claimed:
                raise HTTPException(
                    status_code=status.HTTP_409_CONFLICT,
                    detail="The payment for this booking was just processed. Refresh and try again.",
                )
            transaction.payment_data = {
                **(transaction.payment_data or {}),
                "failure": {"reason": reason or "cancelled", "source": "cancellation"},
            }
        booking.payment_status = PaymentStatus.FAILED.value
        await reward_service.restore(
            db,
            booking.user_id,
            booking.reward_points_used,
            booking.id,
            f"Restored from cancelled booking #{booking.id}",
        )

    booking.status = BookingStatus.CANCELLED.value
    await db.flush()

    if is_manager and booking.user_id != user.id:
        await notify(
            db,
            booking.user_id,
            "Booking cancelled",
            f"Your booking #{booking.id} was cancelled by the study hall."
            + (" A refund will be processed." if was_paid else ""),
            notification_type=NotificationType.WARNING.value,
        )
    await incharge_service.log_activity(
        db, user, "booking_cancelled", booking.id, {"reason": reason, "refunded": was_paid}
    )

    logger.info(
        "booking_cancelled",
        booking_id=booking.id,
        cancelled_by=user.id,
        refunded=was_paid,
    )
    queue_change(
        db,
        "bookings",
        "update",
        booking.id,
        user_id=booking.user_id,
        merchant_id=booking.study_hall.merchant_id,
    )
    return booking


async def vacate_booking(
    db: AsyncSession,
    user: User,
    booking_id: int,
    vacated_on: Optional[date] = None,
    reason: Optional[str] = None,
) -> Booking:
    booking = await get_booking(db, user, booking_id)
    await incharge_service.ensure_can_manage_hall(db, user, booking.study_hall)

    if booking.payment_status != PaymentStatus.PAID.value or booking.status != BookingStatus.ACTIVE.value:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Only paid, active bookings can be vacated",
        )

    today = date.today()
    vacated_on = vacated_on or today
    if not booking.start_date <= vacated_on <= booking.end_date:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Vacate date must fall within the booking period",
        )

    booking.is_vacated = True
    booking.vacated_on = vacated_on
    if vacated_on <= today:
        booking.status = BookingStatus.COMPLETED.value
    await db.flush()

    await incharge_service.log_activity(
        db, user, "booking_vacated", booking.id, {"vacated_on": vacated_on.isoformat(), "reason": reason}
    )
    logger.info("booking_vacated", booking_id=booking.id, vacated_on=str(vacated_on), by=user.id)
    queue_change(
        db,
        "bookings",
        "update",
        booking.id,
        user_id=booking.user_id,
        merchant_id=booking.study_hall.merchant_id,
    )
    return booking


async def _expire(db: AsyncSession, booking: Booking, reason: str) -> bool:
    """Expire an unpaid hold. False when its payment settled in the meantime."""
    transaction = await _open_transaction(db, booking.id)
    if transaction is not None and transaction.status == TransactionStatus.COMPLETED.value:
        logger.info("booking_expiry_skipped", booking_id=booking.id, status=transaction.status)
        return False
    if transaction is not None and transaction.status in OPEN_TRANSACTION_STATUSES:
        claimed = await payment_service.claim_transaction(
            db, transaction, TransactionStatus.FAILED.value, OPEN_TRANSACTION_STATUSES
        )
        if not claimed:
            logger.info("booking_expiry_skipped", booking_id=booking.id, status=transaction.status)
            return False
        transaction.payment_data = {
            **(transaction.payment_data or {}),
            "failure": {"reason": reason, "source": "lifecycle"},
        }
    booking.status = BookingStatus.EXPIRED.value
    booking.payment_status = PaymentStatus.FAILED.value
    await reward_service.restore(
        db,
        booking.user_id,
        booking.reward_points_used,
        booking.id,
        f"Restored from expired booking #{booking.id}",
    )
    return True


async def run_lifecycle(db: AsyncSession, today: Optional[date] = None) -> dict:
    """
    Move bookings along with time:
    unpaid holds expire, paid bookings start and finish.
    """
    today = today or date.today()
    now = utcnow()
    online_cutoff = now - timedelta(minutes=settings.UNPAID_BOOKING_TIMEOUT_MINUTES)
    offline_cutoff = now - timedelta(hours=settings.OFFLINE_HOLD_HOURS)

    stale = await db.execute(
        select(Booking).where(
            Booking.status == BookingStatus.PENDING.value,
            Booking.payment_status != PaymentStatus.PAID.value,
            or_(
                and_(
                    Booking.payment_method.in_(ONLINE_METHODS),
                    Booking.created_at < online_cutoff,
                ),
                and_(
                    Booking.payment_method == PaymentMethod.OFFLINE.value,
                    Booking.created_at < offline_cutoff,
                ),
            ),
        )
    )
    expired = []
    for booking in stale.scalars().unique().all():
        if await _expire(db, booking, "payment_timeout"):
            expired.append(booking)

    starting = await db.execute(
        select(Booking).where(
            Booking.status == BookingStatus.CONFIRMED.value,
            Booking.payment_status == PaymentStatus.PAID.value,
            Booking.start_date <= today,
            Booking.end_date >= today,
        )
    )
    activated = list(starting.scalars().unique().all())
    for booking in activated:
        booking.status = BookingStatus.ACTIVE.value

    finishing = await db.execute(
        select(Booking).where(
            Booking.status.in_((BookingStatus.CONFIRMED.value, BookingStatus.ACTIVE.value)),
            or_(
                Booking.end_date < today,
                and_(Booking.is_vacated.is_(True), Booking.vacated_on <= today),
            ),
        )
    )
    completed = list(finishing.scalars().unique().all())
    for booking in completed:
        booking.status = BookingStatus.COMPLETED.value

    await db.flush()

    for booking in expired + activated + completed:
        queue_change(
            db,
            "bookings",
            "update",
            booking.id,
            user_id=booking.user_id,
            merchant_id=booking.study_hall.merchant_id,
        )

    report = {"expired": len(expired), "activated": len(activated), "completed": len(completed)}
    logger.info("booking_lifecycle_run", **report)
    return report
