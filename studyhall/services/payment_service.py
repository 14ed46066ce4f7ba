"""
Payment reconciliation across the three rails.

A booking's transaction can complete through several paths: the gateway
checkout callback, a gateway webhook, the QR webhook, a status check or poll,
a staff confirmation of an offline payment, or the recovery job. They all end
in `finalize_payment` or `fail_payment`. Both claim the transaction row with a
conditional UPDATE before any side effect, so when two paths race (checkout
verify and webhook, poll and webhook) only one of them applies the outcome.
"""

import asyncio
import json
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Awaitable, Callable, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value
from fastapi import HTTPException, status

from studyhall.core.config import get_settings
from studyhall.core.errors import PaymentGatewayError, PaymentNotConfiguredError, friendly_payment_error
from studyhall.core.logging import get_logger
from studyhall.core.metrics import record_payment_outcome, record_poll_attempt, record_webhook
from studyhall.db.base import utcnow
from studyhall.infrastructure.ekqr_client import EkqrGateway
from studyhall.infrastructure.razorpay_client import RazorpayGateway
from studyhall.models.booking import Booking, BookingStatus, PaymentStatus
from studyhall.models.notification import NotificationType
from studyhall.models.study_hall import Seat, StudyHall
from studyhall.models.transaction import (
    OPEN_TRANSACTION_STATUSES,
    SETTLEABLE_TRANSACTION_STATUSES,
    PaymentMethod,
    Transaction,
    TransactionStatus,
)
from studyhall.models.user import STAFF_ROLES, User, UserRole
from studyhall.schemas.payment import EkqrWebhookPayload, RazorpayVerifyRequest
from studyhall.services import coupon_service, incharge_service, referral_service, reward_service
from studyhall.services.availability_service import find_conflicts
from studyhall.services.gateway_factory import get_gateway
from studyhall.services.interfaces.payment_gateway import GatewayPayment
from studyhall.services.notification_service import notify
from studyhall.services.payment_poller import PollResult, PollSchedule, poll_until_final
from studyhall.services.realtime import commit_and_publish, queue_change
from studyhall.services.settings_service import get_business_settings

logger = get_logger(__name__)
settings = get_settings()


def _merge_payment_data(transaction: Transaction, **entries: Any) -> None:
    # JSON columns only persist on reassignment
    transaction.payment_data = {**(transaction.payment_data or {}), **entries}


def _gateway_http_error(exc: PaymentGatewayError) -> HTTPException:
    code = (
        status.HTTP_503_SERVICE_UNAVAILABLE
        if isinstance(exc, PaymentNotConfiguredError)
        else status.HTTP_502_BAD_GATEWAY
    )
    return HTTPException(status_code=code, detail=friendly_payment_error(exc.message))


async def get_transaction(db: AsyncSession, transaction_id: int) -> Transaction:
    result = await db.execute(select(Transaction).where(Transaction.id == transaction_id))
    transaction = result.scalar_one_or_none()
    if not transaction:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Transaction not found",
        )
    return transaction


async def get_transaction_for(db: AsyncSession, user: User, transaction_id: int) -> Transaction:
    """Transaction visible to `user`: its payer, the hall's managers or staff."""
    transaction = await get_transaction(db, transaction_id)
    if transaction.user_id == user.id or user.role in STAFF_ROLES:
        return transaction
    if await incharge_service.can_manage_hall(db, user, transaction.booking.study_hall):
        return transaction
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Transaction not found")


async def start_payment(
    db: AsyncSession, booking: Booking, transaction: Transaction
) -> GatewayPayment:
    gateway = get_gateway(transaction.payment_method)
    try:
        payment = await gateway.create_payment(
            booking.id,
            Decimal(booking.total_amount),
            f"Study Hall Booking #{booking.id}",
        )
    except PaymentGatewayError as exc:
        record_payment_outcome(transaction.payment_method, "error")
        logger.warning(
            "payment_start_failed",
            booking_id=booking.id,
            method=transaction.payment_method,
            error=exc.message,
        )
        raise _gateway_http_error(exc) from exc

    transaction.provider_order_id = payment.provider_order_id
    transaction.qr_id = payment.qr_id
    transaction.qr_image_url = payment.qr_image_url
    if transaction.payment_method != PaymentMethod.OFFLINE.value:
        transaction.status = TransactionStatus.PROCESSING.value
    if payment.raw:
        _merge_payment_data(transaction, provider_order=payment.raw)
    await db.flush()

    record_payment_outcome(transaction.payment_method, "started")
    logger.info(
        "payment_started",
        booking_id=booking.id,
        transaction_id=transaction.id,
        method=transaction.payment_method,
        order_id=payment.provider_order_id,
        qr_id=payment.qr_id,
    )
    return payment


async def _seat_still_free(db: AsyncSession, booking: Booking) -> bool:
    # Serialize with concurrent booking attempts on the same seat
    await db.execute(
        update(Seat).where(Seat.id == booking.seat_id).values(version=Seat.version + 1)
    )
    conflicts = await find_conflicts(
        db, booking.seat_id, booking.start_date, booking.end_date, exclude_booking_id=booking.id
    )
    return not conflicts


async def _reclaim_points(db: AsyncSession, booking: Booking) -> None:
    """Debit points again for a revived booking; they were restored when it lapsed."""
    points = booking.reward_points_used
    if not points:
        return
    account = await reward_service.get_or_create_account(db, booking.user_id)
    if account.available_points >= points:
        await reward_service.redeem(db, booking.user_id, points, booking.id, booking.reward_discount)
    else:
        logger.warning(
            "reward_points_not_reclaimed",
            booking_id=booking.id,
            points=points,
            available=account.available_points,
        )


async def _refund_late_payment(
    db: AsyncSession, transaction: Transaction, booking: Booking, source: str
) -> Transaction:
    _merge_payment_data(
        transaction,
        refund={"reason": "seat_unavailable", "source": source, "at": utcnow().isoformat()},
    )
    booking.payment_status = PaymentStatus.REFUNDED.value
    await db.flush()

    await notify(
        db,
        booking.user_id,
        "Payment will be refunded",
        f"Your payment for booking #{booking.id} arrived after the seat was released. "
        "The amount will be refunded.",
        notification_type=NotificationType.WARNING.value,
    )
    record_payment_outcome(transaction.payment_method, "refunded")
    logger.warning(
        "payment_refund_required",
        transaction_id=transaction.id,
        booking_id=booking.id,
        source=source,
    )
    return transaction


async def claim_transaction(
    db: AsyncSession, transaction: Transaction, target: str, allowed: tuple[str, ...]
) -> bool:
    """
    Move the transaction row to `target` only if it is still in one of `allowed`.

    The conditional UPDATE is the single point where concurrent completion
    paths are serialized: exactly one caller sees a matched row. The others
    reload the row and get False.
    """
    result = await db.execute(
        update(Transaction)
        .where(Transaction.id == transaction.id, Transaction.status.in_(allowed))
        .values(status=target)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        await db.refresh(transaction)
        return False
    set_committed_value(transaction, "status", target)
    return True


async def finalize_payment(
    db: AsyncSession,
    transaction: Transaction,
    source: str,
    payment_id: Optional[str] = None,
    provider_payload: Optional[dict] = None,
    confirmed_by: Optional[int] = None,
    today: Optional[date] = None,
) -> Transaction:
    """Mark a transaction completed and its booking paid. Safe to call repeatedly."""
    if transaction.status not in SETTLEABLE_TRANSACTION_STATUSES:
        logger.info(
            "payment_already_final",
            transaction_id=transaction.id,
            status=transaction.status,
            source=source,
        )
        return transaction

    booking = transaction.booking
    today = today or date.today()

    lapsed = booking.status in (BookingStatus.EXPIRED.value, BookingStatus.CANCELLED.value)
    refund = lapsed and (
        booking.status == BookingStatus.CANCELLED.value or not await _seat_still_free(db, booking)
    )
    target = TransactionStatus.REFUNDED.value if refund else TransactionStatus.COMPLETED.value
    if not await claim_transaction(db, transaction, target, SETTLEABLE_TRANSACTION_STATUSES):
        logger.info(
            "payment_already_final",
            transaction_id=transaction.id,
            status=transaction.status,
            source=source,
        )
        return transaction

    if refund:
        return await _refund_late_payment(db, transaction, booking, source)
    if lapsed:
        await _reclaim_points(db, booking)
        logger.info("booking_revived_by_late_payment", booking_id=booking.id, source=source)

    if payment_id:
        transaction.payment_id = payment_id
    if confirmed_by is not None:
        transaction.confirmed_by = confirmed_by
    completion = {"source": source, "at": utcnow().isoformat()}
    if provider_payload:
        completion["payload"] = provider_payload
    _merge_payment_data(transaction, completion=completion)

    booking.payment_status = PaymentStatus.PAID.value
    booking.status = (
        BookingStatus.ACTIVE.value if booking.start_date <= today else BookingStatus.CONFIRMED.value
    )
    await db.flush()

    biz = await get_business_settings(db)
    await coupon_service.record_usage(db, booking)
    if booking.user_id is not None:
        await reward_service.earn(db, booking.user_id, booking.id, biz)
        await referral_service.complete_for_booking(db, booking)

    hall = booking.study_hall
    await notify(
        db,
        booking.user_id,
        "Booking confirmed",
        f"Seat {booking.seat.seat_label} at {hall.name} is booked from "
        f"{booking.start_date} to {booking.end_date}.",
        notification_type=NotificationType.SUCCESS.value,
    )
    await notify(
        db,
        hall.merchant_id,
        "New paid booking",
        f"Booking #{booking.id} for seat {booking.seat.seat_label} was paid "
        f"(Rs. {transaction.amount}, {transaction.payment_method}).",
    )

    record_payment_outcome(transaction.payment_method, "completed")
    logger.info(
        "payment_completed",
        transaction_id=transaction.id,
        booking_id=booking.id,
        method=transaction.payment_method,
        source=source,
    )
    queue_change(
        db, "transactions", "update", transaction.id, user_id=booking.user_id, merchant_id=hall.merchant_id
    )
    queue_change(
        db, "bookings", "update", booking.id, user_id=booking.user_id, merchant_id=hall.merchant_id
    )
    return transaction


async def fail_payment(
    db: AsyncSession,
    transaction: Transaction,
    reason: str,
    source: str,
    provider_payload: Optional[dict] = None,
) -> Transaction:
    """Mark an open transaction failed and release its booking. No-op once final."""
    if transaction.status not in OPEN_TRANSACTION_STATUSES or not await claim_transaction(
        db, transaction, TransactionStatus.FAILED.value, OPEN_TRANSACTION_STATUSES
    ):
        logger.info(
            "payment_fail_ignored",
            transaction_id=transaction.id,
            status=transaction.status,
            source=source,
        )
        return transaction

    booking = transaction.booking
    failure = {"reason": reason, "source": source, "at": utcnow().isoformat()}
    if provider_payload:
        failure["payload"] = provider_payload
    _merge_payment_data(transaction, failure=failure)

    if booking.status == BookingStatus.PENDING.value:
        booking.status = BookingStatus.CANCELLED.value
        booking.payment_status = PaymentStatus.FAILED.value
        await reward_service.restore(
            db,
            booking.user_id,
            booking.reward_points_used,
            booking.id,
            f"Restored from failed payment for booking #{booking.id}",
        )
    await db.flush()

    await notify(
        db,
        booking.user_id,
        "Payment failed",
        f"Payment for booking #{booking.id} failed: {reason}",
        notification_type=NotificationType.ERROR.value,
    )
    record_payment_outcome(transaction.payment_method, "failed")
    logger.info(
        "payment_failed",
        transaction_id=transaction.id,
        booking_id=booking.id,
        reason=reason,
        source=source,
    )
    merchant_id = booking.study_hall.merchant_id
    queue_change(
        db, "transactions", "update", transaction.id, user_id=booking.user_id, merchant_id=merchant_id
    )
    queue_change(
        db, "bookings", "update", booking.id, user_id=booking.user_id, merchant_id=merchant_id
    )
    return transaction


async def verify_razorpay_payment(
    db: AsyncSession, user: User, data: RazorpayVerifyRequest
) -> Transaction:
    transaction = await get_transaction_for(db, user, data.transaction_id)
    if transaction.payment_method != PaymentMethod.RAZORPAY.value:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Transaction is not a Razorpay payment",
        )
    if transaction.provider_order_id != data.razorpay_order_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Order does not belong to this transaction",
        )

    verifier = RazorpayGateway()
    if not verifier.verify_payment_signature(
        data.razorpay_order_id, data.razorpay_payment_id, data.razorpay_signature
    ):
        logger.warning(
            "razorpay_signature_mismatch",
            transaction_id=transaction.id,
            order_id=data.razorpay_order_id,
        )
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid payment signature - payment verification failed",
        )

    return await finalize_payment(
        db,
        transaction,
        source="razorpay_verify",
        payment_id=data.razorpay_payment_id,
        provider_payload={"signature": data.razorpay_signature},
    )


async def _find_by_reference(db: AsyncSession, reference: str) -> Optional[Transaction]:
    result = await db.execute(
        select(Transaction).where(
            (Transaction.provider_order_id == reference) | (Transaction.qr_id == reference)
        )
    )
    return result.scalars().first()


async def handle_razorpay_webhook(db: AsyncSession, body: bytes, signature: Optional[str]) -> dict:
    if not RazorpayGateway().verify_webhook_signature(body, signature or ""):
        record_webhook("razorpay", "rejected")
        logger.warning("razorpay_webhook_rejected", reason="bad_signature")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid webhook signature",
        )

    try:
        event = json.loads(body)
    except ValueError:
        record_webhook("razorpay", "rejected")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid webhook body")

    event_type = event.get("event", "")
    payload = event.get("payload", {})
    payment = payload.get("payment", {}).get("entity", {})
    order = payload.get("order", {}).get("entity", {})
    order_id = payment.get("order_id") or order.get("id")

    transaction = await _find_by_reference(db, order_id) if order_id else None
    if transaction is None:
        record_webhook("razorpay", "ignored")
        logger.info("razorpay_webhook_unmatched", event=event_type, order_id=order_id)
        return {"status": "ignored"}

    if event_type in ("payment.captured", "order.paid"):
        await finalize_payment(
            db,
            transaction,
            source="razorpay_webhook",
            payment_id=payment.get("id"),
            provider_payload={"event": event_type},
        )
    elif event_type == "payment.failed":
        await fail_payment(
            db,
            transaction,
            reason=payment.get("error_description") or "Payment failed",
            source="razorpay_webhook",
            provider_payload={"event": event_type, "error_code": payment.get("error_code")},
        )
    else:
        record_webhook("razorpay", "ignored")
        return {"status": "ignored"}

    record_webhook("razorpay", "processed")
    return {"status": "processed", "transaction_id": transaction.id}


async def handle_ekqr_webhook(db: AsyncSession, body: bytes, signature: Optional[str]) -> dict:
    if not EkqrGateway().verify_webhook_signature(body, signature):
        record_webhook("ekqr", "rejected")
        logger.warning("ekqr_webhook_rejected", reason="bad_signature")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid webhook signature",
        )

    try:
        payload = EkqrWebhookPayload.model_validate_json(body)
    except ValueError:
        record_webhook("ekqr", "rejected")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid webhook body")

    transaction = await _find_by_reference(db, payload.order_id)
    if transaction is None:
        record_webhook("ekqr", "rejected")
        logger.warning("ekqr_webhook_unknown_qr", order_id=payload.order_id)
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Transaction not found",
        )

    state = payload.status.upper()
    raw = payload.model_dump(mode="json", by_alias=True)
    if state == "SUCCESS":
        await finalize_payment(
            db,
            transaction,
            source="ekqr_webhook",
            payment_id=payload.transaction_id,
            provider_payload=raw,
        )
    elif state in ("FAILED", "EXPIRED"):
        await fail_payment(
            db,
            transaction,
            reason=f"UPI payment {state.lower()}",
            source="ekqr_webhook",
            provider_payload=raw,
        )
    else:
        record_webhook("ekqr", "ignored")
        return {"status": "ignored", "transaction_id": transaction.id}

    record_webhook("ekqr", "processed")
    return {"status": "processed", "transaction_id": transaction.id}


async def refresh_from_provider(db: AsyncSession, transaction: Transaction) -> str:
    """
    Ask the provider once and apply a final answer. Returns the provider state.
    Raises PaymentGatewayError when the provider cannot be reached.
    """
    await db.refresh(transaction)
    await db.refresh(transaction.booking)
    if transaction.status == TransactionStatus.COMPLETED.value:
        return "success"
    if transaction.status in (TransactionStatus.FAILED.value, TransactionStatus.REFUNDED.value):
        return "failed"
    if transaction.payment_method == PaymentMethod.OFFLINE.value:
        return "pending"

    reference = (
        transaction.qr_id
        if transaction.payment_method == PaymentMethod.EKQR.value
        else transaction.provider_order_id
    )
    if not reference:
        return "pending"

    record_poll_attempt(transaction.payment_method)
    provider_status = await get_gateway(transaction.payment_method).check_status(reference)
    source = f"{transaction.payment_method}_status_check"
    if provider_status.state == "success":
        await finalize_payment(
            db,
            transaction,
            source=source,
            payment_id=provider_status.payment_id,
            provider_payload=provider_status.raw or None,
        )
    elif provider_status.state in ("failed", "expired"):
        await fail_payment(
            db,
            transaction,
            reason=f"Provider reported {provider_status.state}",
            source=source,
            provider_payload=provider_status.raw or None,
        )
    return provider_status.state


def status_report(transaction: Transaction, provider_state: Optional[str] = None, **extra) -> dict:
    return {
        "transaction_id": transaction.id,
        "booking_id": transaction.booking_id,
        "status": transaction.status,
        "booking_status": transaction.booking.status,
        "payment_status": transaction.booking.payment_status,
        "provider_state": provider_state,
        **extra,
    }


async def check_payment_status(db: AsyncSession, user: User, transaction_id: int) -> dict:
    transaction = await get_transaction_for(db, user, transaction_id)
    try:
        state = await refresh_from_provider(db, transaction)
    except PaymentGatewayError as exc:
        logger.warning("payment_status_check_failed", transaction_id=transaction.id, error=exc.message)
        raise _gateway_http_error(exc) from exc
    return status_report(transaction, state)


async def await_payment(
    db: AsyncSession,
    user: User,
    transaction_id: int,
    schedule: Optional[PollSchedule] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> dict:
    transaction = await get_transaction_for(db, user, transaction_id)

    async def check() -> str:
        return await refresh_from_provider(db, transaction)

    async def pause(delay: float) -> None:
        # No transaction or pooled connection is held while waiting
        await commit_and_publish(db)
        await sleep(delay)

    result: PollResult = await poll_until_final(check, schedule=schedule, sleep=pause)
    message = None
    if result.timed_out:
        message = "Payment is still pending. We will confirm it as soon as the provider does."
    return status_report(
        transaction,
        result.state,
        attempts=result.attempts,
        timed_out=result.timed_out,
        message=message,
    )


async def _ensure_offline_handler(db: AsyncSession, user: User, transaction: Transaction) -> None:
    if transaction.payment_method != PaymentMethod.OFFLINE.value:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Only offline payments can be confirmed manually",
        )
    if user.role == UserRole.PENDING_PAYMENTS_CALLER.value:
        return
    await incharge_service.ensure_can_manage_hall(db, user, transaction.booking.study_hall)


async def confirm_offline_payment(
    db: AsyncSession,
    user: User,
    transaction_id: int,
    reference: Optional[str] = None,
    notes: Optional[str] = None,
) -> Transaction:
    transaction = await get_transaction(db, transaction_id)
    await _ensure_offline_handler(db, user, transaction)
    if transaction.status not in OPEN_TRANSACTION_STATUSES:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Transaction is already {transaction.status}",
        )

    await finalize_payment(
        db,
        transaction,
        source="offline_confirmation",
        payment_id=reference,
        provider_payload={"notes": notes} if notes else None,
        confirmed_by=user.id,
    )
    await incharge_service.log_activity(
        db,
        user,
        "offline_payment_confirmed",
        transaction.booking_id,
        {"transaction_id": transaction.id, "reference": reference},
    )
    return transaction


async def reject_offline_payment(
    db: AsyncSession, user: User, transaction_id: int, reason: str
) -> Transaction:
    transaction = await get_transaction(db, transaction_id)
    await _ensure_offline_handler(db, user, transaction)
    if transaction.status not in OPEN_TRANSACTION_STATUSES:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Transaction is already {transaction.status}",
        )

    transaction.confirmed_by = user.id
    await fail_payment(db, transaction, reason=reason, source="offline_rejection")
    await incharge_service.log_activity(
        db,
        user,
        "offline_payment_rejected",
        transaction.booking_id,
        {"transaction_id": transaction.id, "reason": reason},
    )
    return transaction


async def run_payment_recovery(db: AsyncSession) -> dict:
    """Settle QR payments that have stayed open past the recovery age."""
    cutoff = utcnow() - timedelta(minutes=settings.EKQR_RECOVERY_AGE_MINUTES)
    result = await db.execute(
        select(Transaction).where(
            Transaction.payment_method == PaymentMethod.EKQR.value,
            Transaction.status.in_(OPEN_TRANSACTION_STATUSES),
            Transaction.qr_id.is_not(None),
            Transaction.created_at < cutoff,
        )
    )
    report = {"checked": 0, "completed": 0, "failed": 0, "errors": 0}
    for transaction in result.scalars().unique().all():
        report["checked"] += 1
        try:
            state = await refresh_from_provider(db, transaction)
        except PaymentGatewayError as exc:
            report["errors"] += 1
            logger.warning(
                "payment_recovery_check_failed",
                transaction_id=transaction.id,
                error=exc.message,
            )
            continue
        if state == "success":
            report["completed"] += 1
        elif state in ("failed", "expired"):
            report["failed"] += 1

    logger.info("payment_recovery_run", **report)
    return report


async def list_transactions(
    db: AsyncSession,
    user: User,
    status_filter: Optional[str] = None,
    method: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> list[Transaction]:
    query = select(Transaction)
    if user.role in STAFF_ROLES:
        pass
    elif user.role == UserRole.MERCHANT.value:
        query = query.join(Booking, Booking.id == Transaction.booking_id).where(
            Booking.study_hall_id.in_(select(StudyHall.id).where(StudyHall.merchant_id == user.id))
        )
    elif user.role == UserRole.INCHARGE.value:
        hall_ids = await incharge_service.assigned_hall_ids(db, user)
        query = query.join(Booking, Booking.id == Transaction.booking_id).where(
            Booking.study_hall_id.in_(hall_ids or [-1])
        )
    else:
        query = query.where(Transaction.user_id == user.id)

    if status_filter:
        query = query.where(Transaction.status == status_filter)
    if method:
        query = query.where(Transaction.payment_method == method)
    result = await db.execute(
        query.order_by(Transaction.created_at.desc(), Transaction.id.desc()).offset(offset).limit(limit)
    )
    return list(result.scalars().unique().all())
