"""
Payment endpoints: transaction lists, checkout verification, status polling
and offline confirmation.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from studyhall.core.security import get_current_user
from studyhall.db.session import get_db
from studyhall.models.user import User
from studyhall.schemas.payment import (
    AwaitPaymentResponse,
    OfflineConfirmRequest,
    OfflineRejectRequest,
    PaymentStatusResponse,
    RazorpayVerifyRequest,
    TransactionResponse,
)
from studyhall.services import payment_service

router = APIRouter(prefix="/payments", tags=["Payments"])


@router.get("/transactions", response_model=list[TransactionResponse])
async def list_transactions(
    status_filter: Optional[str] = Query(None, alias="status"),
    method: Optional[str] = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await payment_service.list_transactions(db, user, status_filter, method, limit, offset)


@router.get("/transactions/{transaction_id}", response_model=TransactionResponse)
async def get_transaction(
    transaction_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await payment_service.get_transaction_for(db, user, transaction_id)


@router.post("/razorpay/verify", response_model=PaymentStatusResponse)
async def verify_razorpay(
    data: RazorpayVerifyRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Checkout callback: verify the signature and complete the booking."""
    transaction = await payment_service.verify_razorpay_payment(db, user, data)
    return payment_service.status_report(transaction, "success")


@router.get("/transactions/{transaction_id}/status", response_model=PaymentStatusResponse)
async def payment_status(
    transaction_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Ask the provider once and apply a final answer."""
    return await payment_service.check_payment_status(db, user, transaction_id)


@router.post("/transactions/{transaction_id}/await", response_model=AwaitPaymentResponse)
async def await_payment(
    transaction_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Poll the provider with backoff until the payment settles or the attempts run out."""
    return await payment_service.await_payment(db, user, transaction_id)


@router.post("/transactions/{transaction_id}/confirm-offline", response_model=PaymentStatusResponse)
async def confirm_offline(
    transaction_id: int,
    data: OfflineConfirmRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    transaction = await payment_service.confirm_offline_payment(
        db, user, transaction_id, data.reference, data.notes
    )
    return payment_service.status_report(transaction)


@router.post("/transactions/{transaction_id}/reject-offline", response_model=PaymentStatusResponse)
async def reject_offline(
    transaction_id: int,
    data: OfflineRejectRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    transaction = await payment_service.reject_offline_payment(db, user, transaction_id, data.reason)
    return payment_service.status_report(transaction)
