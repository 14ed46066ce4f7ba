"""
Schemas for transactions and payment completion paths.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class TransactionResponse(BaseModel):
    id: int
    booking_id: int
    user_id: Optional[int]
    amount: Decimal
    payment_method: str
    status: str
    provider_order_id: Optional[str]
    payment_id: Optional[str]
    qr_id: Optional[str]
    qr_image_url: Optional[str]
    confirmed_by: Optional[int]
    created_at: datetime

    model_config = {"from_attributes": True}


class RazorpayVerifyRequest(BaseModel):
    transaction_id: int
    razorpay_order_id: str
    razorpay_payment_id: str
    razorpay_signature: str


class PaymentStatusResponse(BaseModel):
    transaction_id: int
    booking_id: int
    status: str
    booking_status: str
    payment_status: str
    provider_state: Optional[str] = None
    message: Optional[str] = None


class AwaitPaymentResponse(PaymentStatusResponse):
    attempts: int
    timed_out: bool


class OfflineConfirmRequest(BaseModel):
    reference: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = Field(None, max_length=500)


class OfflineRejectRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)


class EkqrWebhookPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    order_id: str = Field(..., alias="orderId")
    status: str
    amount: Optional[Decimal] = None
    transaction_id: Optional[str] = Field(None, alias="transactionId")
    timestamp: Optional[Any] = None


class RecoveryReport(BaseModel):
    checked: int
    completed: int
    failed: int
    errors: int
