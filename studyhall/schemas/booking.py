"""
Pydantic schemas for booking-related request/response validation.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Literal, Optional

from pydantic import BaseModel, EmailStr, Field, model_validator

PaymentMethodName = Literal["razorpay", "ekqr", "offline"]


class BookingIntent(BaseModel):
    study_hall_id: int
    start_date: date
    end_date: date
    coupon_code: Optional[str] = Field(None, max_length=50)
    reward_points: int = Field(default=0, ge=0)
    payment_method: PaymentMethodName = "razorpay"

    @model_validator(mode="after")
    def check_date_order(self):
        if self.end_date < self.start_date:
            raise ValueError("End date cannot be before start date")
        return self


class QuoteRequest(BookingIntent):
    seat_id: Optional[int] = None


class BookingCreate(BookingIntent):
    seat_id: int


class GuestBookingCreate(BaseModel):
    seat_id: int
    start_date: date
    end_date: date
    guest_name: str = Field(..., min_length=1, max_length=255)
    guest_phone: str = Field(..., min_length=6, max_length=20)
    guest_email: Optional[EmailStr] = None
    payment_method: Literal["razorpay", "ekqr"] = "razorpay"

    @model_validator(mode="after")
    def check_date_order(self):
        if self.end_date < self.start_date:
            raise ValueError("End date cannot be before start date")
        return self


class PriceQuote(BaseModel):
    days: int
    booking_period: str
    daily_total: Decimal
    weekly_total: Decimal
    monthly_total: Decimal
    base_amount: Decimal
    coupon_code: Optional[str] = None
    coupon_discount: Decimal
    coupon_error: Optional[str] = None
    reward_points_used: int
    reward_discount: Decimal
    reward_error: Optional[str] = None
    subtotal: Decimal
    convenience_fee: Decimal
    platform_fee: Decimal
    total_amount: Decimal
    payment_method: str


class BookingResponse(BaseModel):
    id: int
    user_id: Optional[int]
    study_hall_id: int
    seat_id: int
    booking_period: str
    start_date: date
    end_date: date
    base_amount: Decimal
    coupon_code: Optional[str]
    coupon_discount: Decimal
    reward_points_used: int
    reward_discount: Decimal
    convenience_fee: Decimal
    platform_fee: Decimal
    total_amount: Decimal
    status: str
    payment_status: str
    payment_method: str
    is_vacated: bool
    vacated_on: Optional[date]
    guest_name: Optional[str] = None
    guest_phone: Optional[str] = None
    guest_email: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class PaymentStart(BaseModel):
    transaction_id: int
    payment_method: str
    status: str
    amount: Decimal
    provider_order_id: Optional[str] = None
    qr_id: Optional[str] = None
    qr_image_url: Optional[str] = None
    checkout: dict[str, Any] = {}


class BookingCreateResponse(BaseModel):
    booking: BookingResponse
    payment: PaymentStart


class GuestBookingCreateResponse(BookingCreateResponse):
    study_hall_name: str
    seat_label: str
    # Needed to look the booking up later; shown to the guest once
    guest_token: str


class BookingCancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class BookingCancelResponse(BaseModel):
    message: str
    booking_id: int
    status: str
    payment_status: str


class VacateRequest(BaseModel):
    vacated_on: Optional[date] = None
    reason: Optional[str] = Field(None, max_length=500)


class LifecycleReport(BaseModel):
    expired: int
    activated: int
    completed: int
