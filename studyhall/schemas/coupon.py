"""
Schemas for coupons.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class CouponCreate(BaseModel):
    code: str = Field(..., min_length=3, max_length=50)
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=1000)
    type: Literal["flat", "percentage"]
    value: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2)
    max_discount: Optional[Decimal] = Field(None, gt=0, max_digits=10, decimal_places=2)
    min_booking_amount: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    usage_limit: Optional[int] = Field(None, gt=0)
    user_usage_limit: int = Field(default=1, gt=0)
    target_audience: Literal["all", "new_users"] = "all"

    @field_validator("code")
    @classmethod
    def normalize_code(cls, value: str) -> str:
        return value.strip().upper()

    @model_validator(mode="after")
    def check_values(self):
        if self.type == "percentage" and self.value > 100:
            raise ValueError("Percentage coupons cannot exceed 100%")
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("Coupon end date cannot be before its start date")
        return self


class CouponValidateRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=50)
    booking_amount: Decimal = Field(..., ge=0)
    study_hall_id: Optional[int] = None


class CouponValidation(BaseModel):
    valid: bool
    code: str
    discount: Decimal = Decimal("0")
    reason: Optional[str] = None
    coupon_id: Optional[int] = None


class CouponResponse(BaseModel):
    id: int
    code: str
    title: str
    description: Optional[str]
    type: str
    value: Decimal
    max_discount: Optional[Decimal]
    min_booking_amount: Optional[Decimal]
    start_date: Optional[date]
    end_date: Optional[date]
    usage_limit: Optional[int]
    usage_count: int
    user_usage_limit: int
    target_audience: str
    merchant_id: Optional[int]
    status: str
    created_by: int
    created_at: datetime

    model_config = {"from_attributes": True}
