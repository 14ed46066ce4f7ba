"""
Schemas for platform business settings.
"""

from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, Field


class BusinessSettingsResponse(BaseModel):
    razorpay_enabled: bool
    ekqr_enabled: bool
    offline_enabled: bool
    rewards_enabled: bool
    rewards_conversion_rate: Decimal
    min_redemption_points: int
    points_per_booking: int
    platform_fee_enabled: bool
    platform_fee_type: str
    platform_fee_value: Decimal
    platform_fee_percentage: Decimal
    minimum_settlement_amount: Decimal
    auto_approval_threshold: Optional[int]
    support_email: Optional[str]
    support_phone: Optional[str]

    model_config = {"from_attributes": True}


class BusinessSettingsUpdate(BaseModel):
    razorpay_enabled: Optional[bool] = None
    ekqr_enabled: Optional[bool] = None
    offline_enabled: Optional[bool] = None
    rewards_enabled: Optional[bool] = None
    rewards_conversion_rate: Optional[Decimal] = Field(None, gt=0)
    min_redemption_points: Optional[int] = Field(None, ge=0)
    points_per_booking: Optional[int] = Field(None, ge=0)
    platform_fee_enabled: Optional[bool] = None
    platform_fee_type: Optional[Literal["flat", "percent"]] = None
    platform_fee_value: Optional[Decimal] = Field(None, ge=0)
    platform_fee_percentage: Optional[Decimal] = Field(None, ge=0, le=100)
    minimum_settlement_amount: Optional[Decimal] = Field(None, ge=0)
    auto_approval_threshold: Optional[int] = Field(None, ge=1, le=5)
    support_email: Optional[str] = Field(None, max_length=255)
    support_phone: Optional[str] = Field(None, max_length=20)


class PublicSettings(BaseModel):
    available_payment_methods: list[str]
    rewards_enabled: bool
    rewards_conversion_rate: Decimal
    min_redemption_points: int
    support_email: Optional[str]
    support_phone: Optional[str]
