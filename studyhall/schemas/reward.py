"""
Schemas for reward points.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field


class RewardSummary(BaseModel):
    user_id: int
    total_points: int
    available_points: int
    lifetime_earned: int
    lifetime_redeemed: int
    enabled: bool
    conversion_rate: Decimal
    min_redemption_points: int
    points_value: Decimal


class RewardTransactionResponse(BaseModel):
    id: int
    booking_id: Optional[int]
    type: str
    points: int
    reason: str
    created_at: datetime

    model_config = {"from_attributes": True}


class RedemptionRequest(BaseModel):
    points: int = Field(..., gt=0)
    amount: Decimal = Field(..., ge=0)


class RedemptionPreview(BaseModel):
    valid: bool
    points: int = 0
    discount: Decimal = Decimal("0")
    reason: Optional[str] = None


class RewardAdjustment(BaseModel):
    user_id: int
    points: int = Field(..., description="Positive to credit, negative to debit")
    reason: str = Field(..., min_length=1, max_length=255)
