"""
Schemas for referral codes and referrals.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class ReferralCodeResponse(BaseModel):
    code: str
    status: str
    total_referrals: int
    successful_referrals: int
    total_earnings: int

    model_config = {"from_attributes": True}


class ReferralApply(BaseModel):
    referral_code: str = Field(..., min_length=4, max_length=20)
    booking_id: Optional[int] = None


class ReferralResponse(BaseModel):
    id: int
    referrer_id: int
    referee_id: int
    booking_id: Optional[int]
    referrer_points: int
    referee_points: int
    status: str
    completed_at: Optional[datetime]
    created_at: datetime

    model_config = {"from_attributes": True}
