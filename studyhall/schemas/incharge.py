"""
Schemas for incharges and their activity log.
"""

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, EmailStr, Field


class InchargeInvite(BaseModel):
    full_name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    mobile: str = Field(..., min_length=6, max_length=20)
    study_hall_ids: list[int] = Field(..., min_length=1)
    permissions: dict[str, bool] = Field(default_factory=dict)


class InchargeUpdate(BaseModel):
    full_name: Optional[str] = Field(None, min_length=1, max_length=255)
    mobile: Optional[str] = Field(None, min_length=6, max_length=20)
    study_hall_ids: Optional[list[int]] = None
    permissions: Optional[dict[str, bool]] = None
    status: Optional[Literal["active", "inactive"]] = None


class InvitationAccept(BaseModel):
    token: str = Field(..., min_length=10)
    password: str = Field(..., min_length=8, max_length=128)


class InchargeResponse(BaseModel):
    id: int
    merchant_id: int
    user_id: Optional[int]
    full_name: str
    email: str
    mobile: str
    permissions: dict[str, Any]
    status: str
    invitation_sent_at: Optional[datetime]
    account_activated: bool
    assigned_study_hall_ids: list[int]
    created_at: datetime

    model_config = {"from_attributes": True}


class ActivityLogResponse(BaseModel):
    id: int
    incharge_id: int
    action: str
    booking_id: Optional[int]
    details: dict[str, Any]
    created_at: datetime

    model_config = {"from_attributes": True}
