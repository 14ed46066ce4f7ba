"""
Schemas for study hall reviews.
"""

from datetime import date, datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field


class ReviewCreate(BaseModel):
    booking_id: int
    rating: int = Field(..., ge=1, le=5)
    review_text: Optional[str] = Field(None, max_length=2000)


class ReviewRespond(BaseModel):
    merchant_response: str = Field(..., min_length=1, max_length=2000)


class ReviewStatusUpdate(BaseModel):
    status: Literal["approved", "pending", "hidden"]


class ReviewResponse(BaseModel):
    id: int
    booking_id: int
    user_id: int
    study_hall_id: int
    merchant_id: int
    rating: int
    review_text: Optional[str]
    status: str
    merchant_response: Optional[str]
    created_at: datetime

    model_config = {"from_attributes": True}


class ReviewableBooking(BaseModel):
    booking_id: int
    study_hall_id: int
    study_hall_name: str
    start_date: date
    end_date: date
