"""
Schemas for study halls and seats.
"""

from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

MAX_ROWS = 26
MAX_SEATS_PER_ROW = 50
MAX_ROW_NAME_LENGTH = 10


def _clean_row_names(names: Optional[list[str]]) -> Optional[list[str]]:
    if names is None:
        return None
    cleaned = [name.strip() for name in names]
    if any(not name for name in cleaned):
        raise ValueError("Row names cannot be blank")
    if any(len(name) > MAX_ROW_NAME_LENGTH for name in cleaned):
        raise ValueError(f"Row names can be at most {MAX_ROW_NAME_LENGTH} characters")
    if len(set(cleaned)) != len(cleaned):
        raise ValueError("Row names must be unique")
    return cleaned


def label_collision(row_names: list[str], seats_per_row: int) -> Optional[str]:
    """First seat label two rows would share, e.g. rows "A" and "A1" both make "A11"."""
    seen = set()
    for row in row_names:
        for number in range(1, seats_per_row + 1):
            label = f"{row}{number}"
            if label in seen:
                return label
            seen.add(label)
    return None


class StudyHallBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=5000)
    location: str = Field(..., min_length=1, max_length=255)
    formatted_address: Optional[str] = Field(None, max_length=500)
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    amenities: list[str] = Field(default_factory=list)


class StudyHallCreate(StudyHallBase):
    rows: int = Field(..., ge=1, le=MAX_ROWS)
    seats_per_row: int = Field(..., ge=1, le=MAX_SEATS_PER_ROW)
    custom_row_names: Optional[list[str]] = None
    daily_price: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2)
    weekly_price: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2)
    monthly_price: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2)
    qr_booking_enabled: bool = False
    # Only admins create halls on behalf of a merchant
    merchant_id: Optional[int] = None

    @field_validator("custom_row_names")
    @classmethod
    def clean_row_names(cls, value: Optional[list[str]]) -> Optional[list[str]]:
        return _clean_row_names(value)

    @model_validator(mode="after")
    def check_row_names_match_rows(self):
        if self.custom_row_names and len(self.custom_row_names) != self.rows:
            raise ValueError("Number of custom row names must equal the number of rows")
        if self.custom_row_names:
            duplicate = label_collision(self.custom_row_names, self.seats_per_row)
            if duplicate:
                raise ValueError(f"Row names produce the seat label {duplicate} more than once")
        return self


class StudyHallUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=5000)
    location: Optional[str] = Field(None, min_length=1, max_length=255)
    formatted_address: Optional[str] = Field(None, max_length=500)
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    amenities: Optional[list[str]] = None
    rows: Optional[int] = Field(None, ge=1, le=MAX_ROWS)
    seats_per_row: Optional[int] = Field(None, ge=1, le=MAX_SEATS_PER_ROW)
    custom_row_names: Optional[list[str]] = None
    daily_price: Optional[Decimal] = Field(None, gt=0, max_digits=10, decimal_places=2)
    weekly_price: Optional[Decimal] = Field(None, gt=0, max_digits=10, decimal_places=2)
    monthly_price: Optional[Decimal] = Field(None, gt=0, max_digits=10, decimal_places=2)
    qr_booking_enabled: Optional[bool] = None

    @field_validator("custom_row_names")
    @classmethod
    def clean_row_names(cls, value: Optional[list[str]]) -> Optional[list[str]]:
        return _clean_row_names(value)


class StudyHallStatusUpdate(BaseModel):
    status: Literal["active", "inactive", "maintenance"]


class SeatAvailabilityUpdate(BaseModel):
    is_available: bool


class SeatResponse(BaseModel):
    id: int
    row_name: str
    seat_number: int
    seat_label: str
    is_available: bool

    model_config = {"from_attributes": True}


class StudyHallResponse(BaseModel):
    id: int
    merchant_id: int
    name: str
    description: Optional[str]
    location: str
    formatted_address: Optional[str]
    latitude: Optional[float]
    longitude: Optional[float]
    amenities: list[str]
    rows: int
    seats_per_row: int
    custom_row_names: list[str]
    total_seats: int
    daily_price: Decimal
    weekly_price: Decimal
    monthly_price: Decimal
    status: str
    qr_booking_enabled: bool
    average_rating: Decimal
    total_reviews: int
    created_at: datetime

    model_config = {"from_attributes": True}


class StudyHallDetail(StudyHallResponse):
    seats: list[SeatResponse]


class StudyHallListResponse(BaseModel):
    items: list[StudyHallResponse]
    total: int
    page: int
    page_size: int
    cached: bool = False


class WalkInLinks(BaseModel):
    study_hall_id: int
    study_hall_name: str
    qr_booking_enabled: bool
    booking_url: str
    qr_code_url: str


class PublicStudyHall(BaseModel):
    """Walk-in booking page: seat availability is for today."""

    study_hall: StudyHallResponse
    seats: list[SeatResponse]
    available_seats: int
    total_seats: int
