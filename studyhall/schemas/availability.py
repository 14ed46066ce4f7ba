"""
Schemas for seat availability lookups.
"""

from datetime import date
from typing import Optional

from pydantic import BaseModel


class ConflictingBooking(BaseModel):
    booking_id: int
    start_date: date
    end_date: date
    user_id: Optional[int]


class SeatAvailabilityResponse(BaseModel):
    seat_id: int
    available: bool
    blocked: bool = False
    conflicts: list[ConflictingBooking] = []


class HallAvailabilityResponse(BaseModel):
    study_hall_id: int
    start_date: date
    end_date: date
    seats: dict[int, bool]


class DateAvailability(BaseModel):
    date: date
    available_seat_ids: list[int]
    occupied_seat_ids: list[int]
    total_seats: int


class OccupancyResponse(BaseModel):
    study_hall_id: int
    date: date
    occupied: int
    total: int
    rate: float
