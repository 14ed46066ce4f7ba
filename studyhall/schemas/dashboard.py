"""
Schemas for role dashboards.
"""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel


class MerchantSummary(BaseModel):
    merchant_id: int
    study_halls: int
    total_seats: int
    occupied_today: int
    occupancy_rate: float
    active_bookings: int
    completed_revenue: Decimal
    unsettled_amount: Decimal
    average_rating: Optional[Decimal]


class AdminSummary(BaseModel):
    users_by_role: dict[str, int]
    bookings_by_status: dict[str, int]
    revenue_by_method: dict[str, Decimal]
    pending_offline_payments: int
    stuck_qr_payments: int
