"""
Schemas for merchant settlements.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, Field


class EligibleTransaction(BaseModel):
    transaction_id: int
    booking_id: int
    amount: Decimal
    payment_method: str
    completed_at: datetime


class UnsettledSummary(BaseModel):
    merchant_id: int
    count: int
    total_amount: Decimal
    oldest_transaction_at: Optional[datetime]


class SettlementCreate(BaseModel):
    merchant_id: int
    transaction_ids: list[int] = Field(..., min_length=1)
    platform_fee_percentage: Optional[Decimal] = Field(None, ge=0, le=100)
    notes: Optional[str] = Field(None, max_length=1000)


class SettlementStatusUpdate(BaseModel):
    status: Literal["processing", "paid", "cancelled"]
    payment_method: Optional[str] = Field(None, max_length=50)
    payment_reference: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = Field(None, max_length=1000)


class SettlementItemResponse(BaseModel):
    transaction_id: int
    booking_id: int
    transaction_amount: Decimal

    model_config = {"from_attributes": True}


class SettlementResponse(BaseModel):
    id: int
    merchant_id: int
    admin_id: int
    total_booking_amount: Decimal
    platform_fee_percentage: Decimal
    platform_fee_amount: Decimal
    net_settlement_amount: Decimal
    status: str
    payment_method: Optional[str]
    payment_reference: Optional[str]
    payment_date: Optional[datetime]
    notes: Optional[str]
    created_at: datetime
    items: list[SettlementItemResponse]

    model_config = {"from_attributes": True}


class SettlementDateRange(BaseModel):
    start: Optional[date] = None
    end: Optional[date] = None
