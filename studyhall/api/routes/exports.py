"""
CSV export endpoints. Files are streamed as `text/csv` attachments.
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from studyhall.core.security import get_current_user, require_roles
from studyhall.db.session import get_db
from studyhall.models.user import STAFF_ROLES, User, UserRole
from studyhall.services import export_service

router = APIRouter(prefix="/exports", tags=["Exports"])


def _csv_response(kind: str, header: list[str], rows: list[list]) -> StreamingResponse:
    filename = export_service.export_filename(kind)
    return StreamingResponse(
        export_service.stream_csv(header, rows),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


def _check_range(start_date: Optional[date], end_date: Optional[date]) -> None:
    if start_date and end_date and end_date < start_date:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="End date cannot be before start date",
        )


@router.get("/bookings.csv")
async def export_bookings(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    _check_range(start_date, end_date)
    rows = await export_service.booking_rows(db, user, start_date, end_date)
    return _csv_response("bookings", export_service.BOOKING_COLUMNS, rows)


@router.get("/transactions.csv")
async def export_transactions(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    _check_range(start_date, end_date)
    rows = await export_service.transaction_rows(db, user, start_date, end_date)
    return _csv_response("transactions", export_service.TRANSACTION_COLUMNS, rows)


@router.get("/settlements.csv")
async def export_settlements(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    user: User = Depends(require_roles(UserRole.MERCHANT, *STAFF_ROLES)),
    db: AsyncSession = Depends(get_db),
):
    _check_range(start_date, end_date)
    rows = await export_service.settlement_rows(db, user, start_date, end_date)
    return _csv_response("settlements", export_service.SETTLEMENT_COLUMNS, rows)
