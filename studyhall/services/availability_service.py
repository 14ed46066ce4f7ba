"""
Seat availability for date ranges.

A booking holds its seat while its status is pending, confirmed or active.
Two ranges overlap when `existing.start <= requested.end` and
`existing.end >= requested.start` (both inclusive). A vacated booking holds
the seat only until the day before its vacate date.
"""

from datetime import date, timedelta
from typing import Iterable, Optional

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from studyhall.models.booking import BLOCKING_STATUSES, Booking
from studyhall.models.study_hall import Seat, StudyHall


def overlap_filter(start: date, end: date):
    """SQL predicate for blocking bookings whose held range meets [start, end]."""
    return and_(
        Booking.status.in_(BLOCKING_STATUSES),
        Booking.start_date <= end,
        Booking.end_date >= start,
        or_(
            Booking.is_vacated.is_(False),
            Booking.vacated_on.is_(None),
            Booking.vacated_on > start,
        ),
    )


async def find_conflicts(
    db: AsyncSession,
    seat_id: int,
    start: date,
    end: date,
    exclude_booking_id: Optional[int] = None,
) -> list[Booking]:
    query = select(Booking).where(Booking.seat_id == seat_id, overlap_filter(start, end))
    if exclude_booking_id is not None:
        query = query.where(Booking.id != exclude_booking_id)
    result = await db.execute(query.order_by(Booking.start_date))
    return list(result.scalars().unique().all())


async def check_seat_availability(
    db: AsyncSession, seat: Seat, start: date, end: date
) -> dict:
    conflicts = await find_conflicts(db, seat.id, start, end)
    return {
        "seat_id": seat.id,
        "available": seat.is_available and not conflicts,
        "blocked": not seat.is_available,
        "conflicts": [
            {
                "booking_id": b.id,
                "start_date": b.start_date,
                "end_date": b.end_date,
                "user_id": b.user_id,
            }
            for b in conflicts
        ],
    }


async def _blocking_bookings(
    db: AsyncSession, hall_id: int, start: date, end: date
) -> list[Booking]:
    result = await db.execute(
        select(Booking).where(Booking.study_hall_id == hall_id, overlap_filter(start, end))
    )
    return list(result.scalars().unique().all())


async def seat_availability_map(
    db: AsyncSession, hall: StudyHall, start: date, end: date
) -> dict[int, bool]:
    taken = {b.seat_id for b in await _blocking_bookings(db, hall.id, start, end)}
    return {seat.id: seat.is_available and seat.id not in taken for seat in hall.seats}


def _holds_on(booking: Booking, day: date) -> bool:
    return booking.start_date <= day <= booking.blocks_until


async def date_availability(
    db: AsyncSession, hall: StudyHall, dates: Iterable[date]
) -> list[dict]:
    days = sorted(set(dates))
    if not days:
        return []

    bookings = await _blocking_bookings(db, hall.id, days[0], days[-1])
    report = []
    for day in days:
        occupied = {b.seat_id for b in bookings if _holds_on(b, day)}
        available = [s.id for s in hall.seats if s.is_available and s.id not in occupied]
        report.append(
            {
                "date": day,
                "available_seat_ids": available,
                "occupied_seat_ids": sorted(occupied),
                "total_seats": hall.total_seats,
            }
        )
    return report


async def hall_occupancy(db: AsyncSession, hall: StudyHall, on: date) -> dict:
    bookings = await _blocking_bookings(db, hall.id, on, on)
    occupied = len({b.seat_id for b in bookings if _holds_on(b, on)})
    total = hall.total_seats
    return {
        "study_hall_id": hall.id,
        "date": on,
        "occupied": occupied,
        "total": total,
        "rate": round(occupied / total * 100, 2) if total else 0.0,
    }


def date_range(start: date, end: date) -> list[date]:
    return [start + timedelta(days=offset) for offset in range((end - start).days + 1)]
