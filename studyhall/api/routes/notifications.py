"""
In-app notification endpoints.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from studyhall.core.security import get_current_user_id
from studyhall.db.session import get_db
from studyhall.schemas.notification import MarkedRead, NotificationResponse, UnreadCount
from studyhall.services import notification_service

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get("/", response_model=list[NotificationResponse])
async def list_notifications(
    unread_only: bool = False,
    limit: int = Query(50, ge=1, le=200),
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await notification_service.list_notifications(db, user_id, unread_only, limit)


@router.get("/unread-count", response_model=UnreadCount)
async def unread_count(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return UnreadCount(unread=await notification_service.unread_count(db, user_id))


@router.post("/read-all", response_model=MarkedRead)
async def mark_all_read(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return MarkedRead(updated=await notification_service.mark_all_read(db, user_id))


@router.post("/{notification_id}/read", response_model=NotificationResponse)
async def mark_read(
    notification_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await notification_service.mark_read(db, user_id, notification_id)
