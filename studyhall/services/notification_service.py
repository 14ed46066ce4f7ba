"""
In-app notifications.
"""

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from fastapi import HTTPException, status

from studyhall.core.logging import get_logger
from studyhall.models.notification import Notification, NotificationType
from studyhall.services.realtime import queue_change

logger = get_logger(__name__)


async def notify(
    db: AsyncSession,
    user_id: int | None,
    title: str,
    message: str,
    notification_type: str = NotificationType.INFO.value,
    action_url: str | None = None,
) -> Notification | None:
    """Store an in-app notification. Guest bookings have no inbox, so `None` is skipped."""
    if user_id is None:
        return None
    notification = Notification(
        user_id=user_id,
        title=title,
        message=message,
        type=notification_type,
        action_url=action_url,
        read=False,
    )
    db.add(notification)
    await db.flush()
    logger.info("notification_created", user_id=user_id, notification_id=notification.id)
    queue_change(db, "notifications", "insert", notification.id, user_id=user_id, staff=False)
    return notification


async def list_notifications(
    db: AsyncSession, user_id: int, unread_only: bool = False, limit: int = 50
) -> list[Notification]:
    query = select(Notification).where(Notification.user_id == user_id)
    if unread_only:
        query = query.where(Notification.read.is_(False))
    result = await db.execute(
        query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit)
    )
    return list(result.scalars().all())


async def unread_count(db: AsyncSession, user_id: int) -> int:
    result = await db.execute(
        select(func.count(Notification.id)).where(
            Notification.user_id == user_id, Notification.read.is_(False)
        )
    )
    return result.scalar_one()


async def mark_read(db: AsyncSession, user_id: int, notification_id: int) -> Notification:
    result = await db.execute(
        select(Notification).where(
            Notification.id == notification_id, Notification.user_id == user_id
        )
    )
    notification = result.scalar_one_or_none()
    if not notification:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Notification not found",
        )
    notification.read = True
    await db.flush()
    return notification


async def mark_all_read(db: AsyncSession, user_id: int) -> int:
    result = await db.execute(
        update(Notification)
        .where(Notification.user_id == user_id, Notification.read.is_(False))
        .values(read=True)
    )
    return result.rowcount or 0
