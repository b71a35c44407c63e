"""
Notification Repository
"""

from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import AdminNotification, NotificationKind


async def create(
    db: AsyncSession,
    *,
    kind: NotificationKind,
    title: str,
    message: str,
    link: str | None = None,
    enrollment_id: UUID | None = None,
) -> AdminNotification:
    """Add a notification to the session. The caller commits."""
    notification = AdminNotification(
        kind=kind,
        title=title,
        message=message,
        link=link,
        enrollment_id=enrollment_id,
    )
    db.add(notification)
    await db.flush()
    return notification


async def list_unread(db: AsyncSession, limit: int = 50) -> list[AdminNotification]:
    """Newest unread notifications first."""
    result = await db.execute(
        select(AdminNotification)
        .where(AdminNotification.is_read.is_(False))
        .order_by(AdminNotification.created_at.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def mark_read(db: AsyncSession, notification_id: UUID) -> bool:
    """Mark a notification as read. Returns False if it doesn't exist."""
    result = await db.execute(
        update(AdminNotification)
        .where(AdminNotification.id == notification_id)
        .values(is_read=True)
        .returning(AdminNotification.id)
    )
    return result.scalar_one_or_none() is not None
