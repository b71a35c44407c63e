"""
Notifications Admin Router

Endpoints:
- GET /admin/notifications - Unread staff notifications, newest first
- POST /admin/notifications/{id}/read - Mark a notification as read
"""

import logging
from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from pydantic import BaseModel, ConfigDict
from sqlalchemy.ext.asyncio import AsyncSession

from admissions.core.auth import StaffUser, get_current_staff_user
from admissions.core.database import get_db
from admissions.modules.notifications import repository
from admissions.modules.notifications.models import NotificationKind

logger = logging.getLogger(__name__)

router = APIRouter()


class NotificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    kind: NotificationKind
    title: str
    message: str
    link: str | None
    enrollment_id: UUID | None
    is_read: bool
    created_at: datetime


@router.get(
    "",
    response_model=list[NotificationResponse],
    summary="List Unread Notifications",
)
async def list_unread(
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
    staff: StaffUser = Depends(get_current_staff_user),
) -> list[NotificationResponse]:
    notifications = await repository.list_unread(db, limit)
    return [NotificationResponse.model_validate(item) for item in notifications]


@router.post(
    "/{notification_id}/read",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Mark Notification Read",
    responses={404: {"description": "Notification not found"}},
)
async def mark_read(
    notification_id: UUID,
    db: AsyncSession = Depends(get_db),
    staff: StaffUser = Depends(get_current_staff_user),
) -> Response:
    if not await repository.mark_read(db, notification_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={
                "error": "NOTIFICATION_NOT_FOUND",
                "message": f"Notification {notification_id} not found",
            },
        )
    await db.commit()
    logger.debug(f"Staff {staff.id} read notification {notification_id}")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
