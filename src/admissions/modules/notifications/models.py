"""
Notification Models

In-app notifications shown to admissions staff.
"""

import enum
import uuid

from sqlalchemy import Boolean, Enum, ForeignKey, Index, String, Text, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from admissions.modules.shared import BaseModel


class NotificationKind(str, enum.Enum):
    DOCUMENT_RESUBMITTED = "document_resubmitted"
    ENROLLMENT_SUBMITTED = "enrollment_submitted"


class AdminNotification(BaseModel):
    """Notification addressed to the admissions staff inbox."""

    __tablename__ = "admin_notifications"

    kind: Mapped[NotificationKind] = mapped_column(
        Enum(
            NotificationKind,
            name="notification_kind",
            values_callable=lambda e: [member.value for member in e],
        ),
        nullable=False,
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    link: Mapped[str | None] = mapped_column(String(500), nullable=True)
    enrollment_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("enrollments.id", ondelete="CASCADE"),
        nullable=True,
    )
    is_read: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=text("false")
    )

    __table_args__ = (Index("ix_admin_notifications_unread", "is_read", "created_at"),)
