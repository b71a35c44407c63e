"""
Notifications module - fire-and-forget alerts for admissions staff.
"""

from admissions.modules.notifications.models import AdminNotification, NotificationKind
from admissions.modules.notifications.service import notify

__all__ = ["AdminNotification", "NotificationKind", "notify"]
