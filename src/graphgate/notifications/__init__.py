"""
Notifications module - optional push client and its resolution state.
"""

from __future__ import annotations

from .client import PushNotificationClient, create_notification_client
from .state import NotificationResolver, NotificationState, NotificationStatus

__all__ = [
    "PushNotificationClient",
    "create_notification_client",
    "NotificationResolver",
    "NotificationState",
    "NotificationStatus",
]
