"""Booking status notifications."""

from lendit.notifications.sink import (
    PAYLOAD_SCHEMA_VERSION,
    InMemoryNotificationSink,
    NotificationPayload,
    NotificationSink,
    NotificationType,
    SentNotification,
    SqlNotificationSink,
)

__all__ = [
    "PAYLOAD_SCHEMA_VERSION",
    "InMemoryNotificationSink",
    "NotificationPayload",
    "NotificationSink",
    "NotificationType",
    "SentNotification",
    "SqlNotificationSink",
]
