"""New-contest email notifications."""

from apps.notification.service import NotificationResult, NotificationService

__all__ = ["NotificationResult", "NotificationService"]
