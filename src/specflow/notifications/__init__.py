"""Notification providers."""

from specflow.notifications.base import (
    ConsoleNotifier,
    NotificationLevel,
    Notifier,
    NullNotifier,
)

__all__ = [
    "ConsoleNotifier",
    "NotificationLevel",
    "Notifier",
    "NullNotifier",
]
