"""Domain models and DTOs."""

from bestbefore.domain.notification import LedgerRecord, NotificationContent, ReminderSlot, ScheduledNotification
from bestbefore.domain.product import CategoryReminderSetting, Product, ProductCreate, ProductUpdate
from bestbefore.domain.sync import DeadLetterEntry, QueueAction, QueueEntry, ReplayResult
from bestbefore.domain.user import AuthUser, Session


__all__ = [
    "AuthUser",
    "CategoryReminderSetting",
    "DeadLetterEntry",
    "LedgerRecord",
    "NotificationContent",
    "Product",
    "ProductCreate",
    "ProductUpdate",
    "QueueAction",
    "QueueEntry",
    "ReminderSlot",
    "ReplayResult",
    "ScheduledNotification",
    "Session",
]
