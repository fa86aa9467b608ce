"""Reminder notification models."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, TypeAdapter


class NotificationContent(BaseModel):
    """What the user sees, plus structured data for the tap handler."""

    title: str
    body: str
    data: dict[str, Any] = Field(default_factory=dict)


class ScheduledNotification(BaseModel):
    """A notification bound to the instant it should fire."""

    content: NotificationContent
    trigger_at: datetime


class ReminderSlot(BaseModel):
    """One (days-before, time-of-day) reminder for a product."""

    days_before: int
    trigger_at: datetime

    @property
    def key(self) -> str:
        return f"{self.days_before}@{self.trigger_at.isoformat()}"


class LedgerRecord(BaseModel):
    """A reminder slot that was handed to the delivery collaborator."""

    days_before: int
    trigger_at: datetime
    body: str
    handle: str

    @property
    def key(self) -> str:
        return f"{self.days_before}@{self.trigger_at.isoformat()}"


ledger_adapter = TypeAdapter(list[LedgerRecord])
