"""Notification delivery: schedules reminders to fire as push notifications."""

import logging
import uuid
from datetime import datetime
from typing import Any, Protocol

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger

from bestbefore.domain.notification import NotificationContent
from bestbefore.interface import push_sender


logger = logging.getLogger(__name__)

# Jobs live in the in-memory job store; a run delayed by a busy event loop still fires within this window
MISFIRE_GRACE_SECONDS = 3600


class NotificationDelivery(Protocol):
    """Collaborator that owns future notifications, identified by opaque handles."""

    async def schedule_at(self, content: NotificationContent, trigger_at: datetime) -> str: ...

    async def cancel(self, handle: str) -> bool: ...

    async def is_scheduled(self, handle: str) -> bool: ...

    async def request_permission(self) -> bool: ...


async def deliver_reminder(*, to: str, content: dict[str, Any]) -> None:
    """Job body: push one reminder to the device."""
    result = await push_sender.send_push(
        to=to,
        title=content["title"],
        body=content["body"],
        data=content.get("data"),
    )
    if result.success:
        logger.info("Delivered reminder", extra={"ticket_id": result.ticket_id, "data": content.get("data")})
    else:
        logger.error("Failed to deliver reminder", extra={"error": result.error, "data": content.get("data")})


class ScheduledPushDelivery:
    """Delivery backed by APScheduler date jobs; the job id is the delivery handle."""

    def __init__(self, *, scheduler: AsyncIOScheduler, push_token: str | None) -> None:
        self._scheduler = scheduler
        self._push_token = push_token

    async def request_permission(self) -> bool:
        if not self._push_token:
            logger.warning("Push notification permission not granted")
            return False
        return True

    async def schedule_at(self, content: NotificationContent, trigger_at: datetime) -> str:
        if not self._push_token:
            msg = "Push notification permission not granted"
            raise PermissionError(msg)

        handle = uuid.uuid4().hex
        self._scheduler.add_job(
            deliver_reminder,
            trigger=DateTrigger(run_date=trigger_at),
            id=handle,
            name=content.body,
            kwargs={"to": self._push_token, "content": content.model_dump(mode="json")},
            misfire_grace_time=MISFIRE_GRACE_SECONDS,
        )
        logger.debug("Scheduled reminder job", extra={"handle": handle, "trigger_at": trigger_at.isoformat()})
        return handle

    async def cancel(self, handle: str) -> bool:
        try:
            self._scheduler.remove_job(handle)
        except JobLookupError:
            return False
        logger.debug("Cancelled reminder job", extra={"handle": handle})
        return True

    async def is_scheduled(self, handle: str) -> bool:
        return self._scheduler.get_job(handle) is not None
