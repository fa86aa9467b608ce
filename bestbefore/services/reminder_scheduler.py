"""Expiry reminder scheduling.

For each product, reminders fire at noon and 8pm local time on two days:
the category's lead time before expiry and the day before expiry. Slots
that are already in the past are never scheduled.
"""

import logging
from collections.abc import Callable, Iterable, Mapping
from datetime import date, datetime, time, timedelta
from typing import Any

from pydantic import ValidationError

from bestbefore.core.config import Constants
from bestbefore.core.errors import StorageError
from bestbefore.core.kv_store import KeyValueStore
from bestbefore.core.logging import span
from bestbefore.domain.notification import (
    LedgerRecord,
    NotificationContent,
    ReminderSlot,
    ScheduledNotification,
    ledger_adapter,
)
from bestbefore.domain.product import Product
from bestbefore.interface.notification_delivery import NotificationDelivery
from bestbefore.services.category_reminder_service import CategoryReminderService


logger = logging.getLogger(__name__)


def compute_reminder_slots(
    *,
    expiry_date: date,
    reminder_days: int,
    now: datetime,
    hours: Iterable[int] = Constants.REMINDER_HOURS,
) -> list[ReminderSlot]:
    """Compute the future reminder times for one product.

    Offsets are {reminder_days, 1}, so a lead time of 1 yields one day of
    reminders, not two. Days are subtracted on the calendar, and each
    trigger carries the timezone of `now`.

    Args:
        expiry_date: Calendar expiry date
        reminder_days: Days before expiry for the first reminder
        now: Current wall-clock time; slots at or before it are dropped
        hours: Hours of the day to remind at

    Returns:
        Slots ordered by offset (lead time first) then hour
    """
    slots = []
    for days_before in dict.fromkeys((reminder_days, Constants.FINAL_REMINDER_DAYS)):
        day = expiry_date - timedelta(days=days_before)
        for hour in hours:
            trigger_at = datetime.combine(day, time(hour=hour), tzinfo=now.tzinfo)
            if trigger_at <= now:
                continue
            slots.append(ReminderSlot(days_before=days_before, trigger_at=trigger_at))
    return slots


def reminder_body(name: str, days_before: int) -> str:
    if days_before == 0:
        return f"{name} expires today!"
    if days_before == 1:
        return f"{name} expires tomorrow!"
    return f"{name} expires in {days_before} days"


def build_notification(product: Product, slot: ReminderSlot) -> ScheduledNotification:
    return ScheduledNotification(
        content=NotificationContent(
            title=Constants.REMINDER_TITLE,
            body=reminder_body(product.name, slot.days_before),
            data={"productId": product.id, "category": product.category, "daysBefore": slot.days_before},
        ),
        trigger_at=slot.trigger_at,
    )


class ReminderLedger:
    """Remembers which reminders were handed to delivery, per product."""

    def __init__(self, storage: KeyValueStore) -> None:
        self._storage = storage

    @staticmethod
    def key_for(product_id: str) -> str:
        return f"{Constants.REMINDER_LEDGER_KEY_PREFIX}:{product_id}"

    async def load(self, product_id: str) -> list[LedgerRecord]:
        key = self.key_for(product_id)
        try:
            raw = await self._storage.get(key)
        except StorageError as e:
            logger.error("Error reading reminder ledger", extra={"key": key, "error": str(e)})
            return []
        if not raw:
            return []
        try:
            return ledger_adapter.validate_json(raw)
        except ValidationError as e:
            logger.error("Reminder ledger is corrupted, ignoring it", extra={"key": key, "error": str(e)})
            return []

    async def save(self, product_id: str, records: list[LedgerRecord]) -> None:
        key = self.key_for(product_id)
        try:
            if records:
                await self._storage.set(key, ledger_adapter.dump_json(records).decode())
            else:
                await self._storage.remove(key)
        except StorageError as e:
            logger.error("Error saving reminder ledger", extra={"key": key, "error": str(e)})

    async def forget(self, product_id: str) -> None:
        await self.save(product_id, [])


class ReminderScheduler:
    """Turns products into scheduled expiry reminders."""

    def __init__(
        self,
        *,
        delivery: NotificationDelivery,
        categories: CategoryReminderService,
        ledger: ReminderLedger | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._delivery = delivery
        self._categories = categories
        self._ledger = ledger
        self._clock = clock

    async def ensure_permission(self) -> bool:
        """Ask the delivery collaborator whether reminders may be shown."""
        granted = await self._delivery.request_permission()
        if not granted:
            logger.warning("Notification permission denied, reminders will not be scheduled")
        return granted

    async def schedule_notifications_for_product(self, product: Product | Mapping[str, Any]) -> list[str]:
        """Schedule the reminders for one product and return their delivery handles.

        Without a ledger every call submits every future slot. With a ledger,
        slots that are still scheduled from a previous call are reused and
        reminders for slots that no longer apply are cancelled.

        A slot whose submission fails is logged and skipped; the remaining
        slots are still submitted.

        Args:
            product: Product, or a mapping with id, name, expiry_date and optional category

        Returns:
            Delivery handles in slot order; empty when every slot is in the past
        """
        if not isinstance(product, Product):
            product = Product.model_validate(product)

        with span("reminder_scheduler.schedule_notifications_for_product"):
            reminder_days = self._categories.reminder_days_for(product.category)
            slots = compute_reminder_slots(
                expiry_date=product.expiry_date,
                reminder_days=reminder_days,
                now=self._clock(),
            )

            previous: dict[str, LedgerRecord] = {}
            if self._ledger is not None:
                previous = {record.key: record for record in await self._ledger.load(product.id)}

            handles: list[str] = []
            records: list[LedgerRecord] = []
            for slot in slots:
                notification = build_notification(product, slot)
                existing = previous.pop(slot.key, None)
                if existing is not None:
                    if existing.body == notification.content.body and await self._delivery.is_scheduled(
                        existing.handle
                    ):
                        handles.append(existing.handle)
                        records.append(existing)
                        continue
                    await self._cancel(existing.handle)

                try:
                    handle = await self._delivery.schedule_at(notification.content, notification.trigger_at)
                except Exception:
                    logger.exception(
                        "Failed to schedule reminder for product %s at %s",
                        product.id,
                        slot.trigger_at.isoformat(),
                    )
                    continue

                handles.append(handle)
                records.append(
                    LedgerRecord(
                        days_before=slot.days_before,
                        trigger_at=slot.trigger_at,
                        body=notification.content.body,
                        handle=handle,
                    )
                )

            if self._ledger is not None:
                for stale in previous.values():
                    await self._cancel(stale.handle)
                await self._ledger.save(product.id, records)

            logger.info(
                "Scheduled %d notifications for product %s (category: %s, reminder days: %d)",
                len(handles),
                product.id,
                product.category or "unknown",
                reminder_days,
            )
            return handles

    async def cancel_for_product(self, product_id: str) -> int:
        """Cancel every ledgered reminder of a product, e.g. after it was deleted."""
        if self._ledger is None:
            return 0
        records = await self._ledger.load(product_id)
        cancelled = 0
        for record in records:
            if await self._cancel(record.handle):
                cancelled += 1
        await self._ledger.forget(product_id)
        logger.info("Cancelled %d reminders for product %s", cancelled, product_id)
        return cancelled

    async def _cancel(self, handle: str) -> bool:
        try:
            return await self._delivery.cancel(handle)
        except Exception:
            logger.exception("Failed to cancel reminder %s", handle)
            return False
