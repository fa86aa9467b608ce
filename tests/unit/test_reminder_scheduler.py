"""Tests for expiry reminder scheduling."""

from datetime import UTC, date, datetime, timedelta

import pytest

from bestbefore.core.config import Constants
from bestbefore.domain.product import Product
from bestbefore.services.category_reminder_service import CategoryReminderService
from bestbefore.services.reminder_scheduler import (
    ReminderLedger,
    ReminderScheduler,
    compute_reminder_slots,
    reminder_body,
)
from tests.unit.mocks import FakeRemoteStore, InMemoryKeyValueStore, RecordingDelivery


NEW_YEAR = datetime(2025, 1, 1, 0, 0)
MORNING = datetime(2025, 3, 10, 8, 30)


class Clock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


async def _with_override(
    categories: CategoryReminderService, remote: FakeRemoteStore, name: str, days: int
) -> CategoryReminderService:
    remote.seed(
        Constants.CATEGORY_REMINDERS_TABLE,
        {"id": f"c-{name}", "category_name": name, "reminder_days": days, "user_id": "user-1"},
    )
    await categories.list_settings()
    return categories


def _scheduler(
    delivery: RecordingDelivery,
    categories: CategoryReminderService,
    now: datetime,
    ledger: ReminderLedger | None = None,
) -> ReminderScheduler:
    return ReminderScheduler(delivery=delivery, categories=categories, ledger=ledger, clock=Clock(now))


@pytest.mark.unit
class TestComputeReminderSlots:
    def test_subtracts_calendar_days(self):
        slots = compute_reminder_slots(expiry_date=date(2025, 6, 10), reminder_days=3, now=datetime(2025, 6, 1))

        assert [s.trigger_at for s in slots] == [
            datetime(2025, 6, 7, 12, 0),
            datetime(2025, 6, 7, 20, 0),
            datetime(2025, 6, 9, 12, 0),
            datetime(2025, 6, 9, 20, 0),
        ]

    def test_slot_at_exactly_now_is_skipped(self):
        slots = compute_reminder_slots(
            expiry_date=date(2025, 6, 10), reminder_days=1, now=datetime(2025, 6, 9, 12, 0)
        )

        assert [s.trigger_at for s in slots] == [datetime(2025, 6, 9, 20, 0)]

    def test_triggers_carry_timezone_of_now(self):
        now = datetime(2025, 6, 1, tzinfo=UTC)

        slots = compute_reminder_slots(expiry_date=date(2025, 6, 10), reminder_days=3, now=now)

        assert all(s.trigger_at.tzinfo is UTC for s in slots)

    def test_zero_day_lead_time_reminds_on_expiry_day(self):
        slots = compute_reminder_slots(expiry_date=date(2025, 6, 10), reminder_days=0, now=datetime(2025, 6, 1))

        assert [s.days_before for s in slots] == [0, 0, 1, 1]
        assert slots[0].trigger_at == datetime(2025, 6, 10, 12, 0)


@pytest.mark.unit
def test_reminder_body_wording():
    assert reminder_body("Milk", 0) == "Milk expires today!"
    assert reminder_body("Milk", 1) == "Milk expires tomorrow!"
    assert reminder_body("Milk", 3) == "Milk expires in 3 days"


@pytest.mark.unit
class TestScheduleNotificationsForProduct:
    async def test_end_to_end_default_lead_time(
        self, delivery: RecordingDelivery, categories: CategoryReminderService
    ):
        scheduler = _scheduler(delivery, categories, NEW_YEAR)
        product = {"id": "p1", "name": "Milk", "expiry_date": "2025-01-10", "category": "Dairy"}

        handles = await scheduler.schedule_notifications_for_product(product)

        assert len(handles) == 4
        assert [t for _, t in delivery.submitted] == [
            datetime(2025, 1, 7, 12, 0),
            datetime(2025, 1, 7, 20, 0),
            datetime(2025, 1, 9, 12, 0),
            datetime(2025, 1, 9, 20, 0),
        ]
        assert [c.body for c, _ in delivery.submitted] == [
            "Milk expires in 3 days",
            "Milk expires in 3 days",
            "Milk expires tomorrow!",
            "Milk expires tomorrow!",
        ]
        content = delivery.submitted[0][0]
        assert content.title == Constants.REMINDER_TITLE
        assert content.data == {"productId": "p1", "category": "Dairy", "daysBefore": 3}

    async def test_expired_today_schedules_nothing(
        self, delivery: RecordingDelivery, categories: CategoryReminderService
    ):
        scheduler = _scheduler(delivery, categories, MORNING)
        product = Product(id="p1", name="Bread", expiry_date=MORNING.date())

        handles = await scheduler.schedule_notifications_for_product(product)

        assert handles == []
        assert delivery.submitted == []

    async def test_future_expiry_schedules_every_slot(
        self, delivery: RecordingDelivery, categories: CategoryReminderService
    ):
        scheduler = _scheduler(delivery, categories, MORNING)
        product = Product(id="p1", name="Bread", expiry_date=MORNING.date() + timedelta(days=5))

        handles = await scheduler.schedule_notifications_for_product(product)

        assert len(handles) == 4
        assert {t.date() for _, t in delivery.submitted} == {
            MORNING.date() + timedelta(days=2),
            MORNING.date() + timedelta(days=4),
        }

    async def test_one_day_lead_time_collapses_offsets(
        self, delivery: RecordingDelivery, categories: CategoryReminderService, remote: FakeRemoteStore
    ):
        await _with_override(categories, remote, "Bakery", 1)
        scheduler = _scheduler(delivery, categories, MORNING)
        product = Product(id="p1", name="Bread", category="Bakery", expiry_date=MORNING.date() + timedelta(days=10))

        handles = await scheduler.schedule_notifications_for_product(product)

        assert len(handles) == 2
        assert {c.data["daysBefore"] for c, _ in delivery.submitted} == {1}

    async def test_category_override_takes_precedence(
        self, delivery: RecordingDelivery, categories: CategoryReminderService, remote: FakeRemoteStore
    ):
        await _with_override(categories, remote, "Dairy", 7)
        scheduler = _scheduler(delivery, categories, MORNING)
        product = Product(id="p1", name="Yogurt", category="Dairy", expiry_date=MORNING.date() + timedelta(days=7))

        await scheduler.schedule_notifications_for_product(product)

        assert [c.data["daysBefore"] for c, _ in delivery.submitted] == [7, 7, 1, 1]
        assert delivery.submitted[0][0].body == "Yogurt expires in 7 days"
        assert delivery.submitted[0][1] == datetime.combine(MORNING.date(), datetime.min.time()).replace(hour=12)

    async def test_unknown_category_uses_default(
        self, delivery: RecordingDelivery, categories: CategoryReminderService, remote: FakeRemoteStore
    ):
        await _with_override(categories, remote, "Dairy", 7)
        scheduler = _scheduler(delivery, categories, NEW_YEAR)
        product = Product(id="p1", name="Apples", category="Fruit", expiry_date=date(2025, 1, 20))

        await scheduler.schedule_notifications_for_product(product)

        assert delivery.submitted[0][0].data["daysBefore"] == 3

    async def test_delivery_failure_skips_only_that_slot(
        self, delivery: RecordingDelivery, categories: CategoryReminderService
    ):
        delivery.fail_on = {2}
        scheduler = _scheduler(delivery, categories, NEW_YEAR)
        product = Product(id="p1", name="Milk", expiry_date=date(2025, 1, 10))

        handles = await scheduler.schedule_notifications_for_product(product)

        assert handles == ["h1", "h3", "h4"]

    async def test_repeated_calls_resubmit_without_ledger(
        self, delivery: RecordingDelivery, categories: CategoryReminderService
    ):
        scheduler = _scheduler(delivery, categories, NEW_YEAR)
        product = Product(id="p1", name="Milk", expiry_date=date(2025, 1, 10))

        await scheduler.schedule_notifications_for_product(product)
        await scheduler.schedule_notifications_for_product(product)

        assert len(delivery.submitted) == 8

    async def test_permission(self, categories: CategoryReminderService):
        granted = _scheduler(RecordingDelivery(permission=True), categories, NEW_YEAR)
        denied = _scheduler(RecordingDelivery(permission=False), categories, NEW_YEAR)

        assert await granted.ensure_permission() is True
        assert await denied.ensure_permission() is False


@pytest.mark.unit
class TestReminderLedger:
    @pytest.fixture
    def ledger(self, kv_store: InMemoryKeyValueStore) -> ReminderLedger:
        return ReminderLedger(kv_store)

    async def test_repeated_calls_reuse_scheduled_handles(
        self, delivery: RecordingDelivery, categories: CategoryReminderService, ledger: ReminderLedger
    ):
        scheduler = _scheduler(delivery, categories, NEW_YEAR, ledger)
        product = Product(id="p1", name="Milk", expiry_date=date(2025, 1, 10))

        first = await scheduler.schedule_notifications_for_product(product)
        second = await scheduler.schedule_notifications_for_product(product)

        assert first == second
        assert len(delivery.submitted) == 4
        assert delivery.cancelled == []

    async def test_changed_expiry_cancels_stale_reminders(
        self, delivery: RecordingDelivery, categories: CategoryReminderService, ledger: ReminderLedger
    ):
        scheduler = _scheduler(delivery, categories, NEW_YEAR, ledger)
        first = await scheduler.schedule_notifications_for_product(
            Product(id="p1", name="Milk", expiry_date=date(2025, 1, 10))
        )

        second = await scheduler.schedule_notifications_for_product(
            Product(id="p1", name="Milk", expiry_date=date(2025, 1, 20))
        )

        assert sorted(delivery.cancelled) == sorted(first)
        assert set(second).isdisjoint(first)
        assert sorted(delivery.scheduled) == sorted(second)

    async def test_renamed_product_reschedules_with_new_body(
        self, delivery: RecordingDelivery, categories: CategoryReminderService, ledger: ReminderLedger
    ):
        scheduler = _scheduler(delivery, categories, NEW_YEAR, ledger)
        await scheduler.schedule_notifications_for_product(Product(id="p1", name="Milk", expiry_date=date(2025, 1, 10)))

        await scheduler.schedule_notifications_for_product(
            Product(id="p1", name="Oat Milk", expiry_date=date(2025, 1, 10))
        )

        assert len(delivery.cancelled) == 4
        assert {c.body for c, _ in delivery.scheduled.values()} == {
            "Oat Milk expires in 3 days",
            "Oat Milk expires tomorrow!",
        }

    async def test_fired_reminders_are_not_rescheduled(
        self, delivery: RecordingDelivery, categories: CategoryReminderService, ledger: ReminderLedger
    ):
        clock = Clock(NEW_YEAR)
        scheduler = ReminderScheduler(delivery=delivery, categories=categories, ledger=ledger, clock=clock)
        product = Product(id="p1", name="Milk", expiry_date=date(2025, 1, 10))
        await scheduler.schedule_notifications_for_product(product)

        clock.now = datetime(2025, 1, 8)
        handles = await scheduler.schedule_notifications_for_product(product)

        assert handles == ["h3", "h4"]
        assert len(delivery.submitted) == 4

    async def test_cancel_for_product_clears_ledger(
        self,
        delivery: RecordingDelivery,
        categories: CategoryReminderService,
        ledger: ReminderLedger,
        kv_store: InMemoryKeyValueStore,
    ):
        scheduler = _scheduler(delivery, categories, NEW_YEAR, ledger)
        await scheduler.schedule_notifications_for_product(Product(id="p1", name="Milk", expiry_date=date(2025, 1, 10)))

        cancelled = await scheduler.cancel_for_product("p1")

        assert cancelled == 4
        assert delivery.scheduled == {}
        assert ReminderLedger.key_for("p1") not in kv_store.data

    async def test_cancel_without_ledger_is_noop(
        self, delivery: RecordingDelivery, categories: CategoryReminderService
    ):
        scheduler = _scheduler(delivery, categories, NEW_YEAR)

        assert await scheduler.cancel_for_product("p1") == 0

    async def test_corrupted_ledger_is_ignored(
        self, ledger: ReminderLedger, kv_store: InMemoryKeyValueStore
    ):
        kv_store.data[ReminderLedger.key_for("p1")] = "[{]"

        assert await ledger.load("p1") == []
