"""Product mutations and refresh, routed through the offline sync queue."""

import logging
from typing import Any

from pydantic import BaseModel, ValidationError

from bestbefore.core.config import Constants
from bestbefore.core.logging import log_with_user_context, span
from bestbefore.core.remote_store import RemoteStore
from bestbefore.domain.product import Product, ProductCreate, ProductUpdate
from bestbefore.domain.sync import QueueAction, ReplayResult
from bestbefore.domain.user import Session
from bestbefore.services.category_reminder_service import CategoryReminderService
from bestbefore.services.reminder_scheduler import ReminderScheduler
from bestbefore.services.sync_queue import MutationQueue


logger = logging.getLogger(__name__)


class SyncStatus(BaseModel):
    """How far local mutations are ahead of the remote store."""

    user_id: str | None
    pending: int
    dead_lettered: int
    pending_entry_ids: list[str]

    @property
    def in_sync(self) -> bool:
        return self.pending == 0


class ProductService:
    """Entry point for the app layer: mutate, refresh and remind.

    Every mutation is enqueued first and then pushed through a replay of the
    queue, so the new entry is attempted immediately but never ahead of
    older entries still waiting from an offline period.
    """

    def __init__(
        self,
        *,
        queue: MutationQueue,
        remote: RemoteStore,
        reminders: ReminderScheduler,
        categories: CategoryReminderService,
        session: Session,
    ) -> None:
        self._queue = queue
        self._remote = remote
        self._reminders = reminders
        self._categories = categories
        self._session = session
        self._products: list[Product] = []

    @property
    def products(self) -> list[Product]:
        """Products from the last successful refresh."""
        return list(self._products)

    async def add_product(self, data: ProductCreate | dict[str, Any]) -> ReplayResult | None:
        """Record a new product and refresh the product list."""
        with span("product_service.add_product"):
            if not self._session.user_id:
                return None
            if not isinstance(data, ProductCreate):
                data = ProductCreate.model_validate(data)

            await self._queue.enqueue(QueueAction.ADD, data.model_dump(mode="json", exclude_none=True))
            result = await self._push()
            await self.fetch_products()
            return result

    async def update_product(self, product_id: str, updates: ProductUpdate | dict[str, Any]) -> ReplayResult | None:
        """Record a partial update and refresh the product list."""
        with span("product_service.update_product"):
            if not self._session.user_id:
                return None
            if not isinstance(updates, ProductUpdate):
                updates = ProductUpdate.model_validate(updates)

            await self._queue.enqueue(
                QueueAction.EDIT,
                {"id": product_id, "updates": updates.model_dump(mode="json", exclude_unset=True)},
            )
            result = await self._push()
            await self.fetch_products()
            return result

    async def delete_product(self, product_id: str) -> ReplayResult | None:
        """Record a deletion, drop the product locally and cancel its reminders."""
        with span("product_service.delete_product"):
            if not self._session.user_id:
                return None

            await self._queue.enqueue(QueueAction.DELETE, {"id": product_id})
            result = await self._push()
            self._products = [p for p in self._products if p.id != product_id]
            await self._reminders.cancel_for_product(product_id)
            return result

    async def _push(self) -> ReplayResult:
        result = await self._queue.replay()
        if not result.completed:
            log_with_user_context(
                logger,
                "warning",
                "Offline or error, action queued",
                user_id=self._session.user_id,
                error=result.error.message if result.error else result.skipped_reason,
            )
        return result

    async def fetch_products(self) -> list[Product]:
        """Replay pending mutations, read the user's products, then schedule reminders.

        Returns an empty list when nobody is signed in or the read fails.
        """
        with span("product_service.fetch_products"):
            user_id = self._session.user_id
            if not user_id:
                self._products = []
                return []

            await self._queue.replay()

            result = await self._remote.select(
                Constants.PRODUCTS_TABLE,
                {"user_id": user_id},
                order="expiry_date.asc",
            )
            if not result.ok:
                logger.error("Error fetching products: %s", result.error.message if result.error else "")
                self._products = []
                return []

            products = []
            for row in result.data or []:
                try:
                    products.append(Product.model_validate(row))
                except ValidationError as e:
                    logger.warning("Skipping invalid product row %s: %s", row.get("id"), e)
            self._products = products

            await self._schedule_reminders(products)
            return self.products

    async def _schedule_reminders(self, products: list[Product]) -> None:
        if not products:
            return
        if not await self._reminders.ensure_permission():
            return

        await self._categories.list_settings()
        total = 0
        for product in products:
            total += len(await self._reminders.schedule_notifications_for_product(product))
        logger.info("Reminders refreshed for %d products (%d scheduled)", len(products), total)

    async def replay(self) -> ReplayResult:
        """Push pending mutations without refreshing products."""
        return await self._queue.replay()

    async def sync_status(self) -> SyncStatus:
        pending = await self._queue.pending()
        dead = await self._queue.dead_letters()
        return SyncStatus(
            user_id=self._session.user_id,
            pending=len(pending),
            dead_lettered=len(dead),
            pending_entry_ids=[entry.id for entry in pending],
        )
