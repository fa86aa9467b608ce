"""Per-category reminder overrides for the current user."""

import logging

from pydantic import ValidationError

from bestbefore.core.config import Constants, settings
from bestbefore.core.logging import span
from bestbefore.core.remote_store import RemoteStore
from bestbefore.domain.product import CategoryReminderSetting
from bestbefore.domain.user import Session


logger = logging.getLogger(__name__)


class CategoryReminderService:
    """Reads and edits CategoryReminderSetting rows, caching the last fetched list."""

    def __init__(self, *, remote: RemoteStore, session: Session, default_days: int | None = None) -> None:
        self._remote = remote
        self._session = session
        self._default_days = settings.default_reminder_days if default_days is None else default_days
        self._settings: list[CategoryReminderSetting] = []

    @property
    def default_days(self) -> int:
        return self._default_days

    @property
    def cached(self) -> list[CategoryReminderSetting]:
        return list(self._settings)

    async def list_settings(self) -> list[CategoryReminderSetting]:
        """Fetch the current user's overrides ordered by category name.

        Returns an empty list when nobody is signed in or the request fails.
        """
        with span("category_reminder_service.list_settings"):
            user_id = self._session.user_id
            if not user_id:
                self._settings = []
                return []

            result = await self._remote.select(
                Constants.CATEGORY_REMINDERS_TABLE,
                {"user_id": user_id},
                order="category_name.asc",
            )
            if not result.ok:
                logger.error("Error fetching category reminders: %s", result.error.message if result.error else "")
                self._settings = []
                return []

            parsed = []
            for row in result.data or []:
                try:
                    parsed.append(CategoryReminderSetting.model_validate(row))
                except ValidationError as e:
                    logger.warning("Skipping invalid category reminder row %s: %s", row.get("id"), e)
            self._settings = parsed
            return self.cached

    async def add(self, category_name: str, reminder_days: int) -> bool:
        """Create an override and refresh the cache."""
        with span("category_reminder_service.add"):
            user_id = self._session.user_id
            if not user_id:
                return False

            setting = CategoryReminderSetting(category_name=category_name.strip(), reminder_days=reminder_days)
            result = await self._remote.insert(
                Constants.CATEGORY_REMINDERS_TABLE,
                {"category_name": setting.category_name, "reminder_days": setting.reminder_days, "user_id": user_id},
            )
            if not result.ok:
                logger.error("Error adding category reminder: %s", result.error.message if result.error else "")
                return False

            await self.list_settings()
            return True

    async def update(self, setting_id: str, reminder_days: int) -> bool:
        """Change the lead time of an existing override."""
        with span("category_reminder_service.update"):
            user_id = self._session.user_id
            if not user_id:
                return False

            if reminder_days < 0:
                msg = "reminder_days must be >= 0"
                raise ValueError(msg)

            result = await self._remote.update(
                Constants.CATEGORY_REMINDERS_TABLE,
                {"id": setting_id, "user_id": user_id},
                {"reminder_days": reminder_days},
            )
            if not result.ok:
                logger.error("Error updating category reminder: %s", result.error.message if result.error else "")
                return False

            await self.list_settings()
            return True

    async def delete(self, setting_id: str) -> bool:
        """Remove an override; the category falls back to the default lead time."""
        with span("category_reminder_service.delete"):
            user_id = self._session.user_id
            if not user_id:
                return False

            result = await self._remote.delete(
                Constants.CATEGORY_REMINDERS_TABLE,
                {"id": setting_id, "user_id": user_id},
            )
            if not result.ok:
                logger.error("Error deleting category reminder: %s", result.error.message if result.error else "")
                return False

            self._settings = [s for s in self._settings if s.id != setting_id]
            return True

    def reminder_days_for(self, category: str | None) -> int:
        """Lead time for a category: its override if one exists, else the default."""
        if not category:
            return self._default_days
        for setting in self._settings:
            if setting.category_name == category:
                return setting.reminder_days
        return self._default_days
