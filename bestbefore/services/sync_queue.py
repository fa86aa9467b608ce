"""Offline sync queue for product mutations.

Mutations are appended to a persisted, ordered log the moment they are
requested and replayed against the remote store later. Replay is strictly
FIFO and sequential; the first retryable failure halts it and leaves the
queue in place for the next attempt.
"""

import asyncio
import logging
from typing import Any

from pydantic import BaseModel, ValidationError

from bestbefore.core.config import Constants, settings
from bestbefore.core.errors import RemoteError, StorageError, classify_remote_error
from bestbefore.core.kv_store import KeyValueStore
from bestbefore.core.logging import log_with_entry_context, log_with_user_context, span
from bestbefore.core.remote_store import RemoteResult, RemoteStore
from bestbefore.domain.sync import (
    DeadLetterEntry,
    QueueAction,
    QueueEntry,
    ReplayResult,
    dead_letter_adapter,
    queue_adapter,
)
from bestbefore.domain.user import Session


logger = logging.getLogger(__name__)

# Locks are shared by every MutationQueue that points at the same storage key
_replay_locks: dict[str, asyncio.Lock] = {}
_storage_locks: dict[str, asyncio.Lock] = {}


def _lock_for(registry: dict[str, asyncio.Lock], key: str) -> asyncio.Lock:
    if key not in registry:
        registry[key] = asyncio.Lock()
    return registry[key]


def queue_key_for(user_id: str | None) -> str:
    """Storage key of a user's queue; the bare key is used while signed out."""
    if not user_id:
        return Constants.SYNC_QUEUE_KEY
    return f"{Constants.SYNC_QUEUE_KEY}:{user_id}"


class MutationQueue:
    """Durable FIFO log of product mutations with all-or-nothing replay."""

    def __init__(
        self,
        *,
        storage: KeyValueStore,
        remote: RemoteStore,
        session: Session,
        request_timeout: float = Constants.REMOTE_REQUEST_TIMEOUT_SECONDS,
        dead_letter_permanent: bool | None = None,
    ) -> None:
        self._storage = storage
        self._remote = remote
        self._session = session
        self._request_timeout = request_timeout
        self._dead_letter_permanent = (
            settings.dead_letter_permanent_errors if dead_letter_permanent is None else dead_letter_permanent
        )

    @property
    def storage_key(self) -> str:
        return queue_key_for(self._session.user_id)

    @property
    def dead_letter_key(self) -> str:
        return f"{self.storage_key}{Constants.DEAD_LETTER_SUFFIX}"

    async def _read(self, key: str) -> list[QueueEntry]:
        """Read a persisted queue, raising StorageError or ValidationError on failure."""
        raw = await self._storage.get(key)
        if not raw:
            return []
        return queue_adapter.validate_json(raw)

    async def _load(self, key: str) -> list[QueueEntry]:
        """Read a persisted queue, treating unreadable storage as empty."""
        try:
            return await self._read(key)
        except StorageError as e:
            logger.error("Error reading sync queue", extra={"key": key, "error": str(e)})
        except ValidationError as e:
            logger.error("Sync queue is corrupted, ignoring stored entries", extra={"key": key, "error": str(e)})
        return []

    async def _save(self, key: str, entries: list[QueueEntry]) -> bool:
        try:
            await self._storage.set(key, queue_adapter.dump_json(entries).decode())
        except StorageError as e:
            logger.error("Error saving sync queue", extra={"key": key, "error": str(e)})
            return False
        return True

    async def enqueue(self, action: QueueAction | str, payload: dict[str, Any] | BaseModel) -> QueueEntry:
        """Append a mutation to the persisted queue.

        Storage failures are logged, not raised; the returned entry is then
        only held in memory.

        Args:
            action: ADD, EDIT or DELETE
            payload: Creation record for ADD, {"id", "updates"} for EDIT, {"id"} for DELETE

        Returns:
            The entry that was appended

        Raises:
            ValueError: If an EDIT or DELETE payload has no id
        """
        action = QueueAction(action)
        if isinstance(payload, BaseModel):
            payload = payload.model_dump(mode="json", exclude_unset=True)
        if action in (QueueAction.EDIT, QueueAction.DELETE) and payload.get("id") in (None, ""):
            msg = f"{action} payload requires an id"
            raise ValueError(msg)

        entry = QueueEntry(action=action, payload=payload)
        key = self.storage_key

        with span("sync_queue.enqueue"):
            async with _lock_for(_storage_locks, key):
                queue = await self._load(key)
                queue.append(entry)
                saved = await self._save(key, queue)

        log_with_user_context(
            logger,
            "info" if saved else "error",
            f"Enqueued {action} action" if saved else f"Failed to persist {action} action",
            user_id=self._session.user_id,
            entry_id=entry.id,
            queue_length=len(queue),
        )
        return entry

    async def pending(self) -> list[QueueEntry]:
        """Entries waiting to be replayed, oldest first."""
        return await self._load(self.storage_key)

    async def dead_letters(self) -> list[DeadLetterEntry]:
        """Entries that failed permanently and were set aside."""
        try:
            raw = await self._storage.get(self.dead_letter_key)
            return dead_letter_adapter.validate_json(raw) if raw else []
        except (StorageError, ValidationError) as e:
            logger.error("Error reading dead-letter list", extra={"key": self.dead_letter_key, "error": str(e)})
            return []

    async def discard_dead_letters(self) -> int:
        """Drop every dead-lettered entry, returning how many were dropped."""
        entries = await self.dead_letters()
        try:
            await self._storage.remove(self.dead_letter_key)
        except StorageError as e:
            logger.error("Error clearing dead-letter list", extra={"key": self.dead_letter_key, "error": str(e)})
            return 0
        return len(entries)

    async def replay(self) -> ReplayResult:
        """Replay queued mutations against the remote store in insertion order.

        No-op when nobody is signed in. Entries queued while signed out are
        first moved onto the signed-in user's queue. The queue is read once
        at the start; entries appended while replay runs are kept for the next call.

        Returns:
            ReplayResult describing what was applied and where replay stopped
        """
        with span("sync_queue.replay"):
            user_id = self._session.user_id
            if not user_id:
                logger.warning("replay: no user, skipping")
                return ReplayResult(skipped_reason="no_user")

            key = self.storage_key
            async with _lock_for(_replay_locks, key):
                await self._adopt_signed_out_entries(key, user_id=user_id)
                queue = await self._load(key)
                if not queue:
                    return ReplayResult()

                log_with_user_context(logger, "info", f"Syncing {len(queue)} queued actions", user_id=user_id)

                applied: list[str] = []
                dead: list[DeadLetterEntry] = []
                for entry in queue:
                    error = await self._apply(entry, user_id=user_id)
                    if error is None:
                        applied.append(entry.id)
                        continue

                    if self._dead_letter_permanent and not error.retryable:
                        log_with_entry_context(
                            logger,
                            "error",
                            "Queue entry failed permanently, moving to dead-letter list",
                            entry,
                            error=error.message,
                        )
                        dead.append(DeadLetterEntry(entry=entry, error=error))
                        continue

                    log_with_entry_context(
                        logger,
                        "error",
                        "Error syncing entry, leaving queue intact for retry",
                        entry,
                        error=error.message,
                    )
                    remaining = await self._set_aside(key, dead)
                    return ReplayResult(
                        processed=len(applied),
                        remaining=len(queue) if remaining is None else remaining,
                        dead_lettered=len(dead),
                        halted_on=entry.id,
                        error=error,
                    )

                remaining = await self._drop(key, {*applied, *(d.entry.id for d in dead)}, dead)
                if remaining == 0:
                    logger.info("Sync queue cleared")
                return ReplayResult(
                    processed=len(applied),
                    remaining=len(queue) if remaining is None else remaining,
                    dead_lettered=len(dead),
                )

    async def _adopt_signed_out_entries(self, key: str, *, user_id: str) -> None:
        """Move entries queued while signed out onto the signed-in user's queue."""
        orphan_key = queue_key_for(None)
        async with _lock_for(_storage_locks, orphan_key), _lock_for(_storage_locks, key):
            orphans = await self._load(orphan_key)
            if not orphans:
                return

            try:
                current = await self._read(key)
            except (StorageError, ValidationError) as e:
                logger.error(
                    "Error reading sync queue, not adopting signed-out entries",
                    extra={"key": key, "error": str(e)},
                )
                return

            known = {e.id for e in current}
            merged = sorted([*current, *(e for e in orphans if e.id not in known)], key=lambda e: e.timestamp)
            if not await self._save(key, merged):
                return
            try:
                await self._storage.remove(orphan_key)
            except StorageError as e:
                logger.error("Failed to clear signed-out sync queue", extra={"key": orphan_key, "error": str(e)})

        log_with_user_context(
            logger, "info", "Adopted actions queued while signed out", user_id=user_id, adopted=len(orphans)
        )

    async def _apply(self, entry: QueueEntry, *, user_id: str) -> RemoteError | None:
        """Send one entry to the remote store, bounded by the request timeout."""
        try:
            result = await asyncio.wait_for(self._dispatch(entry, user_id=user_id), timeout=self._request_timeout)
        except TimeoutError:
            return classify_remote_error(
                message=f"Remote request timed out after {self._request_timeout}s",
                exception_type="TimeoutError",
            )
        return result.error

    async def _dispatch(self, entry: QueueEntry, *, user_id: str) -> RemoteResult:
        payload = entry.payload
        if entry.action == QueueAction.ADD:
            return await self._remote.insert(entry.table, {**payload, "user_id": user_id})
        if entry.action == QueueAction.EDIT:
            return await self._remote.update(
                entry.table,
                {"id": payload["id"], "user_id": user_id},
                payload.get("updates") or {},
            )
        return await self._remote.delete(entry.table, {"id": payload["id"], "user_id": user_id})

    async def _set_aside(self, key: str, dead: list[DeadLetterEntry]) -> int | None:
        """After a halt, drop only the dead-lettered entries; everything else stays queued."""
        if not dead:
            return len(await self._load(key))
        return await self._drop(key, {d.entry.id for d in dead}, dead)

    async def _drop(self, key: str, entry_ids: set[str], dead: list[DeadLetterEntry]) -> int | None:
        """Remove entries by ID from the persisted queue, returning how many remain (None if unreadable).

        Entries appended since replay started are kept. Dead-lettered entries
        are only removed once the dead-letter list has been written.
        """
        async with _lock_for(_storage_locks, key):
            if dead and not await self._append_dead_letters(dead):
                entry_ids = entry_ids - {d.entry.id for d in dead}

            try:
                current = await self._read(key)
            except (StorageError, ValidationError) as e:
                logger.error("Error reloading sync queue, leaving it untouched", extra={"key": key, "error": str(e)})
                return None

            remaining = [e for e in current if e.id not in entry_ids]
            if remaining:
                await self._save(key, remaining)
                return len(remaining)

            try:
                await self._storage.remove(key)
            except StorageError as e:
                logger.error("Failed to clear sync queue", extra={"key": key, "error": str(e)})
            return 0

    async def _append_dead_letters(self, dead: list[DeadLetterEntry]) -> bool:
        existing = await self.dead_letters()
        combined = [*existing, *dead][-Constants.DEAD_LETTER_MAXLEN :]
        try:
            await self._storage.set(self.dead_letter_key, dead_letter_adapter.dump_json(combined).decode())
        except StorageError as e:
            logger.error("Error saving dead-letter list", extra={"key": self.dead_letter_key, "error": str(e)})
            return False
        return True
