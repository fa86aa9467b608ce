"""Sync queue domain models and enums."""

import secrets
import string
import time
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field, TypeAdapter

from bestbefore.core.config import Constants
from bestbefore.core.errors import RemoteError


_BASE36_ALPHABET = string.digits + string.ascii_lowercase
_ENTRY_ID_SUFFIX_LENGTH = 9


class QueueAction(StrEnum):
    """Mutation recorded in the sync queue."""

    ADD = "ADD"
    EDIT = "EDIT"
    DELETE = "DELETE"


def new_entry_id() -> str:
    """Return a time-based ID with a random base36 suffix, e.g. '1736467200000-k3j9x0a2b'."""
    suffix = "".join(secrets.choice(_BASE36_ALPHABET) for _ in range(_ENTRY_ID_SUFFIX_LENGTH))
    return f"{int(time.time() * 1000)}-{suffix}"


def utc_timestamp() -> str:
    """Current time as ISO-8601 with millisecond precision and a Z suffix."""
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class QueueEntry(BaseModel):
    """One pending mutation against the remote store.

    Payload shape depends on the action:
        ADD    -> full product creation record
        EDIT   -> {"id": ..., "updates": {...}}
        DELETE -> {"id": ...}
    """

    id: str = Field(default_factory=new_entry_id, description="Unique entry ID")
    action: QueueAction = Field(..., description="Mutation type")
    table: str = Field(default=Constants.PRODUCTS_TABLE, description="Remote table the mutation targets")
    payload: dict[str, Any] = Field(default_factory=dict, description="Action-specific data")
    timestamp: str = Field(default_factory=utc_timestamp, description="When the entry was enqueued, ISO-8601 UTC")


class DeadLetterEntry(BaseModel):
    """Queue entry that failed permanently and was set aside."""

    entry: QueueEntry
    error: RemoteError
    failed_at: str = Field(default_factory=utc_timestamp)


class ReplayResult(BaseModel):
    """Outcome of one replay of the sync queue."""

    processed: int = Field(default=0, description="Entries applied to the remote store")
    remaining: int = Field(default=0, description="Entries still queued after replay")
    dead_lettered: int = Field(default=0, description="Entries moved to the dead-letter list")
    halted_on: str | None = Field(default=None, description="ID of the entry that stopped replay")
    error: RemoteError | None = Field(default=None, description="Error that stopped replay")
    skipped_reason: str | None = Field(default=None, description="Why replay did not run")

    @property
    def completed(self) -> bool:
        return self.halted_on is None and self.skipped_reason is None


queue_adapter = TypeAdapter(list[QueueEntry])
dead_letter_adapter = TypeAdapter(list[DeadLetterEntry])
