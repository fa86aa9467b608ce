"""Durable key-value storage backing the sync queue and reminder ledger."""

import asyncio
import logging
from collections.abc import Callable, Coroutine
from functools import wraps
from pathlib import Path
from typing import Any, Protocol, TypeVar

import aiosqlite
from redis.asyncio import Redis
from redis.asyncio.connection import ConnectionPool
from redis.exceptions import RedisError

from bestbefore.core.config import Constants, Settings
from bestbefore.core.errors import StorageError


logger = logging.getLogger(__name__)

T = TypeVar("T")


class KeyValueStore(Protocol):
    """Async string key-value store that survives process restarts."""

    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str) -> None: ...

    async def remove(self, key: str) -> None: ...

    async def close(self) -> None: ...


def with_retry(
    max_retries: int = Constants.REDIS_MAX_RETRIES, base_delay: float = 0.1
) -> Callable[[Callable[..., Coroutine[Any, Any, T]]], Callable[..., Coroutine[Any, Any, T]]]:
    """Decorator to retry async Redis calls with exponential backoff.

    Raises StorageError once every attempt has failed.

    Args:
        max_retries: Maximum number of attempts (default: 3)
        base_delay: Base delay in seconds for exponential backoff (default: 0.1)
    """

    def decorator(func: Callable[..., Coroutine[Any, Any, T]]) -> Callable[..., Coroutine[Any, Any, T]]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:  # noqa: ANN401
            last_exception: RedisError | None = None
            for attempt in range(max_retries):
                try:
                    return await func(*args, **kwargs)
                except RedisError as e:
                    last_exception = e
                    if attempt < max_retries - 1:
                        delay = base_delay * (2**attempt)
                        logger.warning(
                            "Redis operation failed (attempt %d/%d): %s. Retrying in %.2fs",
                            attempt + 1,
                            max_retries,
                            e,
                            delay,
                        )
                        await asyncio.sleep(delay)
                    else:
                        logger.error("Redis operation failed after %d attempts: %s", max_retries, e)
            msg = f"Redis operation failed after {max_retries} attempts: {last_exception}"
            raise StorageError(msg) from last_exception

        return wrapper

    return decorator


class SQLiteKeyValueStore:
    """Key-value store kept in a single SQLite table."""

    def __init__(self, db_path: str | Path) -> None:
        self._db_path = Path(db_path)
        self._conn: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()

    async def _get_conn(self) -> aiosqlite.Connection:
        async with self._lock:
            if self._conn is None:
                self._db_path.parent.mkdir(parents=True, exist_ok=True)
                conn = await aiosqlite.connect(str(self._db_path))
                await conn.execute("PRAGMA journal_mode = WAL")
                await conn.execute(
                    """CREATE TABLE IF NOT EXISTS key_value (
                           key TEXT PRIMARY KEY,
                           value TEXT NOT NULL,
                           updated_at TEXT NOT NULL DEFAULT (datetime('now'))
                       )"""
                )
                await conn.commit()
                self._conn = conn
                logger.info("Opened SQLite key-value store", extra={"db_path": str(self._db_path)})
            return self._conn

    async def get(self, key: str) -> str | None:
        try:
            conn = await self._get_conn()
            cursor = await conn.execute("SELECT value FROM key_value WHERE key = ?", (key,))
            row = await cursor.fetchone()
        except (aiosqlite.Error, OSError) as e:
            msg = f"Failed to read key {key}: {e}"
            raise StorageError(msg) from e
        return row[0] if row else None

    async def set(self, key: str, value: str) -> None:
        try:
            conn = await self._get_conn()
            await conn.execute(
                """INSERT INTO key_value (key, value, updated_at) VALUES (?, ?, datetime('now'))
                   ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at""",
                (key, value),
            )
            await conn.commit()
        except (aiosqlite.Error, OSError) as e:
            msg = f"Failed to write key {key}: {e}"
            raise StorageError(msg) from e

    async def remove(self, key: str) -> None:
        try:
            conn = await self._get_conn()
            await conn.execute("DELETE FROM key_value WHERE key = ?", (key,))
            await conn.commit()
        except (aiosqlite.Error, OSError) as e:
            msg = f"Failed to remove key {key}: {e}"
            raise StorageError(msg) from e

    async def close(self) -> None:
        if self._conn is not None:
            await self._conn.close()
            self._conn = None
            logger.info("Closed SQLite key-value store", extra={"db_path": str(self._db_path)})


class RedisKeyValueStore:
    """Key-value store on Redis with persistence (no TTL on keys)."""

    def __init__(self, redis_url: str) -> None:
        self._pool = ConnectionPool.from_url(
            redis_url,
            decode_responses=True,
            max_connections=Constants.REDIS_MAX_CONNECTIONS,
        )
        self._client = Redis(connection_pool=self._pool)
        logger.info("Redis key-value store initialized with URL: %s", redis_url)

    @with_retry()
    async def get(self, key: str) -> str | None:
        value = await self._client.get(key)
        if isinstance(value, bytes):
            return value.decode()
        return value

    @with_retry()
    async def set(self, key: str, value: str) -> None:
        await self._client.set(key, value)

    @with_retry()
    async def remove(self, key: str) -> None:
        await self._client.delete(key)

    async def ping(self) -> bool:
        try:
            return bool(await self._client.ping())  # type: ignore[misc]
        except RedisError as e:
            logger.warning("Redis PING failed: %s", e)
            return False

    async def close(self) -> None:
        await self._client.aclose()
        logger.info("Redis key-value store closed")


def create_kv_store(settings: Settings) -> KeyValueStore:
    """Build the configured backend: Redis when REDIS_URL is set, SQLite otherwise."""
    if settings.redis_url:
        return RedisKeyValueStore(settings.redis_url)
    return SQLiteKeyValueStore(settings.sqlite_db_path)
