from __future__ import annotations

import json

import structlog
from redis.asyncio import Redis
from redis.exceptions import RedisError

from satlog.core.config import get_settings
from satlog.sync.constants import (
    BACKUP_KEY_PREFIX,
    BACKUP_KEY_SUFFIX_FAILED_SAVE,
    BACKUP_KEY_SUFFIX_INCREMENTAL,
)
from satlog.sync.data_types import DataType

logger = structlog.get_logger("satlog.sync.backup")


def backup_key(user_id: str, data_type: DataType, suffix: str) -> str:
    return f"{BACKUP_KEY_PREFIX}:{user_id}:{data_type.value}:{suffix}"


class LocalBackupStore:
    """Best-effort string key/value safety net, namespaced per user and slice.

    Nothing here is the source of truth: concurrent writers race with last
    write wins, and every failure is logged and swallowed so that a broken
    cache never takes a sync operation down with it.
    """

    def __init__(self, redis_client: Redis) -> None:
        self._redis = redis_client

    @classmethod
    def from_settings(cls) -> LocalBackupStore:
        return cls(Redis.from_url(get_settings().backup_redis_url, decode_responses=True))

    async def _read_list(self, key: str) -> list[object]:
        try:
            raw = await self._redis.get(key)
        except RedisError:
            logger.warning("local_backup_read_failed", key=key)
            return []
        if not raw:
            return []
        try:
            parsed = json.loads(raw)
        except ValueError:
            logger.warning("local_backup_corrupt", key=key)
            return []
        return parsed if isinstance(parsed, list) else []

    async def _write_list(self, key: str, items: list[object]) -> bool:
        try:
            await self._redis.set(key, json.dumps(items, default=str))
        except (RedisError, TypeError, ValueError):
            logger.warning("local_backup_write_failed", key=key, items=len(items))
            return False
        return True

    async def read_failed_save(self, user_id: str, data_type: DataType) -> list[object]:
        return await self._read_list(backup_key(user_id, data_type, BACKUP_KEY_SUFFIX_FAILED_SAVE))

    async def write_failed_save(self, user_id: str, data_type: DataType, items: list[object]) -> bool:
        return await self._write_list(
            backup_key(user_id, data_type, BACKUP_KEY_SUFFIX_FAILED_SAVE),
            list(items),
        )

    async def read_incremental(self, user_id: str, data_type: DataType) -> list[object]:
        return await self._read_list(backup_key(user_id, data_type, BACKUP_KEY_SUFFIX_INCREMENTAL))

    async def append_incremental(self, user_id: str, data_type: DataType, items: list[object]) -> bool:
        key = backup_key(user_id, data_type, BACKUP_KEY_SUFFIX_INCREMENTAL)
        existing = await self._read_list(key)
        return await self._write_list(key, [*existing, *items])

    async def read_all(self, user_id: str, data_type: DataType) -> list[object]:
        failed_save = await self.read_failed_save(user_id, data_type)
        incremental = await self.read_incremental(user_id, data_type)
        return [*failed_save, *incremental]

    async def clear_failed_save(self, user_id: str, data_type: DataType) -> None:
        await self._delete(backup_key(user_id, data_type, BACKUP_KEY_SUFFIX_FAILED_SAVE))

    async def clear_incremental(self, user_id: str, data_type: DataType) -> None:
        await self._delete(backup_key(user_id, data_type, BACKUP_KEY_SUFFIX_INCREMENTAL))

    async def clear_all(self, user_id: str, data_type: DataType) -> None:
        await self._delete(
            backup_key(user_id, data_type, BACKUP_KEY_SUFFIX_FAILED_SAVE),
            backup_key(user_id, data_type, BACKUP_KEY_SUFFIX_INCREMENTAL),
        )

    async def _delete(self, *keys: str) -> None:
        try:
            await self._redis.delete(*keys)
        except RedisError:
            logger.warning("local_backup_delete_failed", keys=list(keys))

    async def aclose(self) -> None:
        await self._redis.aclose()
