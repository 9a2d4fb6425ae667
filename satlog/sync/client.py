from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from time import monotonic
from typing import Any

import structlog

from satlog.sync.backup import LocalBackupStore
from satlog.sync.constants import SyncPolicy, build_sync_policy
from satlog.sync.data_types import (
    DataType,
    MAPPING_DATA_TYPES,
    default_value,
    supports_append,
    supports_local_backup,
)
from satlog.sync.errors import UnsupportedSliceOperationError
from satlog.sync.resilience import CircuitBreaker, retry_backoff_seconds
from satlog.sync.store import SliceStore

logger = structlog.get_logger("satlog.sync.client")

_NO_PENDING = object()


@dataclass(slots=True)
class SliceState:
    user_id: str | None
    data_type: DataType
    value: Any
    loading: bool
    last_error: str | None


@dataclass(slots=True)
class SliceContract:
    value: Any
    loading: bool
    error: str | None
    upsert_data: Callable[[Any], Awaitable[bool]]
    delete_data: Callable[[], Awaitable[bool]]
    refresh_data: Callable[[], Awaitable[Any]]
    append_questions: Callable[[list[Any]], Awaitable[bool]] | None = None


class SyncClient:
    """Authoritative in-memory copy of one user's slice, kept in step with the remote store.

    Writes are optimistic: the in-memory value changes before the network
    call starts. Only one write per instance is outstanding at a time; saves
    arriving meanwhile are coalesced into a single trailing write of the
    newest value. Every remote call is gated by the instance's breaker.
    """

    def __init__(
        self,
        data_type: DataType,
        *,
        store: SliceStore,
        backup: LocalBackupStore | None = None,
        user_id: str | None = None,
        policy: SyncPolicy | None = None,
        clock: Callable[[], float] = monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.data_type = data_type
        self._store = store
        self._backup = backup if supports_local_backup(data_type) else None
        self._policy = policy or build_sync_policy()
        self._clock = clock
        self._sleep = sleep

        self._user_id = user_id
        self._generation = 0
        self._value: Any = default_value(data_type)
        self._loading = user_id is not None
        self._error: str | None = None
        self._loading_in_flight = False
        self._saving_in_flight = False
        self._pending_value: Any = _NO_PENDING
        self._last_load_started_at: float | None = None
        self.breaker = self._new_breaker()

    def _new_breaker(self) -> CircuitBreaker:
        return CircuitBreaker(
            failure_threshold=self._policy.breaker_failure_threshold,
            cooldown_seconds=self._policy.breaker_cooldown_seconds,
            clock=self._clock,
            name=self.data_type.value,
        )

    @property
    def user_id(self) -> str | None:
        return self._user_id

    @property
    def value(self) -> Any:
        return self._value

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def error(self) -> str | None:
        return self._error

    @property
    def state(self) -> SliceState:
        return SliceState(
            user_id=self._user_id,
            data_type=self.data_type,
            value=self._value,
            loading=self._loading,
            last_error=self._error,
        )

    def bind_user(self, user_id: str | None) -> None:
        if user_id == self._user_id:
            return

        self._generation += 1
        self._user_id = user_id
        self._value = default_value(self.data_type)
        self._loading = user_id is not None
        self._error = None
        self._loading_in_flight = False
        self._saving_in_flight = False
        self._pending_value = _NO_PENDING
        self._last_load_started_at = None
        self.breaker = self._new_breaker()

    def _has_pending_write(self) -> bool:
        return self._saving_in_flight or self._pending_value is not _NO_PENDING

    def _coerce_remote(self, remote: object) -> Any:
        expected = dict if self.data_type in MAPPING_DATA_TYPES else list
        if isinstance(remote, expected):
            return remote
        if remote is not None:
            logger.warning(
                "sync_slice_unexpected_shape",
                data_type=self.data_type.value,
                received_type=type(remote).__name__,
            )
        return default_value(self.data_type)

    async def _merge_local_backup(self, user_id: str, remote: list[Any]) -> list[Any]:
        if self._backup is None:
            return remote

        backed_up = await self._backup.read_all(user_id, self.data_type)
        if not backed_up:
            return remote

        merged = list(remote)
        known_ids = {item.get("id") for item in merged if isinstance(item, dict)}
        restored = 0
        for item in backed_up:
            if not isinstance(item, dict) or item.get("id") in known_ids:
                continue
            merged.append(item)
            known_ids.add(item.get("id"))
            restored += 1
        if restored:
            logger.info(
                "sync_slice_backup_merged",
                data_type=self.data_type.value,
                restored_items=restored,
            )
        return merged

    async def load(self) -> Any:
        if self._user_id is None or self._loading_in_flight or self.breaker.is_open():
            self._loading = False
            return self._value

        now = self._clock()
        if (
            self._last_load_started_at is not None
            and now - self._last_load_started_at < self._policy.load_min_interval_seconds
        ):
            self._loading = False
            return self._value

        user_id = self._user_id
        generation = self._generation
        self._loading_in_flight = True
        self._last_load_started_at = now
        try:
            return await self._load_with_retries(user_id, generation)
        finally:
            if generation == self._generation:
                self._loading_in_flight = False
                self._loading = False

    async def _load_with_retries(self, user_id: str, generation: int) -> Any:
        retry_attempt = 0
        while True:
            try:
                remote = await self._store.fetch_slice(user_id, self.data_type)
                break
            except Exception as exc:
                if generation != self._generation:
                    return self._value

                if self.breaker.record_failure():
                    self._error = f"Too many failed requests for {self.data_type.value}. Temporarily disabled."
                    self._value = default_value(self.data_type)
                    return self._value

                retry_attempt += 1
                if retry_attempt > self._policy.load_max_retries:
                    logger.warning(
                        "sync_slice_load_failed",
                        data_type=self.data_type.value,
                        attempts=retry_attempt,
                        error_type=type(exc).__name__,
                    )
                    self._error = f"Failed to load {self.data_type.value}: {exc}"
                    self._value = default_value(self.data_type)
                    return self._value

                delay = retry_backoff_seconds(
                    retry_attempt=retry_attempt,
                    base_seconds=self._policy.backoff_base_seconds,
                    max_seconds=self._policy.backoff_max_seconds,
                )
                logger.info(
                    "sync_slice_load_retry_scheduled",
                    data_type=self.data_type.value,
                    retry_attempt=retry_attempt,
                    delay_seconds=delay,
                )
                await self._sleep(delay)
                if generation != self._generation or self.breaker.is_open():
                    return self._value

        if generation != self._generation:
            return self._value

        value = self._coerce_remote(remote)
        if self._backup is not None:
            value = await self._merge_local_backup(user_id, value)

        self.breaker.record_success()
        self._error = None
        if self._has_pending_write():
            logger.info("sync_slice_load_kept_local_value", data_type=self.data_type.value)
        else:
            self._value = value
        return self._value

    def _exceeds_size_limit(self, value: Any) -> bool:
        return isinstance(value, (list, dict)) and len(value) > self._policy.max_slice_items

    async def save(self, value: Any) -> bool:
        if self._user_id is None or self.breaker.is_open():
            return False

        if self._exceeds_size_limit(value):
            logger.warning(
                "sync_slice_save_rejected_oversized",
                data_type=self.data_type.value,
                items=len(value),
                max_items=self._policy.max_slice_items,
            )
            self._error = (
                f"Refusing to save {self.data_type.value}: {len(value)} items exceeds "
                f"the limit of {self._policy.max_slice_items}"
            )
            return False

        self._value = value
        self._error = None

        if self._saving_in_flight:
            self._pending_value = value
            logger.debug("sync_slice_save_coalesced", data_type=self.data_type.value)
            return True

        return await self._write_through(value, timeout=self._policy.save_timeout_seconds)

    async def append_incremental(self, items: list[Any]) -> bool:
        if not supports_append(self.data_type):
            raise UnsupportedSliceOperationError(
                f"append is only available for bulk-growth slices, not {self.data_type.value}"
            )
        if self._user_id is None or self.breaker.is_open():
            return False

        user_id = self._user_id
        current = self._value if isinstance(self._value, list) else []
        updated = [*current, *items]
        self._value = updated
        self._error = None

        if self._backup is not None:
            await self._backup.append_incremental(user_id, self.data_type, list(items))

        if self._saving_in_flight:
            self._pending_value = updated
            return True

        if self._exceeds_size_limit(updated):
            logger.warning(
                "sync_slice_append_kept_local_only",
                data_type=self.data_type.value,
                items=len(updated),
                max_items=self._policy.max_slice_items,
            )
            return True

        if await self._write_through(updated, timeout=self._policy.append_timeout_seconds):
            if self._backup is not None:
                await self._backup.clear_incremental(user_id, self.data_type)
        # The optimistic update and the incremental backup already hold the items.
        return True

    async def _write_through(self, value: Any, *, timeout: float) -> bool:
        user_id = self._user_id
        generation = self._generation
        self._saving_in_flight = True
        try:
            ok = await self._attempt_write(user_id, value, timeout=timeout, generation=generation)
            while (
                ok
                and self._pending_value is not _NO_PENDING
                and generation == self._generation
                and not self.breaker.is_open()
            ):
                trailing = self._pending_value
                self._pending_value = _NO_PENDING
                logger.debug("sync_slice_trailing_write_started", data_type=self.data_type.value)
                if not await self._attempt_write(user_id, trailing, timeout=timeout, generation=generation):
                    break
            return ok
        finally:
            if generation == self._generation:
                self._saving_in_flight = False
                self._pending_value = _NO_PENDING

    async def _attempt_write(self, user_id: str, value: Any, *, timeout: float, generation: int) -> bool:
        try:
            await asyncio.wait_for(
                self._store.upsert_slice(user_id, self.data_type, value),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            await self._record_write_failure(user_id, "timed out", generation=generation)
            return False
        except Exception as exc:
            await self._record_write_failure(user_id, str(exc) or type(exc).__name__, generation=generation)
            return False

        if generation != self._generation:
            return True
        self.breaker.record_success()
        if self._backup is not None:
            await self._backup.clear_failed_save(user_id, self.data_type)
        return True

    async def _record_write_failure(self, user_id: str, reason: str, *, generation: int) -> None:
        logger.warning(
            "sync_slice_save_failed",
            data_type=self.data_type.value,
            reason=reason,
        )
        if generation != self._generation:
            return

        self.breaker.record_failure()
        self._error = f"Failed to save {self.data_type.value}: {reason}"
        if self._backup is not None and isinstance(self._value, list):
            await self._backup.write_failed_save(user_id, self.data_type, self._value)

    async def delete(self) -> bool:
        if self._user_id is None or self._saving_in_flight or self.breaker.is_open():
            return False

        user_id = self._user_id
        generation = self._generation
        self._saving_in_flight = True
        try:
            await self._store.delete_slice(user_id, self.data_type)
        except Exception as exc:
            logger.warning(
                "sync_slice_delete_failed",
                data_type=self.data_type.value,
                error_type=type(exc).__name__,
            )
            if generation == self._generation:
                self.breaker.record_failure()
                self._error = f"Failed to delete {self.data_type.value}: {exc}"
            return False
        finally:
            if generation == self._generation:
                self._saving_in_flight = False

        if generation != self._generation:
            return True
        self.breaker.record_success()
        self._value = default_value(self.data_type)
        self._error = None
        if self._backup is not None:
            await self._backup.clear_all(user_id, self.data_type)
        return True

    async def refresh(self) -> Any:
        self._loading = True
        return await self.load()

    def contract(self) -> SliceContract:
        return SliceContract(
            value=self._value,
            loading=self._loading,
            error=self._error,
            upsert_data=self.save,
            delete_data=self.delete,
            refresh_data=self.refresh,
            append_questions=self.append_incremental if supports_append(self.data_type) else None,
        )
