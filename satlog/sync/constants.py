from __future__ import annotations

from dataclasses import dataclass

from satlog.core.config import Settings, get_settings


@dataclass(frozen=True, slots=True)
class SyncPolicy:
    load_min_interval_seconds: float
    load_max_retries: int
    backoff_base_seconds: float
    backoff_max_seconds: float
    breaker_failure_threshold: int
    breaker_cooldown_seconds: float
    save_timeout_seconds: float
    append_timeout_seconds: float
    max_slice_items: int


def build_sync_policy(settings: Settings | None = None) -> SyncPolicy:
    settings = settings or get_settings()
    return SyncPolicy(
        load_min_interval_seconds=max(0.0, float(settings.sync_load_min_interval_seconds)),
        load_max_retries=max(0, int(settings.sync_load_max_retries)),
        backoff_base_seconds=max(0.0, float(settings.sync_backoff_base_seconds)),
        backoff_max_seconds=max(0.0, float(settings.sync_backoff_max_seconds)),
        breaker_failure_threshold=max(1, int(settings.sync_breaker_failure_threshold)),
        breaker_cooldown_seconds=max(0.0, float(settings.sync_breaker_cooldown_seconds)),
        save_timeout_seconds=max(0.1, float(settings.sync_save_timeout_seconds)),
        append_timeout_seconds=max(0.1, float(settings.sync_append_timeout_seconds)),
        max_slice_items=max(1, int(settings.sync_max_slice_items)),
    )


BACKUP_KEY_PREFIX = "satlog"
BACKUP_KEY_SUFFIX_FAILED_SAVE = "backup"
BACKUP_KEY_SUFFIX_INCREMENTAL = "incremental"

EVENT_SYNC_BREAKER_OPENED = "sync_breaker_opened"
EVENT_SYNC_BREAKER_CLOSED = "sync_breaker_closed"

__all__ = [
    "BACKUP_KEY_PREFIX",
    "BACKUP_KEY_SUFFIX_FAILED_SAVE",
    "BACKUP_KEY_SUFFIX_INCREMENTAL",
    "EVENT_SYNC_BREAKER_CLOSED",
    "EVENT_SYNC_BREAKER_OPENED",
    "SyncPolicy",
    "build_sync_policy",
]
