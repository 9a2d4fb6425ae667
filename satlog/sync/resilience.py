from __future__ import annotations

from collections.abc import Callable
from time import monotonic

import structlog

from satlog.sync.constants import EVENT_SYNC_BREAKER_CLOSED, EVENT_SYNC_BREAKER_OPENED

logger = structlog.get_logger("satlog.sync.resilience")


def retry_backoff_seconds(
    *,
    retry_attempt: int,
    base_seconds: float,
    max_seconds: float,
) -> float:
    safe_retry_attempt = max(1, int(retry_attempt))
    return min(max_seconds, base_seconds * 2 ** (safe_retry_attempt - 1))


class CircuitBreaker:
    """Consecutive-failure breaker shared by every call of one slice client.

    Reaching ``failure_threshold`` failures opens the breaker for
    ``cooldown_seconds``; while open, callers short-circuit without touching
    the remote store. Any success closes it and resets the counter.
    """

    def __init__(
        self,
        *,
        failure_threshold: int,
        cooldown_seconds: float,
        clock: Callable[[], float] = monotonic,
        name: str = "",
    ) -> None:
        self.failure_threshold = failure_threshold
        self.cooldown_seconds = cooldown_seconds
        self.consecutive_failures = 0
        self.open_until = 0.0
        self._clock = clock
        self._name = name

    def is_open(self) -> bool:
        return self._clock() < self.open_until

    def record_failure(self) -> bool:
        self.consecutive_failures += 1
        if self.consecutive_failures < self.failure_threshold:
            return False

        self.open_until = self._clock() + self.cooldown_seconds
        logger.warning(
            EVENT_SYNC_BREAKER_OPENED,
            slice=self._name,
            consecutive_failures=self.consecutive_failures,
            cooldown_seconds=self.cooldown_seconds,
        )
        return True

    def record_success(self) -> None:
        if self.consecutive_failures or self.open_until:
            logger.info(
                EVENT_SYNC_BREAKER_CLOSED,
                slice=self._name,
                consecutive_failures=self.consecutive_failures,
            )
        self.consecutive_failures = 0
        self.open_until = 0.0
