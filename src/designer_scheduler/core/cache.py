"""Short-lived in-memory memoisation for assignment computations."""

import logging
import threading
import time
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

COMPATIBLE_USERS_PREFIX = "compatible_users:"
USER_SLOTS_PREFIX = "user_slots:"
BEST_USER_SELECTION_PREFIX = "best_user:"

MISSING = object()


class CacheService:
    """Key/value store whose entries expire after a fixed TTL.

    Values may be ``None``; ``get`` returns ``MISSING`` for absent or expired
    keys. Concurrent writers to the same key are last-write-wins.
    """

    def __init__(
        self,
        ttl_seconds: float = 300,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, tuple[float, Any]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Any:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return MISSING
            expires_at, value = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return MISSING
            return value

    def set(self, key: str, value: Any, ttl_seconds: float | None = None) -> None:
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        with self._lock:
            self._entries[key] = (self._clock() + ttl, value)

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def keys(self) -> list[str]:
        now = self._clock()
        with self._lock:
            return [k for k, (expires_at, _) in self._entries.items() if expires_at > now]

    def invalidate_by_prefix(self, prefix: str) -> int:
        with self._lock:
            doomed = [k for k in self._entries if k.startswith(prefix)]
            for key in doomed:
                del self._entries[key]
        if doomed:
            logger.debug("Invalidated %d cache entries with prefix %r", len(doomed), prefix)
        return len(doomed)

    def invalidate_all(self) -> None:
        with self._lock:
            self._entries.clear()
        logger.debug("Invalidated all cache entries")

    def get_or_compute(self, key: str, compute: Callable[[], Any]) -> Any:
        value = self.get(key)
        if value is MISSING:
            value = compute()
            self.set(key, value)
        return value


def invalidate_task_assignment_cache(cache: CacheService) -> None:
    """Drop everything derived from roles, tasks or vacations."""
    cache.invalidate_by_prefix(COMPATIBLE_USERS_PREFIX)
    cache.invalidate_by_prefix(USER_SLOTS_PREFIX)
    cache.invalidate_by_prefix(BEST_USER_SELECTION_PREFIX)


def invalidate_vacation_aware_cache(cache: CacheService) -> None:
    cache.invalidate_by_prefix(BEST_USER_SELECTION_PREFIX)
    cache.invalidate_by_prefix(USER_SLOTS_PREFIX)
