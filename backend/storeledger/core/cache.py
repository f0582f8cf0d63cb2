"""Read-through cache for derived account views.

The cache lives in process memory, as do the account locks. Writes made by
another worker process do not invalidate it, so enable it only when the API
runs as a single worker (``ACCOUNT_CACHE_ENABLED``).
"""

from collections.abc import Callable
from datetime import datetime
from threading import Lock
from typing import Any, Generic, TypeVar

from storeledger.core.config import settings
from storeledger.models.shared import utc_now

T = TypeVar("T")

AccountKey = tuple[int, int]


class AccountCache(Generic[T]):
    """Cache keyed by (store_id, client_id), invalidated on every write to the key.

    Each key carries a generation counter bumped by ``invalidate``. A value
    computed while an invalidation happened is returned to its caller but not
    stored, so a slow reader can never repopulate the cache with a view older
    than the last committed write.

    Values that depend on the clock can also carry an expiry: ``expires_at``
    maps a computed value to the moment it stops being valid (or ``None``).
    """

    def __init__(self, enabled: bool = True):
        self.enabled = enabled
        self._values: dict[AccountKey, tuple[T, datetime | None]] = {}
        self._generations: dict[AccountKey, int] = {}
        self._lock = Lock()

    def get_or_compute(
        self,
        key: AccountKey,
        compute: Callable[[], T],
        expires_at: Callable[[T], datetime | None] | None = None,
    ) -> T:
        if not self.enabled:
            return compute()

        with self._lock:
            entry = self._values.get(key)
            if entry is not None:
                value, expiry = entry
                if expiry is None or utc_now() < expiry:
                    return value
                del self._values[key]
            generation = self._generations.get(key, 0)

        value = compute()
        expiry = expires_at(value) if expires_at is not None else None

        with self._lock:
            if self._generations.get(key, 0) == generation:
                self._values[key] = (value, expiry)
        return value

    def invalidate(self, store_id: int, client_id: int) -> None:
        key = (store_id, client_id)
        with self._lock:
            self._values.pop(key, None)
            self._generations[key] = self._generations.get(key, 0) + 1

    def clear(self) -> None:
        with self._lock:
            self._values.clear()
            self._generations.clear()

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._values


account_cache: AccountCache[Any] = AccountCache(enabled=settings.ACCOUNT_CACHE_ENABLED)
