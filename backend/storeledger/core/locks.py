"""Per-account locking for check-then-act ledger writes.

All rows for one (store_id, client_id) pair form one logical account. Writes
that read a balance and then act on it must hold the account lock for the whole
sequence so two requests cannot both pass the same balance check.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from threading import Lock, RLock

from sqlalchemy.orm import Query

AccountKey = tuple[int, int]


class AccountLockRegistry:
    """In-process registry of one reentrant mutex per (store_id, client_id) key."""

    def __init__(self) -> None:
        self._locks: dict[AccountKey, RLock] = {}
        self._registry_lock = Lock()

    def _get(self, key: AccountKey) -> RLock:
        with self._registry_lock:
            lock = self._locks.get(key)
            if lock is None:
                lock = RLock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, store_id: int, client_id: int) -> Iterator[None]:
        """Block until the account lock is acquired; release on exit."""
        lock = self._get((store_id, client_id))
        with lock:
            yield

    def reset(self) -> None:
        """Drop all tracked locks (useful for testing)."""
        with self._registry_lock:
            self._locks.clear()


def lock_for_update(query: Query) -> Query:  # type: ignore[type-arg]
    """Apply row-level locking to a query.

    SQLite ignores SELECT ... FOR UPDATE; PostgreSQL honors it, which extends
    the account lock across processes.
    """
    return query.with_for_update()


account_locks = AccountLockRegistry()
