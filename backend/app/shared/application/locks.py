import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Iterable


def normalize_key(name: str) -> str:
    return name.strip().lower()


class KeyedLocks:
    """In-process locks keyed by normalized entity name.

    Keys are acquired in sorted order so two commits touching overlapping
    catalog items or suppliers cannot deadlock each other. A key's lock is
    dropped once no holder or waiter references it.
    """

    def __init__(self) -> None:
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    def _checkout(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        self._users[key] = self._users.get(key, 0) + 1
        return lock

    def _checkin(self, key: str) -> None:
        self._users[key] -= 1
        if not self._users[key]:
            del self._users[key]
            del self._locks[key]

    @asynccontextmanager
    async def hold(self, keys: Iterable[str]) -> AsyncIterator[None]:
        ordered = sorted({normalize_key(key) for key in keys if key and key.strip()})
        locks = [self._checkout(key) for key in ordered]
        acquired = []
        try:
            for lock in locks:
                await lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()
            for key in ordered:
                self._checkin(key)
