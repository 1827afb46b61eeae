"""
Medication Cache
In-memory, per-user cache of medication lists shared by every view
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from itertools import count
from typing import AsyncIterator, Dict, Iterable, Optional, Tuple

from schemas import MedicationWithLogs


logger = logging.getLogger(__name__)

CacheKey = Tuple[str, str]
MedicationList = Tuple[MedicationWithLogs, ...]


def medications_key(user_id: str) -> CacheKey:
    """Cache key for a user's medication list"""
    return ("medications", user_id)


@dataclass(frozen=True)
class CacheEntry:
    data: MedicationList
    version: int


class MedicationCache:
    """
    Versioned cache of immutable medication lists.

    Entries are only ever replaced wholesale, so lock-free readers always see
    a consistent list. Versions come from one counter shared by all keys and
    never repeat, which makes compare_and_set safe across invalidations.
    Writers that need snapshot/patch/restore atomicity go through hold(key).
    """

    def __init__(self):
        self._entries: Dict[CacheKey, CacheEntry] = {}
        self._locks: Dict[CacheKey, asyncio.Lock] = {}
        self._holders: Dict[CacheKey, int] = {}
        self._versions = count(1)

    def get(self, key: CacheKey) -> Optional[MedicationList]:
        entry = self._entries.get(key)
        return entry.data if entry else None

    def get_entry(self, key: CacheKey) -> Optional[CacheEntry]:
        return self._entries.get(key)

    def version(self, key: CacheKey) -> Optional[int]:
        entry = self._entries.get(key)
        return entry.version if entry else None

    def set(self, key: CacheKey, data: Iterable[MedicationWithLogs]) -> int:
        """Publish a new list and return its version"""
        entry = CacheEntry(data=tuple(data), version=next(self._versions))
        self._entries[key] = entry
        return entry.version

    def compare_and_set(
        self,
        key: CacheKey,
        expected_version: int,
        data: Iterable[MedicationWithLogs]
    ) -> bool:
        """Replace the entry only if nobody published since expected_version"""
        if self.version(key) != expected_version:
            return False
        self.set(key, data)
        return True

    def invalidate(self, key: CacheKey) -> None:
        if self._entries.pop(key, None) is not None:
            logger.debug(f"Invalidated cache entry {key}")

    def lock(self, key: CacheKey) -> asyncio.Lock:
        """Mutation lock for a key; snapshot, patch and restore happen under it"""
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    @asynccontextmanager
    async def hold(self, key: CacheKey) -> AsyncIterator[None]:
        """
        Hold the key's mutation lock.

        The lock is forgotten once nobody holds or awaits it, so idle users
        leave nothing behind.
        """
        lock = self.lock(key)
        self._holders[key] = self._holders.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[key] -= 1
            if not self._holders[key]:
                del self._holders[key]
                if self._locks.get(key) is lock and not lock.locked():
                    del self._locks[key]

    def clear(self) -> None:
        self._entries.clear()
