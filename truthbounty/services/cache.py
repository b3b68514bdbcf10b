import time
from dataclasses import dataclass
from typing import Any, Callable, Optional


@dataclass
class CacheEntry:
    value: Any
    stored_at: float
    ttl: float


class MemoryCache:
    """In-process TTL cache keyed by platform and scope.

    Expiry is lazy: ``get`` drops stale entries. ``cleanup`` exists for memory
    hygiene only.
    """

    def __init__(self, default_ttl: float = 60.0, clock: Callable[[], float] = time.monotonic):
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}

    def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.stored_at > entry.ttl:
            del self._entries[key]
            return None
        return entry.value

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        self._entries[key] = CacheEntry(value=value, stored_at=self._clock(), ttl=ttl or self.default_ttl)

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def cleanup(self) -> int:
        now = self._clock()
        stale = [k for k, e in self._entries.items() if now - e.stored_at > e.ttl]
        for key in stale:
            del self._entries[key]
        return len(stale)

    def __len__(self) -> int:
        return len(self._entries)
