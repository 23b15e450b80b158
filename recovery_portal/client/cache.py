"""
Client-side query cache keyed by tuples that mirror the URL segments,
e.g. ("/api/messages",) or ("/api/cases", case_id, "messages")
"""
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

QueryKey = Tuple[Any, ...]

DEFAULT_STALE_TIME = 5 * 60


@dataclass
class CacheEntry:
    value: Any
    stored_at: float


class QueryCache:
    """Holds fetched results until they go stale or are invalidated"""

    def __init__(self, stale_time: float = DEFAULT_STALE_TIME, clock: Callable[[], float] = time.monotonic):
        self.stale_time = stale_time
        self._clock = clock
        self._entries: Dict[QueryKey, CacheEntry] = {}

    def __contains__(self, key: QueryKey) -> bool:
        return self.get(key) is not None

    def keys(self) -> List[QueryKey]:
        return list(self._entries)

    def get(self, key: QueryKey) -> Optional[Any]:
        """Fresh value for key, or None when missing or stale"""
        entry = self._entries.get(tuple(key))
        if entry is None:
            return None
        if self._clock() - entry.stored_at > self.stale_time:
            return None
        return entry.value

    def set(self, key: QueryKey, value: Any) -> None:
        self._entries[tuple(key)] = CacheEntry(value=value, stored_at=self._clock())

    def invalidate(self, prefix: QueryKey) -> List[QueryKey]:
        """Drop every entry whose key starts with prefix; returns the dropped keys"""
        prefix = tuple(prefix)
        dropped = [key for key in self._entries if key[:len(prefix)] == prefix]
        for key in dropped:
            del self._entries[key]
        return dropped

    def clear(self) -> None:
        self._entries.clear()
