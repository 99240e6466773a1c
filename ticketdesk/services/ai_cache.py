"""
Response cache for AI operations

The AI service only depends on the `ResponseCache` interface, so the
in-memory implementation can be replaced by a shared cache (Redis, etc.)
without touching callers.
"""
import copy
import json
import threading
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import Any, Callable, Dict, Optional, Tuple

from ticketdesk.utils.logger import get_logger

logger = get_logger(__name__)


def make_cache_key(operation: str, payload: Any) -> str:
    """
    Build a cache key from the operation name and its serialized input

    Args:
        operation: AI operation name (classify, sentiment, ...)
        payload: JSON-serializable operation input

    Returns:
        Key of the form "{operation}:{canonical json}"
    """
    serialized = json.dumps(payload, sort_keys=True, default=str, ensure_ascii=False)
    return f"{operation}:{serialized}"


class ResponseCache(ABC):
    """Key/value cache with per-entry expiry."""

    @abstractmethod
    def get(self, key: str) -> Optional[Dict[str, Any]]:
        """Return a live entry, or None on miss or expiry."""

    @abstractmethod
    def set(self, key: str, value: Dict[str, Any], ttl_seconds: float) -> None:
        """Store a value that expires after ttl_seconds."""

    @abstractmethod
    def delete(self, key: str) -> None:
        pass

    @abstractmethod
    def clear(self) -> None:
        pass

    @abstractmethod
    def __len__(self) -> int:
        pass


class InMemoryResponseCache(ResponseCache):
    """
    Bounded, thread-safe in-memory cache

    Entries are kept in insertion order. When the cache grows past
    `max_entries`, expired entries are swept oldest first; if it is still
    over capacity, the oldest live entries are evicted.
    """

    def __init__(
        self,
        max_entries: int = 100,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.max_entries = max_entries
        self._clock = clock
        self._entries: "OrderedDict[str, Tuple[float, Dict[str, Any]]]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if expires_at <= self._clock():
                del self._entries[key]
                return None
            return copy.deepcopy(value)

    def set(self, key: str, value: Dict[str, Any], ttl_seconds: float) -> None:
        with self._lock:
            self._entries.pop(key, None)
            self._entries[key] = (self._clock() + ttl_seconds, copy.deepcopy(value))
            if len(self._entries) > self.max_entries:
                self._shrink()

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _shrink(self) -> None:
        # Caller holds the lock
        now = self._clock()
        expired = [key for key, (expires_at, _) in self._entries.items() if expires_at <= now]
        for key in expired:
            del self._entries[key]

        evicted = 0
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)
            evicted += 1

        logger.debug(
            "AI cache shrunk: %d expired removed, %d evicted, %d remaining",
            len(expired), evicted, len(self._entries)
        )
