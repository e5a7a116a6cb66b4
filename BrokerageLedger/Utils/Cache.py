import threading
import time
from typing import Any, Optional, Protocol


class CacheBackend(Protocol):
    def get(self, key: str) -> Optional[Any]: ...

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None: ...

    def ttl(self, key: str) -> Optional[float]: ...


class MemoryCache:
    """
    Thread-safe in-process cache with per-entry time to live (seconds).
    Handed to the services that need it; nothing reaches for it globally.
    """

    def __init__(self, default_ttl: Optional[float] = None, clock=time.monotonic):
        self.default_ttl = default_ttl
        self._clock = clock
        self._lock = threading.Lock()
        self._data = {}  # key -> (expires_at | None, value)

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            item = self._data.get(key)
            if item is None:
                return None
            expires_at, value = item
            if expires_at is not None and expires_at <= self._clock():
                del self._data[key]
                return None
            return value

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        now = self._clock()
        expires_at = now + ttl if ttl is not None else None
        with self._lock:
            self._sweep(now)
            self._data[key] = (expires_at, value)

    def _sweep(self, now: float) -> None:
        # caller holds self._lock
        expired = [k for k, (expires_at, _) in self._data.items() if expires_at is not None and expires_at <= now]
        for k in expired:
            del self._data[k]

    def ttl(self, key: str) -> Optional[float]:
        """Seconds left for `key`; None when missing or without expiry."""
        with self._lock:
            item = self._data.get(key)
            if item is None or item[0] is None:
                return None
            remaining = item[0] - self._clock()
            return remaining if remaining > 0 else None

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    def __len__(self):
        with self._lock:
            return len(self._data)
