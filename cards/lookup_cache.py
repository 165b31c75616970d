from __future__ import annotations

import threading
import time
from typing import Any, Callable, Dict, Tuple

VERSION = "lookup_cache_v1"

DEFAULT_TTL_S = 30 * 24 * 60 * 60.0
DEFAULT_NEGATIVE_TTL_S = 24 * 60 * 60.0


class TTLCacheV1:
    """
    In-memory key/value cache with per-entry expiry.

    Instances are owned by whoever builds the lookup; there is no process-wide
    cache. Expired entries are dropped lazily on read or by `purge_expired()`.
    """

    def __init__(
        self,
        *,
        default_ttl_s: float = DEFAULT_TTL_S,
        max_entries: int = 10_000,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.default_ttl_s = float(default_ttl_s)
        self.max_entries = max(int(max_entries), 1)
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: Dict[str, Tuple[float, Any]] = {}

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            hit = self._entries.get(key)
            if hit is None:
                return default
            expires_at, value = hit
            if self._clock() >= expires_at:
                del self._entries[key]
                return default
            return value

    def set(self, key: str, value: Any, ttl_s: float | None = None) -> None:
        ttl = self.default_ttl_s if ttl_s is None else float(ttl_s)
        with self._lock:
            if key not in self._entries and len(self._entries) >= self.max_entries:
                # Evict the entry closest to expiry.
                oldest = min(self._entries.items(), key=lambda kv: (kv[1][0], kv[0]))[0]
                del self._entries[oldest]
            self._entries[key] = (self._clock() + max(ttl, 0.0), value)

    def expire(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def purge_expired(self) -> int:
        now = self._clock()
        with self._lock:
            stale = [key for key, (expires_at, _) in self._entries.items() if now >= expires_at]
            for key in stale:
                del self._entries[key]
            return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
