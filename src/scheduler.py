"""Scheduling primitives: debouncing and time-bounded caching.

Both take an injectable monotonic clock so callers (and tests) control
time. Neither holds module-level state; the caller owns each instance.
"""

import time
from collections.abc import Callable, Hashable
from typing import Generic, TypeVar

from config.settings import GlobalConfig, get_config

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")

Clock = Callable[[], float]


class Debouncer(Generic[K]):
    """Coalesces repeated requests for a key into one, after a quiet window.

    Every request re-arms the key's deadline; ``due()`` hands back the keys
    whose window has elapsed since their last request.

    Example:
        debouncer = Debouncer(window_sec=0.75)
        debouncer.request("https://fintel.io/ss/us/ABCD")
        ...
        for url in debouncer.due():
            rescan(url)
    """

    def __init__(
        self,
        window_sec: float | None = None,
        clock: Clock = time.monotonic,
        config: GlobalConfig | None = None,
    ) -> None:
        if window_sec is None:
            window_sec = (config or get_config()).debounce_window_sec
        if window_sec < 0:
            raise ValueError("window_sec must be non-negative")
        self.window_sec = window_sec
        self.clock = clock
        self._deadlines: dict[K, float] = {}

    def request(self, key: K) -> None:
        self._deadlines[key] = self.clock() + self.window_sec

    def cancel(self, key: K) -> None:
        self._deadlines.pop(key, None)

    def due(self) -> list[K]:
        """Pop and return keys whose quiet window has elapsed, oldest deadline first."""
        now = self.clock()
        ready = sorted(
            (key for key, deadline in self._deadlines.items() if deadline <= now),
            key=self._deadlines.__getitem__,
        )
        for key in ready:
            del self._deadlines[key]
        return ready

    @property
    def pending(self) -> tuple[K, ...]:
        return tuple(self._deadlines)

    def __len__(self) -> int:
        return len(self._deadlines)


class TTLCache(Generic[K, V]):
    """Mapping whose entries expire ``ttl_sec`` after they were set."""

    def __init__(
        self,
        ttl_sec: float | None = None,
        clock: Clock = time.monotonic,
        config: GlobalConfig | None = None,
    ) -> None:
        if ttl_sec is None:
            ttl_sec = (config or get_config()).crawl_cache_ttl_sec
        if ttl_sec <= 0:
            raise ValueError("ttl_sec must be positive")
        self.ttl_sec = ttl_sec
        self.clock = clock
        self._entries: dict[K, tuple[float, V]] = {}

    def get(self, key: K, default: V | None = None) -> V | None:
        entry = self._entries.get(key)
        if entry is None:
            return default
        expires_at, value = entry
        if expires_at <= self.clock():
            del self._entries[key]
            return default
        return value

    def set(self, key: K, value: V) -> None:
        self._entries[key] = (self.clock() + self.ttl_sec, value)

    def purge_expired(self) -> int:
        """Drop expired entries; return how many were dropped."""
        now = self.clock()
        expired = [key for key, (expires_at, _) in self._entries.items() if expires_at <= now]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def __contains__(self, key: object) -> bool:
        entry = self._entries.get(key)  # type: ignore[arg-type]
        return entry is not None and entry[0] > self.clock()

    def __len__(self) -> int:
        self.purge_expired()
        return len(self._entries)
