"""Fixed-window request throttling per caller identity.

Each route class (chat, like, review, pdf) owns a RateLimiter with its own
table. Tables live in process memory, so under scale-out every instance
counts on its own and the ceiling is only approximate. Deployments that need
exact limits can pass a store backed by an atomic external counter.

Not built on slowapi: it keys by a request function and keeps its counters
private, while callers here need explicit keys, an injectable clock and
store, no increment on rejection, and admission for other services.
"""

import logging
import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from typing import Protocol

from mamastale.config import get_config

logger = logging.getLogger(__name__)

DEFAULT_MAX_ENTRIES = 500


@dataclass
class RateLimitEntry:
    count: int
    reset_at: float


class RateLimitStore(Protocol):
    def get(self, key: str) -> RateLimitEntry | None: ...

    def set(self, key: str, entry: RateLimitEntry) -> None: ...

    def delete(self, key: str) -> None: ...

    def items(self) -> Iterator[tuple[str, RateLimitEntry]]: ...

    def __len__(self) -> int: ...


class MemoryRateLimitStore:
    """Dict-backed store; entries vanish with the process."""

    def __init__(self) -> None:
        self._entries: dict[str, RateLimitEntry] = {}

    def get(self, key: str) -> RateLimitEntry | None:
        return self._entries.get(key)

    def set(self, key: str, entry: RateLimitEntry) -> None:
        self._entries[key] = entry

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def items(self) -> Iterator[tuple[str, RateLimitEntry]]:
        return iter(list(self._entries.items()))

    def __len__(self) -> int:
        return len(self._entries)


class RateLimiter:
    """Admit at most `limit` requests per identity per `window` seconds.

    Args:
        limit:       Requests admitted per window.
        window:      Window length in seconds.
        store:       Entry table; a fresh MemoryRateLimitStore by default.
        max_entries: Table size above which expired entries are swept
                     before a new key is inserted.
        clock:       Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        limit: int,
        window: float,
        store: RateLimitStore | None = None,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.limit = limit
        self.window = window
        self.store = store if store is not None else MemoryRateLimitStore()
        self.max_entries = max_entries
        self._clock = clock

    def _evict_expired(self, now: float) -> None:
        expired = [key for key, entry in self.store.items() if now >= entry.reset_at]
        for key in expired:
            self.store.delete(key)
        if expired:
            logger.debug("Evicted %d expired rate-limit entries", len(expired))

    def admit(self, identity: str) -> bool:
        now = self._clock()
        entry = self.store.get(identity)
        if entry is None or now >= entry.reset_at:
            if entry is None and len(self.store) > self.max_entries:
                self._evict_expired(now)
            self.store.set(identity, RateLimitEntry(count=1, reset_at=now + self.window))
            return True
        if entry.count >= self.limit:
            return False
        entry.count += 1
        self.store.set(identity, entry)
        return True


# ── Route-class registry ─────────────────────────────────

_limiters: dict[str, RateLimiter] = {}


def route_settings(route_class: str) -> dict | None:
    """Configured limits for a route class, or None if it is unknown."""
    return get_config()["rate_limits"].get(route_class)


def get_limiter(route_class: str) -> RateLimiter:
    """Return the process-wide limiter for a route class, creating it on first use.

    Raises KeyError for unknown route classes.
    """
    limiter = _limiters.get(route_class)
    if limiter is None:
        settings = route_settings(route_class)
        if settings is None:
            raise KeyError(route_class)
        limiter = RateLimiter(
            limit=settings["limit"],
            window=settings["window"],
            max_entries=settings.get("max_entries", DEFAULT_MAX_ENTRIES),
        )
        _limiters[route_class] = limiter
    return limiter


def reset_limiters() -> None:
    """Drop every limiter table (tests, config reloads)."""
    _limiters.clear()
