"""
cache/store.py -- TTL cache for authorization decisions, invalidated across processes.

Every CrossGuardAuthorizer query is memoized here under a tuple key
(principal_id, query_kind, query_key). Entries expire after a fixed TTL
(default 10 minutes); there is no LRU bound because the key space is bounded
by principals x permission/role names.

Shared by the CLI and API:
  Decisions live in process memory, but the flush generation lives in the
  permission database (authz_cache_state). flush() bumps it, and every read
  compares the local generation with the stored one first; a mismatch drops
  all local entries. A `main.py sync-guards` run therefore invalidates the
  caches of running API workers on their next lookup.

Concurrency:
  One lock guards the dict, held only for single reads and writes. The value
  is computed OUTSIDE the lock, so two requests missing the same key may both
  compute it; the last write wins. A value computed across a generation change
  is not stored.

Invalidation:
  forget_principal(id)  drop every entry of one principal (role change, local only)
  flush()               drop everything and bump the shared generation (guard sync)
  purge_expired()       trim stale entries; the API calls this periodically

Usage:
    cache = AuthorizationCache(ttl=600, generations=store)
    allowed = cache.get_or_compute((7, "permission", "access-admin"), compute)
    cache.forget_principal(7)

NullCache has the same interface and never stores anything; tests use it
to observe every store round-trip.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Hashable
from typing import Any, Protocol, TypeVar

T = TypeVar("T")

_DEFAULT_TTL = 60 * 10  # 10 minutes in seconds

_MISSING = object()


class GenerationSource(Protocol):
    """Shared flush counter; PermissionStore implements it."""

    def cache_generation(self) -> int: ...

    def bump_cache_generation(self) -> int: ...


class AuthorizationCache:
    def __init__(
        self,
        ttl: int = _DEFAULT_TTL,
        clock: Callable[[], float] = time.monotonic,
        generations: GenerationSource | None = None,
    ) -> None:
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[Hashable, tuple[Any, float]] = {}
        self._lock = threading.Lock()
        self._generations = generations
        self._generation = generations.cache_generation() if generations is not None else 0

    def _refresh_generation(self) -> int:
        """Drop local entries if another process flushed since we last looked."""
        if self._generations is None:
            return self._generation
        current = self._generations.cache_generation()
        with self._lock:
            if current != self._generation:
                self._entries.clear()
                self._generation = current
        return current

    def get(self, key: Hashable, default: Any = None) -> Any:
        """Return the cached value for key if present and not expired, else default."""
        self._refresh_generation()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return default
            value, stored_at = entry
            if self._clock() - stored_at > self.ttl:
                del self._entries[key]
                return default
            return value

    def set(self, key: Hashable, value: Any) -> None:
        """Store value for key, replacing any existing entry."""
        with self._lock:
            self._entries[key] = (value, self._clock())

    def get_or_compute(self, key: Hashable, compute: Callable[[], T]) -> T:
        """Return the cached value, computing and storing it on a miss.

        Exceptions raised by compute propagate and nothing is stored, so a
        storage failure is never remembered as a decision.
        """
        value = self.get(key, _MISSING)
        if value is not _MISSING:
            return value
        seen = self._generation
        value = compute()
        with self._lock:
            if self._generation == seen:
                self._entries[key] = (value, self._clock())
        return value

    def forget(self, key: Hashable) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def forget_principal(self, principal_id: Hashable) -> int:
        """Drop every entry whose key starts with principal_id. Returns number removed."""
        with self._lock:
            doomed = [k for k in self._entries if isinstance(k, tuple) and k and k[0] == principal_id]
            for key in doomed:
                del self._entries[key]
        return len(doomed)

    def flush(self) -> None:
        """Drop all entries here and, when shared, in every process on its next read."""
        new_generation = self._generations.bump_cache_generation() if self._generations is not None else None
        with self._lock:
            self._entries.clear()
            if new_generation is not None:
                self._generation = new_generation

    def purge_expired(self) -> int:
        """Delete all entries older than TTL. Returns number of entries removed."""
        cutoff = self._clock() - self.ttl
        with self._lock:
            stale = [k for k, (_, stored_at) in self._entries.items() if stored_at < cutoff]
            for key in stale:
                del self._entries[key]
        return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class NullCache:
    """Cache that stores nothing: every get_or_compute call recomputes."""

    ttl = 0

    def get(self, key: Hashable, default: Any = None) -> Any:
        return default

    def set(self, key: Hashable, value: Any) -> None:
        pass

    def get_or_compute(self, key: Hashable, compute: Callable[[], T]) -> T:
        return compute()

    def forget(self, key: Hashable) -> None:
        pass

    def forget_principal(self, principal_id: Hashable) -> int:
        return 0

    def flush(self) -> None:
        pass

    def purge_expired(self) -> int:
        return 0

    def __len__(self) -> int:
        return 0
