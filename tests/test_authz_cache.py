"""
tests/test_authz_cache.py -- AuthorizationCache TTL, invalidation and get_or_compute.

A fake clock drives expiry so no test sleeps; an in-memory counter stands in
for the shared flush generation.
"""

from __future__ import annotations

import pytest

from cache.store import AuthorizationCache, NullCache


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class SharedGeneration:
    """In-memory stand-in for the generation row in the permission database."""

    def __init__(self) -> None:
        self.value = 0

    def cache_generation(self) -> int:
        return self.value

    def bump_cache_generation(self) -> int:
        self.value += 1
        return self.value


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock: FakeClock) -> AuthorizationCache:
    return AuthorizationCache(ttl=600, clock=clock)


def test_get_or_compute_computes_once(cache: AuthorizationCache) -> None:
    calls = []

    def compute() -> bool:
        calls.append(1)
        return True

    assert cache.get_or_compute((1, "permission", "access-admin"), compute) is True
    assert cache.get_or_compute((1, "permission", "access-admin"), compute) is True
    assert len(calls) == 1


def test_false_decisions_are_cached(cache: AuthorizationCache) -> None:
    calls = []

    def compute() -> bool:
        calls.append(1)
        return False

    cache.get_or_compute((1, "permission", "x"), compute)
    cache.get_or_compute((1, "permission", "x"), compute)
    assert len(calls) == 1


def test_entry_expires_after_ttl(cache: AuthorizationCache, clock: FakeClock) -> None:
    cache.set((1, "permission", "a"), True)
    clock.now += 599
    assert cache.get((1, "permission", "a")) is True
    clock.now += 2
    assert cache.get((1, "permission", "a")) is None


def test_exceptions_are_not_cached(cache: AuthorizationCache) -> None:
    def failing() -> bool:
        raise RuntimeError("backend down")

    with pytest.raises(RuntimeError):
        cache.get_or_compute((1, "permission", "a"), failing)
    assert len(cache) == 0
    assert cache.get_or_compute((1, "permission", "a"), lambda: True) is True


def test_forget_principal_only_touches_that_principal(cache: AuthorizationCache) -> None:
    cache.set((1, "permission", "a"), True)
    cache.set((1, "role-set", ("ADMIN",)), False)
    cache.set((2, "permission", "a"), True)

    assert cache.forget_principal(1) == 2
    assert cache.get((1, "permission", "a")) is None
    assert cache.get((2, "permission", "a")) is True


def test_flush_drops_everything(cache: AuthorizationCache) -> None:
    cache.set((1, "permission", "a"), True)
    cache.set((2, "permission", "b"), True)
    cache.flush()
    assert len(cache) == 0


def test_purge_expired(cache: AuthorizationCache, clock: FakeClock) -> None:
    cache.set((1, "permission", "old"), True)
    clock.now += 700
    cache.set((1, "permission", "new"), True)
    assert cache.purge_expired() == 1
    assert cache.get((1, "permission", "new")) is True


def test_null_cache_always_recomputes() -> None:
    cache = NullCache()
    calls = []
    for _ in range(3):
        cache.get_or_compute((1, "permission", "a"), lambda: calls.append(1) or True)
    assert len(calls) == 3
    assert len(cache) == 0


def test_flush_elsewhere_drops_local_entries(clock: FakeClock) -> None:
    shared = SharedGeneration()
    api_side = AuthorizationCache(ttl=600, clock=clock, generations=shared)
    cli_side = AuthorizationCache(ttl=600, clock=clock, generations=shared)
    api_side.set((1, "permission", "access-admin"), False)

    cli_side.flush()

    assert shared.value == 1
    assert api_side.get((1, "permission", "access-admin")) is None
    assert api_side.get_or_compute((1, "permission", "access-admin"), lambda: True) is True
    assert api_side.get((1, "permission", "access-admin")) is True


def test_value_computed_across_a_flush_is_not_stored(clock: FakeClock) -> None:
    shared = SharedGeneration()
    cache = AuthorizationCache(ttl=600, clock=clock, generations=shared)

    def compute() -> bool:
        shared.bump_cache_generation()
        cache.get((2, "role", "ADMIN"))
        return False

    assert cache.get_or_compute((1, "permission", "access-admin"), compute) is False
    assert len(cache) == 0
