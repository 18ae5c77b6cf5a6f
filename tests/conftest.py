"""
tests/conftest.py -- Shared test fixtures for the staff portal core.

This module provides:
  - make_store(): isolated named shared-memory PermissionStore
  - seed_portal(): the standard staff-guard permissions and roles
  - CountingStore: store wrapper that counts lookups (cache assertions)
  - _patch_lifespan(): wires test services into app.state, bypassing real startup
  - api_client: TestClient plus tokens for an admin, a MOD-01 user and an
    inactive user

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.

The DEBUG env var must be set before any auth/core import so get_settings()
auto-generates SECRET_KEY in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import asyncio
import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path

# CRITICAL: Set DEBUG before any auth/core import so get_settings() can
# auto-generate SECRET_KEY in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.authorizer import CrossGuardAuthorizer
from auth.store import PermissionStore
from auth.sync import GuardSyncService
from auth.tokens import create_access_token
from cache.store import AuthorizationCache
from core.guards import GuardSet
from nav.builder import NavigationBuilder
from nav.registry import ModuleRegistry

REPO_CONFIG_DIR = Path(__file__).resolve().parent.parent / "config"

STAFF_PERMISSIONS = ("access-module-01", "access-module-02", "access-admin")
STAFF_ROLES = {
    "ADMIN": STAFF_PERMISSIONS,
    "DEV": STAFF_PERMISSIONS,
    "MOD-01": ("access-module-01",),
    "MOD-02": ("access-module-02",),
}


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def make_store(prefix: str = "perm") -> PermissionStore:
    """Fresh, isolated in-memory store shared across threads of this process."""
    return PermissionStore(db_url=f"sqlite:///file:test_{prefix}_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true")


def seed_portal(store: PermissionStore, guard: str = "staff") -> None:
    """Create the portal's standard permissions and roles in one guard."""
    for name in STAFF_PERMISSIONS:
        store.create_permission(name, guard)
    for role, permissions in STAFF_ROLES.items():
        store.create_role(role, guard)
        store.sync_role_permissions(role, guard, permissions)


def add_principal(store: PermissionStore, username: str, roles=(), guard: str = "staff", is_active: bool = True):
    pid = store.create_principal(username, guard, is_active=is_active)
    if roles:
        store.sync_principal_roles(pid, guard, roles)
    return store.get_principal(pid)


class CountingStore:
    """Delegates to a real store and counts the lookups the authorizer makes."""

    def __init__(self, store: PermissionStore) -> None:
        self._store = store
        self.calls: dict[str, int] = {"find_permission": 0, "find_role": 0, "all_permission_names": 0}

    @property
    def total(self) -> int:
        return sum(self.calls.values())

    def find_permission(self, name, guard):
        self.calls["find_permission"] += 1
        return self._store.find_permission(name, guard)

    def find_role(self, name, guard):
        self.calls["find_role"] += 1
        return self._store.find_role(name, guard)

    def all_permission_names(self):
        self.calls["all_permission_names"] += 1
        return self._store.all_permission_names()


@pytest.fixture
def store() -> Generator[PermissionStore, None, None]:
    s = make_store()
    yield s
    s.close()


@pytest.fixture
def seeded_store(store: PermissionStore) -> PermissionStore:
    seed_portal(store)
    return store


@pytest.fixture
def guards() -> GuardSet:
    return GuardSet.of(["staff", "web", "sanctum"])


@pytest.fixture
def registry() -> ModuleRegistry:
    """The real module configs shipped in config/."""
    return ModuleRegistry(config_dir=REPO_CONFIG_DIR, route_root="internal").load()


# ---------------------------------------------------------------------------
# API client
# ---------------------------------------------------------------------------


def _patch_lifespan(store: PermissionStore, registry: ModuleRegistry):
    """Return an async context manager that replaces the real lifespan.

    The purge_task is a long-sleeping coroutine that keeps asyncio happy
    (a real asyncio.Task is required; MagicMock would fail on .cancel()).
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.permission_store = store
        app.state.cache = AuthorizationCache(ttl=600, generations=store)
        app.state.authorizer = CrossGuardAuthorizer(store, app.state.cache, GuardSet.of(["staff", "web", "sanctum"]))
        app.state.sync_service = GuardSyncService(store, app.state.cache)
        app.state.registry = registry
        app.state.nav_builder = NavigationBuilder(registry, app.state.authorizer)
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()

    return test_lifespan


@dataclass
class ApiContext:
    client: TestClient
    store: PermissionStore
    admin_id: int
    admin_token: str
    mod01_id: int
    mod01_token: str
    inactive_token: str

    def headers(self, token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {token}"}


@pytest.fixture(scope="module")
def api_client() -> Generator[ApiContext, None, None]:
    """Yield an ApiContext for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so tests
    hit real route handlers but use an isolated in-memory store and the
    module configs from config/.
    """
    store = make_store("api")
    seed_portal(store)
    for guard in ("web", "sanctum"):
        store.create_permission("access-admin", guard)

    admin = add_principal(store, "testadmin", roles=["ADMIN"])
    mod01 = add_principal(store, "mod01user", roles=["MOD-01"])
    inactive = add_principal(store, "gone", roles=["ADMIN"], is_active=False)

    registry = ModuleRegistry(config_dir=REPO_CONFIG_DIR, route_root="internal").load()
    app.router.lifespan_context = _patch_lifespan(store, registry)

    with TestClient(app, base_url="http://localhost", raise_server_exceptions=True) as client:
        yield ApiContext(
            client=client,
            store=store,
            admin_id=admin.id,
            admin_token=create_access_token(admin.id, admin.username, "staff", expire_seconds=3600),
            mod01_id=mod01.id,
            mod01_token=create_access_token(mod01.id, mod01.username, "staff", expire_seconds=3600),
            inactive_token=create_access_token(inactive.id, inactive.username, "staff", expire_seconds=3600),
        )

    store.close()
