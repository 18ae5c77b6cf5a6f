"""
tests/test_cli.py -- Operator CLI (main.py) against an in-memory permission store.

main.PermissionStore is replaced with a factory returning the test store so
the commands never touch the on-disk database.
"""

from __future__ import annotations

import json
import sys

import pytest

import main as cli
from auth.authorizer import CrossGuardAuthorizer
from auth.store import PermissionStore
from cache.store import AuthorizationCache
from conftest import add_principal, seed_portal
from core.guards import GuardSet


def _run(monkeypatch: pytest.MonkeyPatch, *argv: str) -> int:
    monkeypatch.setattr(sys, "argv", ["main.py", *argv])
    with pytest.raises(SystemExit) as excinfo:
        cli.main()
    return excinfo.value.code


@pytest.fixture
def cli_store(seeded_store: PermissionStore, monkeypatch: pytest.MonkeyPatch) -> PermissionStore:
    # Every command closes its store; disposing the engine would drop the
    # shared-memory database between runs, so the fixture owns closing.
    monkeypatch.setattr(seeded_store, "close", lambda: None)
    monkeypatch.setattr(cli, "PermissionStore", lambda: seeded_store)
    return seeded_store


def test_can_allowed_and_denied(cli_store: PermissionStore, monkeypatch, capsys) -> None:
    user = add_principal(cli_store, "cli-user", roles=["MOD-01"])

    assert _run(monkeypatch, "can", str(user.id), "access-module-01") == 0
    assert json.loads(capsys.readouterr().out)["allowed"] is True

    assert _run(monkeypatch, "can", str(user.id), "access-module-01", "access-admin", "--all") == 1
    out = json.loads(capsys.readouterr().out)
    assert out["allowed"] is False
    assert out["require_all"] is True


def test_can_unknown_principal(cli_store: PermissionStore, monkeypatch, capsys) -> None:
    assert _run(monkeypatch, "can", "999999", "access-admin") == 2
    assert "[!]" in capsys.readouterr().out


def test_nav_prints_filtered_structure(cli_store: PermissionStore, monkeypatch, capsys) -> None:
    user = add_principal(cli_store, "cli-nav", roles=["MOD-01"])
    assert _run(monkeypatch, "nav", str(user.id), "--route", "internal.module01.index") == 0
    data = json.loads(capsys.readouterr().out)
    assert data["module"] == "module01"
    assert [i["title"] for i in data["module_nav"]] == ["Generic module 1"]


def test_sync_guards(cli_store: PermissionStore, monkeypatch, capsys) -> None:
    seed_portal(cli_store, guard="web")
    assert _run(monkeypatch, "sync-guards", "--guards", "web", "sanctum") == 0
    assert "+ role ADMIN [sanctum]" in capsys.readouterr().out
    assert cli_store.find_role("ADMIN", "sanctum") is not None


def test_sync_guards_invalidates_running_api_cache(cli_store: PermissionStore, monkeypatch) -> None:
    seed_portal(cli_store, guard="web")
    api_cache = AuthorizationCache(ttl=600, generations=cli_store)
    api_authorizer = CrossGuardAuthorizer(cli_store, api_cache, GuardSet.of(["web", "sanctum"]))
    user = add_principal(cli_store, "web-mod", roles=["MOD-01"], guard="web")
    assert api_authorizer.has_permission(user, "access-module-02") is False

    cli_store.sync_role_permissions("MOD-01", "web", ["access-module-01", "access-module-02"])
    assert _run(monkeypatch, "sync-guards", "--guards", "web", "sanctum") == 0

    assert api_authorizer.has_permission(user, "access-module-02") is True


def test_sync_guards_needs_two(cli_store: PermissionStore, monkeypatch) -> None:
    assert _run(monkeypatch, "sync-guards", "--guards", "web") == 2


def test_check_config_on_shipped_modules(monkeypatch, capsys) -> None:
    assert _run(monkeypatch, "check-config") == 0
    out = capsys.readouterr().out
    assert "admin" in out
    assert "module02" in out
