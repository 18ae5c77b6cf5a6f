"""
tests/test_nav_filter.py -- Server-side NavItemFilter backed by the real authorizer.
"""

from __future__ import annotations

import itertools

import pytest

from auth.authorizer import CrossGuardAuthorizer
from auth.store import PermissionStore
from cache.store import AuthorizationCache
from conftest import add_principal, make_store
from core.guards import GuardSet
from gate_cases import GATE_CASES, PERMISSIONS, case_id, tree
from nav.filter import NavItemFilter
from nav.models import NavItemSpec

_names = itertools.count()


@pytest.fixture(scope="module")
def gate_store():
    store = make_store("gate")
    for name in PERMISSIONS:
        store.create_permission(name, "staff")
    store.create_role("ADMIN", "staff")
    yield store
    store.close()


def _principal(store: PermissionStore, held, privileged: bool):
    principal = add_principal(store, f"user{next(_names)}", roles=["ADMIN"] if privileged else ())
    for name in held:
        store.give_permission_to_principal(principal.id, name, "staff")
    return store.get_principal(principal.id)


def _filter(store: PermissionStore) -> NavItemFilter:
    return NavItemFilter(CrossGuardAuthorizer(store, AuthorizationCache(ttl=600), GuardSet.of(["staff"])))


@pytest.mark.parametrize("case", GATE_CASES, ids=[case_id(c) for c in GATE_CASES])
def test_gate_table(gate_store: PermissionStore, case) -> None:
    requirement, require_all, held, privileged, expected = case
    item = NavItemSpec(title="X", route_name="internal.x", permission=requirement, require_all=require_all)
    principal = _principal(gate_store, held, privileged)
    assert _filter(gate_store).allows(item, principal) is expected


def test_mod01_tree(gate_store: PermissionStore) -> None:
    principal = _principal(gate_store, ("access-module-01",), False)
    items = NavItemSpec.list_from_config(tree())

    result = _filter(gate_store).filter(items, principal)

    assert [i.title for i in result] == ["Home", "Modules", "Both"]
    modules = result[1]
    assert [c.title for c in modules.children] == ["One"]


def test_require_all_drops_item(gate_store: PermissionStore) -> None:
    principal = _principal(gate_store, ("access-module-01",), False)
    items = NavItemSpec.list_from_config(tree(require_all_root=True))
    assert "Both" not in [i.title for i in _filter(gate_store).filter(items, principal)]


def test_group_with_all_children_denied_is_dropped(gate_store: PermissionStore) -> None:
    principal = _principal(gate_store, (), False)
    items = NavItemSpec.list_from_config(tree())
    assert [i.title for i in _filter(gate_store).filter(items, principal)] == ["Home"]


def test_denied_group_children_are_not_evaluated(gate_store: PermissionStore) -> None:
    principal = _principal(gate_store, ("access-module-01",), False)
    seen = []

    class RecordingFilter(NavItemFilter):
        def allows(self, item, principal):
            seen.append(item.title)
            return super().allows(item, principal)

    RecordingFilter(
        CrossGuardAuthorizer(gate_store, AuthorizationCache(ttl=600), GuardSet.of(["staff"]))
    ).filter(NavItemSpec.list_from_config(tree()), principal)
    assert "Admin" in seen
    assert "Users" not in seen


def test_group_with_own_target_survives_without_children(gate_store: PermissionStore) -> None:
    principal = _principal(gate_store, ("access-module-01",), False)
    group = NavItemSpec(
        title="Reports",
        route_name="internal.reports",
        children=[NavItemSpec(title="Secret", route_name="internal.secret", permission="access-admin")],
    )
    result = _filter(gate_store).filter([group], principal)
    assert len(result) == 1
    assert result[0].children == []


def test_input_items_are_not_mutated(gate_store: PermissionStore) -> None:
    principal = _principal(gate_store, ("access-module-01",), False)
    items = NavItemSpec.list_from_config(tree())
    _filter(gate_store).filter(items, principal)
    assert [c.title for c in items[2].children] == ["One", "Two"]


def test_anonymous_sees_only_ungated_items(gate_store: PermissionStore) -> None:
    items = NavItemSpec.list_from_config(tree())
    assert [i.title for i in _filter(gate_store).filter(items, None)] == ["Home"]
