"""
tests/test_navigation_builder.py -- Per-request navigation over the shipped module configs.
"""

from __future__ import annotations

import pytest

from auth.authorizer import CrossGuardAuthorizer
from auth.store import PermissionStore
from cache.store import AuthorizationCache
from conftest import add_principal, seed_portal
from core.guards import GuardSet
from nav.builder import NavigationBuilder
from nav.registry import ModuleRegistry


@pytest.fixture
def builder(seeded_store: PermissionStore, registry: ModuleRegistry) -> NavigationBuilder:
    authorizer = CrossGuardAuthorizer(seeded_store, AuthorizationCache(ttl=600), GuardSet.of(["staff", "web"]))
    return NavigationBuilder(registry, authorizer)


@pytest.fixture
def admin(seeded_store: PermissionStore):
    return add_principal(seeded_store, "admin", roles=["ADMIN"])


@pytest.fixture
def mod01(seeded_store: PermissionStore):
    return add_principal(seeded_store, "mod01", roles=["MOD-01"])


def _titles(items) -> list[str]:
    return [item.title for item in items]


def test_mod01_cannot_see_admin_contextual_nav(builder: NavigationBuilder, mod01) -> None:
    assert builder.contextual_nav(mod01, "admin") == []
    assert builder.panel_items(mod01, "admin") == []
    assert builder.breadcrumbs(mod01, "admin", "users.index") == []


def test_mod01_module_contextual_nav(builder: NavigationBuilder, mod01) -> None:
    items = builder.contextual_nav(mod01, "module01")
    assert _titles(items) == ["Sample panel"]
    assert items[0].route_name == "internal.module01.index"
    assert items[0].route_name_suffix is None


def test_module_nav_lists_accessible_modules_in_order(builder: NavigationBuilder, admin, mod01) -> None:
    assert _titles(builder.module_nav(admin)) == ["Administration", "Generic module 1", "Generic module 2"]
    entries = builder.module_nav(mod01)
    assert _titles(entries) == ["Generic module 1"]
    assert entries[0].route_name == "internal.module01.index"


def test_title_template_uses_functional_name(builder: NavigationBuilder, admin) -> None:
    items = builder.contextual_nav(admin, "admin")
    assert _titles(items) == ["Administration", "Staff users", "Create user"]
    assert items[0].route_name == "internal.admin.panel"


def test_route_specific_contextual_nav(builder: NavigationBuilder, admin) -> None:
    items = builder.contextual_nav(admin, "admin", "users.create")
    assert _titles(items) == ["Back to panel", "Back to list"]


def test_current_flag(builder: NavigationBuilder, admin) -> None:
    items = builder.contextual_nav(admin, "admin", current_route="internal.admin.users.index")
    assert [item.current for item in items] == [False, True, False]
    home = builder.main_nav(admin, current_route="internal.dashboard")[0]
    assert home.current is True


def test_current_flag_covers_nested_routes(builder: NavigationBuilder, admin) -> None:
    items = builder.contextual_nav(admin, "admin", current_route="internal.admin.users.index.filtered")
    assert items[1].current is True


def test_breadcrumbs_with_dynamic_title_and_params(builder: NavigationBuilder, admin) -> None:
    crumbs = builder.breadcrumbs(
        admin,
        "admin",
        "users.edit",
        view_data={"user": {"name": "Alice"}},
        route_params={"user": 7},
    )
    assert _titles(crumbs) == ["Administration", "Staff users", "Edit user: Alice"]
    assert crumbs[-1].route_name == "internal.admin.users.edit"
    assert crumbs[-1].route_params == {"user": 7}


def test_breadcrumb_placeholder_stays_without_request_param(builder: NavigationBuilder, admin) -> None:
    crumbs = builder.breadcrumbs(admin, "admin", "users.edit")
    assert crumbs[-1].title == "Edit user"
    assert crumbs[-1].route_params == {"user": ":user"}


def test_breadcrumbs_fall_back_to_module_root(builder: NavigationBuilder, mod01) -> None:
    crumbs = builder.breadcrumbs(mod01, "module01", "index")
    assert _titles(crumbs) == ["Generic module 1"]
    assert crumbs[0].route_name == "internal.module01.index"
    assert crumbs[0].permission is None


def test_module_cards_mark_access(builder: NavigationBuilder, mod01) -> None:
    cards = builder.module_cards(mod01)
    assert [(c["slug"], c["can_access"]) for c in cards] == [
        ("admin", False),
        ("module01", True),
        ("module02", False),
    ]
    assert cards[1]["route_name"] == "internal.module01.index"


def test_guard_mismatch_denies_module(seeded_store: PermissionStore, builder: NavigationBuilder, registry) -> None:
    seed_portal(seeded_store, guard="web")
    web_admin = add_principal(seeded_store, "web-admin", roles=["ADMIN"], guard="web")
    assert builder.can_access_module(web_admin, registry.get("admin")) is False
    assert builder.module_nav(web_admin) == []


def test_anonymous_gets_only_ungated_lists(builder: NavigationBuilder) -> None:
    assert _titles(builder.main_nav(None)) == ["Home"]
    assert builder.module_nav(None) == []
    assert builder.contextual_nav(None, "module01") == []


def test_unknown_module_raises_lookup_error(builder: NavigationBuilder, admin) -> None:
    with pytest.raises(LookupError):
        builder.contextual_nav(admin, "nope")
    with pytest.raises(LookupError):
        builder.assemble(admin, slug="nope")


def test_assemble_infers_module_from_route(builder: NavigationBuilder, admin) -> None:
    structure = builder.assemble(admin, current_route="internal.admin.users.index")
    data = structure.to_dict()

    assert data["module"] == "admin"
    assert [c["title"] for c in data["breadcrumbs"]] == ["Administration", "Staff users"]
    assert [c["title"] for c in data["contextual_nav"]] == ["Back to panel", "Create user"]
    assert [p["title"] for p in data["panel_items"]] == ["Staff users"]
    assert len(data["global_nav"]) == 3


def test_assemble_outside_modules(builder: NavigationBuilder, mod01) -> None:
    structure = builder.assemble(mod01, current_route="internal.dashboard")
    assert structure.module is None
    assert structure.contextual_nav == []
    assert _titles(structure.main_nav) == ["Home"]
