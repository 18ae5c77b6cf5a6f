"""
nav/builder.py -- Assembles the per-request navigation handed to presentation.

Every list goes through NavItemFilter first (server-side enforcement), then is
materialized into its presentation form:

  title              title, or title_template with {module} replaced by the
                     module's functional name; a dynamic_title_prop looked up
                     in view_data (dot path) turns it into "Title: value"
  route_name         explicit name, or module route_prefix + route_name_suffix
  route_params       ":name" placeholders filled from the request's params
  current            exact match of the current route, or current route
                     nested below it ("internal.admin.users" is current for
                     "internal.admin.users.edit")

Module access rule (can_access_module): guard mismatch denies; no base
permission allows; otherwise the cross-guard authorizer decides, which
includes the privileged-role bypass.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any

from auth.authorizer import CrossGuardAuthorizer
from auth.models import Principal
from nav.filter import NavItemFilter
from nav.models import NavItemSpec
from nav.registry import ModuleRegistration, ModuleRegistry

logger = logging.getLogger("staffportal.nav")


@dataclass
class NavigationStructure:
    main_nav: list[NavItemSpec] = field(default_factory=list)
    module_nav: list[NavItemSpec] = field(default_factory=list)
    contextual_nav: list[NavItemSpec] = field(default_factory=list)
    global_nav: list[NavItemSpec] = field(default_factory=list)
    breadcrumbs: list[NavItemSpec] = field(default_factory=list)
    panel_items: list[NavItemSpec] = field(default_factory=list)
    module: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "module": self.module,
            "main_nav": [item.to_dict() for item in self.main_nav],
            "module_nav": [item.to_dict() for item in self.module_nav],
            "contextual_nav": [item.to_dict() for item in self.contextual_nav],
            "global_nav": [item.to_dict() for item in self.global_nav],
            "breadcrumbs": [item.to_dict() for item in self.breadcrumbs],
            "panel_items": [item.to_dict() for item in self.panel_items],
        }


class NavigationBuilder:
    def __init__(
        self,
        registry: ModuleRegistry,
        authorizer: CrossGuardAuthorizer,
        nav_filter: NavItemFilter | None = None,
    ) -> None:
        self._registry = registry
        self._authorizer = authorizer
        self._filter = nav_filter or NavItemFilter(authorizer)

    # ------------------------------------------------------------------
    # Module access
    # ------------------------------------------------------------------

    def can_access_module(self, principal: Principal | None, module: ModuleRegistration) -> bool:
        if principal is None:
            return False
        if module.auth_guard and principal.guard != module.auth_guard:
            return False
        if not module.base_permission:
            return True
        return self._authorizer.has_permission(principal, module.base_permission)

    def accessible_modules(self, principal: Principal | None) -> list[ModuleRegistration]:
        return [m for m in self._registry.modules() if self.can_access_module(principal, m)]

    def _require_module(self, slug: str) -> ModuleRegistration:
        module = self._registry.get(slug)
        if module is None:
            raise LookupError(f"Unknown module {slug!r}")
        return module

    # ------------------------------------------------------------------
    # Navigation lists
    # ------------------------------------------------------------------

    def main_nav(self, principal: Principal | None, current_route: str | None = None) -> list[NavItemSpec]:
        items = self._filter.filter(self._registry.main_nav, principal)
        return _materialize(items, "", None, current_route=current_route)

    def global_nav(self, principal: Principal | None, current_route: str | None = None) -> list[NavItemSpec]:
        items = self._filter.filter(self._registry.global_nav, principal)
        return _materialize(items, "", None, current_route=current_route)

    def module_nav(self, principal: Principal | None, current_route: str | None = None) -> list[NavItemSpec]:
        """One sidebar entry per accessible module that shows in navigation."""
        entries: list[NavItemSpec] = []
        for module in self.accessible_modules(principal):
            if module.nav_item is None or not module.show_in_nav:
                continue
            entries.extend(
                _materialize([module.nav_item], module.route_prefix, module.functional_name, current_route)
            )
        return entries

    def contextual_nav(
        self,
        principal: Principal | None,
        slug: str,
        route_suffix: str | None = None,
        current_route: str | None = None,
    ) -> list[NavItemSpec]:
        module = self._require_module(slug)
        if not self.can_access_module(principal, module):
            return []
        items = self._filter.filter(module.contextual_items(route_suffix), principal)
        return _materialize(items, module.route_prefix, module.functional_name, current_route)

    def panel_items(self, principal: Principal | None, slug: str) -> list[NavItemSpec]:
        module = self._require_module(slug)
        if not self.can_access_module(principal, module):
            return []
        items = self._filter.filter(module.panel_items, principal)
        return _materialize(items, module.route_prefix, module.functional_name)

    def breadcrumbs(
        self,
        principal: Principal | None,
        slug: str,
        route_suffix: str | None = None,
        view_data: dict[str, Any] | None = None,
        route_params: dict[str, Any] | None = None,
    ) -> list[NavItemSpec]:
        """Configured trail for the route, or a single crumb for the module root."""
        module = self._require_module(slug)
        if not self.can_access_module(principal, module):
            return []
        configured = module.breadcrumb_items(route_suffix)
        if configured is None:
            configured = [_module_root_crumb(module)]
        items = self._filter.filter(configured, principal)
        return _materialize(
            items,
            module.route_prefix,
            module.functional_name,
            view_data=view_data,
            route_params=route_params,
        )

    def module_cards(self, principal: Principal | None) -> list[dict[str, Any]]:
        """Dashboard cards for every module; can_access marks the reachable ones."""
        cards = []
        for module in self._registry.modules():
            if module.nav_item is None:
                continue
            cards.append(
                {
                    "slug": module.slug,
                    "name": module.functional_name,
                    "description": module.description,
                    "route_name": module.nav_item.resolve_target(module.route_prefix),
                    "icon": module.nav_item.icon,
                    "can_access": self.can_access_module(principal, module),
                }
            )
        return cards

    def assemble(
        self,
        principal: Principal | None,
        slug: str | None = None,
        current_route: str | None = None,
        view_data: dict[str, Any] | None = None,
        route_params: dict[str, Any] | None = None,
    ) -> NavigationStructure:
        """Everything the layout needs for one page.

        When slug is omitted it is inferred from current_route through the
        module route prefixes.
        """
        module = self._registry.get(slug) if slug else self._registry.module_for_route(current_route)
        if slug and module is None:
            raise LookupError(f"Unknown module {slug!r}")

        structure = NavigationStructure(
            main_nav=self.main_nav(principal, current_route),
            module_nav=self.module_nav(principal, current_route),
            global_nav=self.global_nav(principal, current_route),
        )
        if module is not None:
            suffix = module.route_suffix(current_route)
            structure.module = module.slug
            structure.contextual_nav = self.contextual_nav(principal, module.slug, suffix, current_route)
            structure.breadcrumbs = self.breadcrumbs(principal, module.slug, suffix, view_data, route_params)
            structure.panel_items = self.panel_items(principal, module.slug)
        logger.debug(
            "Assembled navigation for principal %s (module=%s, route=%s)",
            principal.id if principal else None,
            structure.module,
            current_route,
        )
        return structure


def _module_root_crumb(module: ModuleRegistration) -> NavItemSpec:
    if module.nav_item is not None:
        return replace(module.nav_item, permission=None, icon=None)
    return NavItemSpec(title=module.functional_name, route_name_suffix="panel")


def _materialize(
    items: list[NavItemSpec],
    route_prefix: str,
    functional_name: str | None,
    current_route: str | None = None,
    view_data: dict[str, Any] | None = None,
    route_params: dict[str, Any] | None = None,
) -> list[NavItemSpec]:
    rendered = []
    for item in items:
        route_name = item.resolve_target(route_prefix)
        rendered.append(
            replace(
                item,
                title=_render_title(item, functional_name, view_data),
                title_template=None,
                route_name=route_name,
                route_name_suffix=None,
                route_params=_fill_params(item.route_params, route_params),
                current=_is_current(route_name, current_route),
                children=_materialize(
                    item.children, route_prefix, functional_name, current_route, view_data, route_params
                ),
            )
        )
    return rendered


def _render_title(item: NavItemSpec, functional_name: str | None, view_data: dict[str, Any] | None) -> str:
    if item.title_template:
        title = item.title_template.replace("{module}", functional_name or "")
    else:
        title = item.title or ""
    if item.dynamic_title_prop and view_data:
        value = _lookup(view_data, item.dynamic_title_prop)
        if value is not None and value != "":
            title = f"{title}: {value}"
    return title


def _lookup(data: dict[str, Any], dotted: str) -> Any:
    value: Any = data
    for part in dotted.split("."):
        if not isinstance(value, dict) or part not in value:
            return None
        value = value[part]
    return value


def _fill_params(params: dict[str, Any], request_params: dict[str, Any] | None) -> dict[str, Any]:
    # ":id" stays literal when the request does not supply it.
    filled = {}
    for key, value in params.items():
        if isinstance(value, str) and value.startswith(":") and request_params and value[1:] in request_params:
            filled[key] = request_params[value[1:]]
        else:
            filled[key] = value
    return filled


def _is_current(route_name: str | None, current_route: str | None) -> bool:
    if not route_name or not current_route:
        return False
    return current_route == route_name or current_route.startswith(f"{route_name}.")
