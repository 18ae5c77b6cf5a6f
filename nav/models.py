"""
nav/models.py -- NavItemSpec, the filterable navigation / breadcrumb / panel entry.

Pattern: Data class with constructor-time validation. An invalid item cannot
exist: __post_init__ raises InvalidNavItemSpec instead of coercing defaults.

Target forms:
  route_name         explicit route name ("internal.dashboard")
  route_name_suffix  combined with the owning module's prefix
                     ("index" + "internal.module01." -> "internal.module01.index")
A leaf needs exactly one of them. A group (an item with children) may have
none; it survives filtering only while at least one child survives.

Permission requirement:
  None / []          no gate
  "name"             single permission
  ["a", "b"]         any of them, or all of them when require_all=True

from_config() accepts the raw mapping shapes found in module YAML, including
the panel aliases (name / name_template) and the children alias (items).

Layer rule: imports core/ only, so client/ can share this type without
pulling in the server authorizer.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from core.errors import InvalidNavItemSpec

PermissionRequirement = str | list[str] | None

_REQUIRE_ALL_KEYS = ("require_all", "requireAll", "require_all_permissions")


@dataclass
class NavItemSpec:
    title: str | None = None
    title_template: str | None = None
    dynamic_title_prop: str | None = None
    route_name: str | None = None
    route_name_suffix: str | None = None
    route_params: dict[str, Any] = field(default_factory=dict)
    icon: str | None = None
    description: str | None = None
    permission: PermissionRequirement = None
    require_all: bool = False
    children: list["NavItemSpec"] = field(default_factory=list)
    current: bool = False

    def __post_init__(self) -> None:
        if not _non_empty_str(self.title) and not _non_empty_str(self.title_template):
            raise InvalidNavItemSpec(f"Navigation item needs 'title' or 'title_template': {self._describe()}")

        has_name = _non_empty_str(self.route_name)
        has_suffix = _non_empty_str(self.route_name_suffix)
        if has_name and has_suffix:
            raise InvalidNavItemSpec(
                f"Navigation item declares both 'route_name' and 'route_name_suffix': {self._describe()}"
            )
        if not self.children and not (has_name or has_suffix):
            raise InvalidNavItemSpec(f"Navigation item needs 'route_name' or 'route_name_suffix': {self._describe()}")

        perm = self.permission
        if perm is not None and not isinstance(perm, str):
            if not isinstance(perm, list) or not all(isinstance(p, str) for p in perm):
                raise InvalidNavItemSpec(f"'permission' must be a string or a list of strings: {self._describe()}")
        if self.icon is not None and not isinstance(self.icon, str):
            raise InvalidNavItemSpec(f"'icon' must be a string: {self._describe()}")
        if not isinstance(self.route_params, dict):
            raise InvalidNavItemSpec(f"'route_params' must be a mapping: {self._describe()}")

    @classmethod
    def from_config(cls, node: Any) -> "NavItemSpec":
        """Build a (validated) item from a resolved config mapping."""
        if not isinstance(node, Mapping):
            raise InvalidNavItemSpec(f"Navigation item must be a mapping, got {type(node).__name__}: {node!r}")
        raw_children = node.get("children", node.get("items")) or []
        if not isinstance(raw_children, list):
            raise InvalidNavItemSpec(f"'children' must be a list: {node!r}")
        return cls(
            title=node.get("title", node.get("name")),
            title_template=node.get("title_template", node.get("name_template")),
            dynamic_title_prop=node.get("dynamic_title_prop", node.get("dynamic_title")),
            route_name=node.get("route_name"),
            route_name_suffix=node.get("route_name_suffix"),
            route_params=dict(node.get("route_params", node.get("route_parameters")) or {}),
            icon=node.get("icon"),
            description=node.get("description"),
            permission=_copy_permission(node.get("permission")),
            require_all=bool(next((node[k] for k in _REQUIRE_ALL_KEYS if k in node), False)),
            children=[cls.from_config(child) for child in raw_children],
        )

    @classmethod
    def list_from_config(cls, nodes: Any) -> list["NavItemSpec"]:
        if nodes is None:
            return []
        if not isinstance(nodes, list):
            raise InvalidNavItemSpec(f"Expected a list of navigation items, got {type(nodes).__name__}")
        return [cls.from_config(node) for node in nodes]

    @property
    def has_target(self) -> bool:
        return _non_empty_str(self.route_name) or _non_empty_str(self.route_name_suffix)

    @property
    def required_permissions(self) -> tuple[str, ...]:
        if self.permission is None:
            return ()
        if isinstance(self.permission, str):
            return (self.permission,) if self.permission else ()
        return tuple(self.permission)

    def resolve_target(self, route_prefix: str) -> str | None:
        """Explicit route name, or module prefix + suffix; None for a target-less group."""
        if _non_empty_str(self.route_name):
            return self.route_name
        if _non_empty_str(self.route_name_suffix):
            return f"{route_prefix}{self.route_name_suffix}"
        return None

    def to_dict(self) -> dict[str, Any]:
        """Presentation shape: a rendered title and a concrete route name."""
        return {
            "title": self.title,
            "route_name": self.route_name,
            "route_params": dict(self.route_params),
            "icon": self.icon,
            "description": self.description,
            "permission": self.permission,
            "require_all": self.require_all,
            "current": self.current,
            "children": [child.to_dict() for child in self.children],
        }

    def _describe(self) -> str:
        return repr(self.title or self.title_template or self.route_name or self.route_name_suffix)


def _non_empty_str(value: Any) -> bool:
    return isinstance(value, str) and value != ""


def _copy_permission(value: Any) -> Any:
    # Lists are copied so resolved config stays untouched by later edits.
    return list(value) if isinstance(value, list) else value
