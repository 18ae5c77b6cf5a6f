"""
client/navfilter.py -- UX-only mirror of the server navigation filter.

Works on the JSON shape the browser receives (mappings with permission,
require_all / requireAll, children / items and a route_name or href) against
a ClientSnapshot. The gate is the same as nav/filter.py:

  no requirement              pass
  no snapshot                 deny anything that has a requirement
  privileged snapshot         pass
  single name                 name in snapshot.permissions
  list, require_all=False     any name held
  list, require_all=True      every name held

A denied item drops its whole subtree. An allowed group is kept only if it
has its own target or a surviving child. Every returned item carries its
surviving children under "children", leaves included, and never "items".
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from client.snapshot import ClientSnapshot

_REQUIRE_ALL_KEYS = ("require_all", "requireAll", "require_all_permissions")
_TARGET_KEYS = ("route_name", "route_name_suffix", "href")


def user_has_permission(
    snapshot: ClientSnapshot | None,
    permission: str | list[str] | tuple[str, ...] | None,
    require_all: bool = False,
) -> bool:
    required = _as_names(permission)
    if not required:
        return True
    if snapshot is None:
        return False
    if snapshot.is_privileged:
        return True
    if require_all:
        return all(name in snapshot.permissions for name in required)
    return any(name in snapshot.permissions for name in required)


def process_nav_items(items: Iterable[Mapping[str, Any]], snapshot: ClientSnapshot | None) -> list[dict[str, Any]]:
    visible: list[dict[str, Any]] = []
    for item in items:
        require_all = bool(next((item[k] for k in _REQUIRE_ALL_KEYS if k in item), False))
        if not user_has_permission(snapshot, item.get("permission"), require_all):
            continue
        children = item.get("children", item.get("items")) or []
        kept = process_nav_items(children, snapshot) if children else []
        if children and not kept and not _has_target(item):
            continue
        copy = {k: v for k, v in item.items() if k != "items"}
        copy["children"] = kept
        visible.append(copy)
    return visible


def _as_names(permission: Any) -> tuple[str, ...]:
    if permission is None or permission == "":
        return ()
    if isinstance(permission, str):
        return (permission,)
    return tuple(permission)


def _has_target(item: Mapping[str, Any]) -> bool:
    return any(isinstance(item.get(k), str) and item.get(k) for k in _TARGET_KEYS)
