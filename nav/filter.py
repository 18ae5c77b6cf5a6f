"""
nav/filter.py -- Server-side permission pruning of navigation item trees.

This is the enforcement-side filter: every gate decision goes through the
CrossGuardAuthorizer. client/navfilter.py mirrors the same gate against a
hydration snapshot for rendering only.

Gate per item:
  no requirement              pass
  single name                 has_permission
  list, require_all=False     has_any_permission
  list, require_all=True      has_permission for every name

A denied item is dropped together with its whole subtree (children of a
denied group are never evaluated). An allowed item with children is kept only
if it has its own target or at least one child survives. Survivor order
follows input order. Input items are never mutated; survivors are copies.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import replace

from auth.authorizer import CrossGuardAuthorizer
from auth.models import Principal
from nav.models import NavItemSpec


class NavItemFilter:
    def __init__(self, authorizer: CrossGuardAuthorizer) -> None:
        self._authorizer = authorizer

    def allows(self, item: NavItemSpec, principal: Principal | None) -> bool:
        """Evaluate the item's own gate. Unauthenticated callers pass ungated items only."""
        required = item.required_permissions
        if not required:
            return True
        if principal is None:
            return False
        if len(required) == 1:
            return self._authorizer.has_permission(principal, required[0])
        if item.require_all:
            return all(self._authorizer.has_permission(principal, name) for name in required)
        return self._authorizer.has_any_permission(principal, required)

    def filter(self, items: Iterable[NavItemSpec], principal: Principal | None) -> list[NavItemSpec]:
        survivors: list[NavItemSpec] = []
        for item in items:
            if not self.allows(item, principal):
                continue
            if not item.children:
                survivors.append(replace(item, route_params=dict(item.route_params)))
                continue
            children = self.filter(item.children, principal)
            if children or item.has_target:
                survivors.append(replace(item, route_params=dict(item.route_params), children=children))
        return survivors
