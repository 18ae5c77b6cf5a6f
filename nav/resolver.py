"""
nav/resolver.py -- $ref: resolution for declarative navigation configuration.

Module configs reuse blocks by pointer instead of copy/paste:

    nav_components:
      links:
        panel: {title: Admin, route_name_suffix: panel, permission: access-admin}
      groups:
        user_management: ["$ref:nav_components.links.panel", ...]
    contextual_nav:
      default: ["$ref:nav_components.groups.user_management"]

Rules:
  - A string "$ref:<dot.path>" is replaced by a fresh copy of the node at that
    path, always dereferenced from the root of the RAW config, so the result
    does not depend on the order in which siblings are visited.
  - A ref that is a list element and points at a list is spliced in place
    instead of nesting.
  - Refs to refs are followed transitively, up to max_depth hops.
  - The resolver keeps the stack of ref paths currently being expanded. A ref
    already on that stack is a cycle. Diamonds (two refs to one node from
    different places) are legal because siblings do not share a stack.
  - Unresolvable paths, cycles and depth overflow raise ConfigurationError.
    Nothing is silently left unresolved or truncated.
  - Short roots: "links.x" and "groups.x" fall back to "nav_components.links.x"
    and "nav_components.groups.x" when the direct path does not exist.
  - Path segments match keys that contain dots ("$ref:breadcrumbs.users.index"
    finds the "users.index" key) and numeric segments index into lists.
  - Mapping key order is preserved. The input is never mutated.
"""

from __future__ import annotations

import copy
from collections.abc import Mapping
from typing import Any

from core.errors import ConfigurationError

REF_PREFIX = "$ref:"
DEFAULT_MAX_DEPTH = 10

_SHORT_ROOTS = {"links": "nav_components", "groups": "nav_components"}

_NOT_FOUND = object()


def is_ref(value: Any) -> bool:
    return isinstance(value, str) and value.startswith(REF_PREFIX)


class NavConfigResolver:
    def __init__(self, max_depth: int = DEFAULT_MAX_DEPTH) -> None:
        if max_depth < 1:
            raise ValueError("max_depth must be at least 1")
        self.max_depth = max_depth

    def resolve(self, raw_config: Mapping[str, Any]) -> dict[str, Any]:
        """Return a new config tree with every $ref: substituted."""
        if not isinstance(raw_config, Mapping):
            raise ConfigurationError(f"Navigation config root must be a mapping, got {type(raw_config).__name__}")
        return self._resolve(raw_config, raw_config, ())

    def resolve_node(self, node: Any, raw_config: Mapping[str, Any]) -> Any:
        """Resolve one node (e.g. a single breadcrumb list) against raw_config."""
        return self._resolve(node, raw_config, ())

    def _resolve(self, node: Any, root: Mapping[str, Any], stack: tuple[str, ...]) -> Any:
        if is_ref(node):
            return self._follow(node, root, stack)
        if isinstance(node, Mapping):
            return {key: self._resolve(value, root, stack) for key, value in node.items()}
        if isinstance(node, list):
            resolved: list[Any] = []
            for element in node:
                value = self._resolve(element, root, stack)
                if is_ref(element) and isinstance(value, list):
                    resolved.extend(value)
                else:
                    resolved.append(value)
            return resolved
        return copy.deepcopy(node)

    def _follow(self, ref: str, root: Mapping[str, Any], stack: tuple[str, ...]) -> Any:
        path = ref[len(REF_PREFIX) :].strip()
        if not path:
            raise ConfigurationError(f"Empty reference {ref!r}")
        if path in stack:
            chain = " -> ".join((*stack, path))
            raise ConfigurationError(f"Reference cycle detected: {chain}")
        if len(stack) >= self.max_depth:
            chain = " -> ".join((*stack, path))
            raise ConfigurationError(f"Reference depth exceeds {self.max_depth}: {chain}")
        target = self._lookup(path, root)
        return self._resolve(target, root, (*stack, path))

    @staticmethod
    def _lookup(path: str, root: Mapping[str, Any]) -> Any:
        parts = path.split(".")
        value = _walk(root, parts)
        if value is _NOT_FOUND and parts[0] in _SHORT_ROOTS:
            value = _walk(root, [_SHORT_ROOTS[parts[0]], *parts])
        if value is _NOT_FOUND:
            raise ConfigurationError(f"Unresolved reference '{REF_PREFIX}{path}'")
        return value


def _walk(node: Any, parts: list[str]) -> Any:
    # Keys may contain dots themselves (route suffixes such as "users.index"),
    # so at each level every prefix of the remaining parts is tried as a key.
    if not parts:
        return node
    if isinstance(node, Mapping):
        for size in range(1, len(parts) + 1):
            key = ".".join(parts[:size])
            if key in node:
                value = _walk(node[key], parts[size:])
                if value is not _NOT_FOUND:
                    return value
        return _NOT_FOUND
    if isinstance(node, list) and parts[0].isdigit() and int(parts[0]) < len(node):
        return _walk(node[int(parts[0])], parts[1:])
    return _NOT_FOUND
