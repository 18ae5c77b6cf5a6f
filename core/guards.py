"""
core/guards.py -- Authentication guards and the privileged-role rule.

A guard is a named authentication context (staff, web, sanctum) under which
roles and permissions are scoped independently. Cross-guard checks walk the
GuardSet in its declared order and OR the per-guard results.

PRIVILEGED_ROLES is a global invariant, not a per-call option: a principal
holding ADMIN or DEV in any guard bypasses every specific permission check.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass

from core.config import get_settings

SUPER_ADMIN_ROLE = "ADMIN"
DEVELOPER_ROLE = "DEV"
PRIVILEGED_ROLES: frozenset[str] = frozenset({SUPER_ADMIN_ROLE, DEVELOPER_ROLE})


@dataclass(frozen=True)
class GuardSet:
    """Ordered, immutable list of guard names."""

    names: tuple[str, ...]

    def __post_init__(self) -> None:
        if not self.names:
            raise ValueError("GuardSet requires at least one guard.")

    @classmethod
    def of(cls, names: Iterable[str]) -> "GuardSet":
        # dict.fromkeys drops duplicates but keeps first-seen order
        return cls(tuple(dict.fromkeys(names)))

    @classmethod
    def from_settings(cls) -> "GuardSet":
        return cls.of(get_settings().guards)

    def __iter__(self) -> Iterator[str]:
        return iter(self.names)

    def __contains__(self, guard: object) -> bool:
        return guard in self.names

    def __len__(self) -> int:
        return len(self.names)
