"""
auth/models.py -- Domain dataclasses for authorization entities.

Pattern: Data class (pure data container, zero authorization logic). The
CrossGuardAuthorizer takes a Principal as input; it is never mixed into it.

Layer rule: no imports from api/, nav/, client/, or cache/.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class Permission:
    """A permission name scoped to exactly one guard. Identity = (name, guard)."""

    name: str
    guard: str
    id: int | None = None


@dataclass(frozen=True)
class Role:
    """A role scoped to one guard, holding permission names resolved in that guard."""

    name: str
    guard: str
    permission_names: frozenset[str] = frozenset()
    id: int | None = None


@dataclass
class Principal:
    """An authenticated staff member as seen by the authorization core.

    roles / permissions map guard name -> names assigned in that guard.
    permissions holds direct grants only; role-derived permissions are
    resolved by the authorizer against the store.

    is_active is enforced by the authentication layer (auth/dependencies.py),
    not by the authorizer.
    """

    id: int
    username: str
    guard: str
    roles: dict[str, set[str]] = field(default_factory=dict)
    permissions: dict[str, set[str]] = field(default_factory=dict)
    is_active: bool = True
    created_at: str | None = None

    def role_names(self, guard: str) -> set[str]:
        return set(self.roles.get(guard, ()))

    def direct_permission_names(self, guard: str | None = None) -> set[str]:
        """Directly granted names in one guard, or across all guards when guard is None."""
        if guard is not None:
            return set(self.permissions.get(guard, ()))
        names: set[str] = set()
        for granted in self.permissions.values():
            names |= granted
        return names

    def all_role_names(self) -> set[str]:
        names: set[str] = set()
        for assigned in self.roles.values():
            names |= assigned
        return names
