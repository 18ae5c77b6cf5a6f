"""
auth/authorizer.py -- Cross-guard permission and role resolution.

CrossGuardAuthorizer is the single source of truth for "may this principal do
X?" on the server. It answers by trying every guard of the GuardSet in a fixed
order and OR-ing the results:

  has_permission       privileged bypass, else any guard grants the name
  has_any_permission   short-circuit OR over has_permission
  has_role             any of the given roles in any guard
  all_permission_names universe for privileged principals, else granted names

Privileged rule: a principal holding ADMIN or DEV in ANY guard passes every
permission check. The role check is itself memoized, so a burst of
has_permission calls for a privileged principal costs one role lookup.

Missing definitions: if a permission does not exist in a guard, that guard
answers "no" and the loop continues. It is logged at debug level and never
raised. Any other store failure (StorageLookupFailure) propagates untouched
and is never cached -- callers decide whether to fail the request or deny.

Caching: every query goes through the injected cache's get_or_compute under
(principal_id, kind, key). List arguments are normalized to a sorted,
de-duplicated tuple so argument order never causes a miss.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from auth.models import Principal
from auth.store import PermissionStore
from cache.store import AuthorizationCache, NullCache
from core.guards import PRIVILEGED_ROLES, GuardSet

logger = logging.getLogger("staffportal.authz")


def normalize_names(names: str | Iterable[str]) -> tuple[str, ...]:
    """Sorted, de-duplicated tuple of names; a bare string counts as one name."""
    if isinstance(names, str):
        return (names,)
    return tuple(sorted(set(names)))


class CrossGuardAuthorizer:
    """Memoizing, multi-guard authorization resolver.

    Usage:
        cache = AuthorizationCache(ttl=600, generations=store)
        authorizer = CrossGuardAuthorizer(store, cache, GuardSet.from_settings())
        if authorizer.has_permission(principal, "access-admin"):
            ...
    """

    def __init__(
        self,
        store: PermissionStore,
        cache: AuthorizationCache | NullCache | None = None,
        guards: GuardSet | None = None,
    ) -> None:
        self._store = store
        self._cache = cache if cache is not None else NullCache()
        self._guards = guards if guards is not None else GuardSet.from_settings()

    @property
    def guards(self) -> GuardSet:
        return self._guards

    # ------------------------------------------------------------------
    # Permission checks
    # ------------------------------------------------------------------

    def has_permission(self, principal: Principal, name: str) -> bool:
        return self._cache.get_or_compute(
            (principal.id, "permission", name),
            lambda: self._resolve_permission(principal, name),
        )

    def has_any_permission(self, principal: Principal, names: Iterable[str]) -> bool:
        key = normalize_names(names)
        return self._cache.get_or_compute(
            (principal.id, "any-permission", key),
            lambda: any(self.has_permission(principal, name) for name in key),
        )

    def _resolve_permission(self, principal: Principal, name: str) -> bool:
        if self.is_privileged(principal):
            return True
        for guard in self._guards:
            if self._permission_in_guard(principal, name, guard):
                return True
        return False

    def _permission_in_guard(self, principal: Principal, name: str, guard: str) -> bool:
        if self._store.find_permission(name, guard) is None:
            logger.debug("Permission %r is not defined for guard %r", name, guard)
            return False
        if name in principal.direct_permission_names(guard):
            return True
        for role_name in principal.role_names(guard):
            role = self._store.find_role(role_name, guard)
            if role is not None and name in role.permission_names:
                return True
        return False

    # ------------------------------------------------------------------
    # Role checks
    # ------------------------------------------------------------------

    def has_role(self, principal: Principal, role_names: str | Iterable[str]) -> bool:
        """True if the principal holds ANY of role_names in ANY guard."""
        key = normalize_names(role_names)
        return self._cache.get_or_compute(
            (principal.id, "role-set", key),
            lambda: any(principal.role_names(guard) & set(key) for guard in self._guards),
        )

    def is_privileged(self, principal: Principal) -> bool:
        return self.has_role(principal, PRIVILEGED_ROLES)

    # ------------------------------------------------------------------
    # Permission listings
    # ------------------------------------------------------------------

    def all_permission_names(self, principal: Principal) -> frozenset[str]:
        """Every name the principal may use: the whole universe when privileged."""
        return self._cache.get_or_compute(
            (principal.id, "all-permissions", ""),
            lambda: frozenset(
                self._store.all_permission_names()
                if self.is_privileged(principal)
                else self.granted_permission_names(principal)
            ),
        )

    def granted_permission_names(self, principal: Principal) -> frozenset[str]:
        """Names reachable through role membership and direct grants, never the universe.

        This is what the client hydration payload carries: the privileged
        bypass is signalled separately so the client never receives the full
        permission catalogue.
        """
        return self._cache.get_or_compute(
            (principal.id, "granted-permissions", ""),
            lambda: frozenset(self._collect_granted(principal)),
        )

    def _collect_granted(self, principal: Principal) -> set[str]:
        names: set[str] = set()
        for guard in self._guards:
            names |= principal.direct_permission_names(guard)
            for role_name in principal.role_names(guard):
                role = self._store.find_role(role_name, guard)
                if role is None:
                    logger.debug("Role %r is not defined for guard %r", role_name, guard)
                    continue
                names |= role.permission_names
        return names

    # ------------------------------------------------------------------
    # Invalidation
    # ------------------------------------------------------------------

    def forget_principal(self, principal_id: int) -> None:
        removed = self._cache.forget_principal(principal_id)
        logger.debug("Forgot %d cached decisions for principal %s", removed, principal_id)

    def flush(self) -> None:
        self._cache.flush()
