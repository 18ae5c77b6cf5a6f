"""
auth/sync.py -- Maintenance routines that mutate role/permission facts.

GuardSyncService.sync_across_guards(guards) makes every listed guard carry an
equivalent set of permissions and roles:

  1. Permissions: every name present in at least one listed guard is created
     in every listed guard where it is missing. Nothing is ever deleted.
  2. Roles: every role name present in at least one listed guard is created
     where missing. The template instance is the one in the first listed
     guard (else the first one found). A role created by this run receives
     the template's permission names, resolved against its own guard's
     permission records. Roles that already existed keep their permissions.
  3. The whole authorization cache is flushed before returning, which also
     bumps the shared generation so other processes drop their decisions.

There is no cross-guard transaction. Each step is insert-if-missing, so a
second successful run reports no changes. A run that fails between creating a
role and filling it leaves that role empty; a retry will not fill it, so fix
it with sync_role_permissions().

sync_principal_roles() is the administrative "assign roles to a user"
operation; it forgets only that principal's cached decisions.

Run from the operator CLI:  python main.py sync-guards --guards web sanctum
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from auth.authorizer import CrossGuardAuthorizer
from auth.models import Role
from auth.store import PermissionStore
from cache.store import AuthorizationCache, NullCache

logger = logging.getLogger("staffportal.sync")


@dataclass
class SyncReport:
    """What a sync run changed. Empty lists mean the guards were already in sync."""

    guards: list[str]
    permissions_created: list[tuple[str, str]] = field(default_factory=list)  # (name, guard)
    roles_created: list[tuple[str, str]] = field(default_factory=list)
    roles_synced: list[tuple[str, str]] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.permissions_created or self.roles_created or self.roles_synced)


class GuardSyncService:
    def __init__(self, store: PermissionStore, cache: AuthorizationCache | NullCache) -> None:
        self._store = store
        self._cache = cache

    def sync_across_guards(self, guards: Iterable[str]) -> SyncReport:
        """Reconcile permissions and roles across guards, then flush the cache.

        Raises ValueError if fewer than two distinct guards are given.
        StorageLookupFailure from the store propagates; the cache is still
        flushed in that case because some writes may already have landed.
        """
        guard_list = list(dict.fromkeys(guards))
        if len(guard_list) < 2:
            raise ValueError(f"Need at least two distinct guards to sync, got {guard_list!r}")

        report = SyncReport(guards=guard_list)
        try:
            self._sync_permissions(guard_list, report)
            self._sync_roles(guard_list, report)
        finally:
            self._cache.flush()

        logger.info(
            "Guard sync %s: %d permission(s) created, %d role(s) created, %d role permission set(s) replaced",
            "+".join(guard_list),
            len(report.permissions_created),
            len(report.roles_created),
            len(report.roles_synced),
        )
        return report

    def _sync_permissions(self, guards: list[str], report: SyncReport) -> None:
        present: dict[str, set[str]] = {}
        for permission in self._store.list_permissions(guards):
            present.setdefault(permission.name, set()).add(permission.guard)

        for name, existing in present.items():
            for guard in guards:
                if guard in existing:
                    continue
                if self._store.create_permission(name, guard):
                    report.permissions_created.append((name, guard))
                    logger.debug("Created permission %r for guard %r", name, guard)

    def _sync_roles(self, guards: list[str], report: SyncReport) -> None:
        grouped: dict[str, dict[str, Role]] = {}
        for role in self._store.list_roles(guards):
            grouped.setdefault(role.name, {})[role.guard] = role

        for name, by_guard in grouped.items():
            template = by_guard.get(guards[0]) or next(iter(by_guard.values()))
            for guard in guards:
                if guard == template.guard:
                    continue
                if not self._store.create_role(name, guard):
                    continue
                report.roles_created.append((name, guard))
                logger.debug("Created role %r for guard %r", name, guard)
                if self._store.sync_role_permissions(name, guard, template.permission_names):
                    report.roles_synced.append((name, guard))


def sync_principal_roles(
    store: PermissionStore,
    authorizer: CrossGuardAuthorizer,
    principal_id: int,
    guard: str,
    role_names: Iterable[str],
) -> bool:
    """Replace a principal's roles in one guard and forget its cached decisions.

    Returns True if the assignment changed. Raises ValueError for roles that
    do not exist in guard.
    """
    changed = store.sync_principal_roles(principal_id, guard, role_names)
    if changed:
        authorizer.forget_principal(principal_id)
        logger.info("Roles for principal %s in guard %r replaced", principal_id, guard)
    return changed
