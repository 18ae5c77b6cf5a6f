"""
auth/store.py -- SQLAlchemy Core persistence layer for permissions, roles and principals.

Pattern: Repository + Data Mapper. PermissionStore is the repository;
_row_to_permission / _row_to_principal are the mappers. The authorizer,
the sync service and the API never touch SQL directly.

Tables:
  permissions                (name, guard_name) unique
  roles                      (name, guard_name) unique
  role_has_permissions       role_id -> permission_id
  principals                 staff identities with a home guard
  principal_has_roles        principal_id -> role_id
  principal_has_permissions  principal_id -> permission_id (direct grants)
  authz_cache_state          single row holding the authorization cache generation

Failure semantics:
  "Not found" is a normal answer (None / empty set), never an exception.
  Any SQLAlchemyError is wrapped in StorageLookupFailure and propagated, so
  callers can fail closed without importing SQLAlchemy.

Idempotence:
  create_permission / create_role are insert-if-missing; a concurrent insert
  that loses the UNIQUE race is treated as "already exists". Permission-set
  replacement only writes when the set actually differs.

Security:
  All queries use bound parameters. No f-strings in SQL.

Layer rule: no imports from api/, nav/, client/, or cache/.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    Integer,
    MetaData,
    String,
    Table,
    UniqueConstraint,
    create_engine,
    event,
    select,
)
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.models import Permission, Principal, Role
from core.config import get_settings
from core.errors import StorageLookupFailure

logger = logging.getLogger("staffportal.store")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_permissions = Table(
    "permissions",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(125), nullable=False),
    Column("guard_name", String(125), nullable=False),
    Column("created_at", String(32), nullable=False),
    UniqueConstraint("name", "guard_name", name="uq_permissions_name_guard"),
)

_roles = Table(
    "roles",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(125), nullable=False),
    Column("guard_name", String(125), nullable=False),
    Column("created_at", String(32), nullable=False),
    UniqueConstraint("name", "guard_name", name="uq_roles_name_guard"),
)

_role_has_permissions = Table(
    "role_has_permissions",
    _metadata,
    Column("role_id", Integer, primary_key=True),
    Column("permission_id", Integer, primary_key=True),
)

_principals = Table(
    "principals",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(255), nullable=False, unique=True),
    Column("guard_name", String(125), nullable=False),
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("created_at", String(32), nullable=False),
)

_principal_has_roles = Table(
    "principal_has_roles",
    _metadata,
    Column("principal_id", Integer, primary_key=True),
    Column("role_id", Integer, primary_key=True),
)

_principal_has_permissions = Table(
    "principal_has_permissions",
    _metadata,
    Column("principal_id", Integer, primary_key=True),
    Column("permission_id", Integer, primary_key=True),
)

# Bumped by every cache flush so the CLI and each API worker drop decisions
# cached before the flush, whichever process ran it.
_authz_cache_state = Table(
    "authz_cache_state",
    _metadata,
    Column("id", Integer, primary_key=True),
    Column("generation", Integer, nullable=False, server_default="0"),
)


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers never block behind a sync run."""
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class PermissionStore:
    """Repository for Permission, Role and Principal records.

    Usage:
        store = PermissionStore()
        store.create_permission("access-admin", "staff")
        store.create_role("ADMIN", "staff")
        store.sync_role_permissions("ADMIN", "staff", ["access-admin"])
        store.close()
    """

    def __init__(self, db_url: str | None = None) -> None:
        db_url = db_url or get_settings().permission_db_url
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        try:
            _metadata.create_all(self.engine)
        except SQLAlchemyError as exc:
            raise StorageLookupFailure(f"Could not initialise permission store: {exc}") from exc

    @contextmanager
    def _connect(self) -> Iterator[Connection]:
        """Yield a connection; translate backend errors into StorageLookupFailure."""
        try:
            with self.engine.connect() as conn:
                yield conn
        except SQLAlchemyError as exc:
            raise StorageLookupFailure(str(exc)) from exc

    # ------------------------------------------------------------------
    # Permission queries
    # ------------------------------------------------------------------

    def find_permission(self, name: str, guard: str) -> Permission | None:
        """Return the permission record for (name, guard), or None if it is not defined there."""
        with self._connect() as conn:
            row = conn.execute(
                _permissions.select().where((_permissions.c.name == name) & (_permissions.c.guard_name == guard))
            ).fetchone()
        return _row_to_permission(row) if row is not None else None

    def all_permission_names(self) -> set[str]:
        """Every defined permission name, de-duplicated across guards."""
        with self._connect() as conn:
            names = conn.execute(select(_permissions.c.name).distinct()).scalars().all()
        return set(names)

    def list_permissions(self, guards: Iterable[str] | None = None) -> list[Permission]:
        """Return permissions (optionally restricted to some guards) in creation order."""
        query = _permissions.select().order_by(_permissions.c.id)
        if guards is not None:
            query = query.where(_permissions.c.guard_name.in_(list(guards)))
        with self._connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_permission(r) for r in rows]

    def create_permission(self, name: str, guard: str) -> bool:
        """Create (name, guard) if missing. Returns True only when a row was inserted."""
        with self._connect() as conn:
            exists = conn.execute(
                select(_permissions.c.id).where((_permissions.c.name == name) & (_permissions.c.guard_name == guard))
            ).first()
            if exists is not None:
                return False
            try:
                conn.execute(_permissions.insert().values(name=name, guard_name=guard, created_at=_now_iso()))
                conn.commit()
            except IntegrityError:
                # Lost the race against a concurrent insert of the same pair.
                conn.rollback()
                return False
        return True

    # ------------------------------------------------------------------
    # Role queries
    # ------------------------------------------------------------------

    def find_role(self, name: str, guard: str) -> Role | None:
        """Return the role with its permission names, or None if it is not defined in guard."""
        with self._connect() as conn:
            row = conn.execute(
                _roles.select().where((_roles.c.name == name) & (_roles.c.guard_name == guard))
            ).fetchone()
            if row is None:
                return None
            names = self._role_permission_names(conn, [row.id]).get(row.id, frozenset())
        return Role(name=row.name, guard=row.guard_name, permission_names=names, id=row.id)

    def list_roles(self, guards: Iterable[str] | None = None) -> list[Role]:
        """Return roles (optionally restricted to some guards) with their permission names."""
        query = _roles.select().order_by(_roles.c.id)
        if guards is not None:
            query = query.where(_roles.c.guard_name.in_(list(guards)))
        with self._connect() as conn:
            rows = conn.execute(query).fetchall()
            perms = self._role_permission_names(conn, [r.id for r in rows])
        return [
            Role(name=r.name, guard=r.guard_name, permission_names=perms.get(r.id, frozenset()), id=r.id) for r in rows
        ]

    def create_role(self, name: str, guard: str) -> bool:
        """Create (name, guard) if missing. Returns True only when a row was inserted."""
        with self._connect() as conn:
            exists = conn.execute(
                select(_roles.c.id).where((_roles.c.name == name) & (_roles.c.guard_name == guard))
            ).first()
            if exists is not None:
                return False
            try:
                conn.execute(_roles.insert().values(name=name, guard_name=guard, created_at=_now_iso()))
                conn.commit()
            except IntegrityError:
                conn.rollback()
                return False
        return True

    def sync_role_permissions(self, role_name: str, guard: str, permission_names: Iterable[str]) -> bool:
        """Replace a role's permission set with the given names resolved in the role's guard.

        Names that have no permission record in that guard are skipped (debug
        log), matching how a missing definition is a per-guard negative signal.
        Returns True if the stored set changed, False if it already matched.

        Raises ValueError if the role does not exist in guard.
        """
        wanted = set(permission_names)
        with self._connect() as conn:
            role_id = conn.execute(
                select(_roles.c.id).where((_roles.c.name == role_name) & (_roles.c.guard_name == guard))
            ).scalar()
            if role_id is None:
                raise ValueError(f"Role {role_name!r} does not exist for guard {guard!r}")

            target = {
                row.name: row.id
                for row in conn.execute(
                    select(_permissions.c.id, _permissions.c.name).where(
                        (_permissions.c.guard_name == guard) & (_permissions.c.name.in_(list(wanted)))
                    )
                )
            }
            for missing in sorted(wanted - target.keys()):
                logger.debug("Permission %r not defined for guard %r; skipped for role %r", missing, guard, role_name)

            current = set(
                conn.execute(
                    select(_role_has_permissions.c.permission_id).where(_role_has_permissions.c.role_id == role_id)
                ).scalars()
            )
            if current == set(target.values()):
                return False

            conn.execute(_role_has_permissions.delete().where(_role_has_permissions.c.role_id == role_id))
            if target:
                conn.execute(
                    _role_has_permissions.insert(),
                    [{"role_id": role_id, "permission_id": pid} for pid in target.values()],
                )
            conn.commit()
        return True

    # ------------------------------------------------------------------
    # Principal queries
    # ------------------------------------------------------------------

    def create_principal(self, username: str, guard: str, is_active: bool = True) -> int:
        """Insert a principal and return its ID.

        Raises StorageLookupFailure (wrapping IntegrityError) if the username exists.
        """
        with self._connect() as conn:
            result = conn.execute(
                _principals.insert().values(
                    username=username,
                    guard_name=guard,
                    is_active=1 if is_active else 0,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_principal(self, principal_id: int) -> Principal | None:
        """Load a principal with its role and direct-permission assignments per guard."""
        with self._connect() as conn:
            row = conn.execute(_principals.select().where(_principals.c.id == principal_id)).fetchone()
            if row is None:
                return None
            role_rows = conn.execute(
                select(_roles.c.name, _roles.c.guard_name)
                .select_from(_principal_has_roles.join(_roles, _roles.c.id == _principal_has_roles.c.role_id))
                .where(_principal_has_roles.c.principal_id == principal_id)
            ).fetchall()
            perm_rows = conn.execute(
                select(_permissions.c.name, _permissions.c.guard_name)
                .select_from(
                    _principal_has_permissions.join(
                        _permissions, _permissions.c.id == _principal_has_permissions.c.permission_id
                    )
                )
                .where(_principal_has_permissions.c.principal_id == principal_id)
            ).fetchall()
        return _row_to_principal(row, role_rows, perm_rows)

    def sync_principal_roles(self, principal_id: int, guard: str, role_names: Iterable[str]) -> bool:
        """Replace the principal's roles in one guard. Roles in other guards are untouched.

        Returns True if the assignment changed. Raises ValueError naming any role
        that does not exist in guard -- unknown roles are a caller error here,
        unlike authorization checks where absence is a negative signal.
        """
        wanted = set(role_names)
        with self._connect() as conn:
            guard_roles = {
                row.name: row.id
                for row in conn.execute(select(_roles.c.id, _roles.c.name).where(_roles.c.guard_name == guard))
            }
            unknown = wanted - guard_roles.keys()
            if unknown:
                raise ValueError(f"Unknown roles for guard {guard!r}: {sorted(unknown)!r}")

            guard_role_ids = list(guard_roles.values())
            current = set(
                conn.execute(
                    select(_principal_has_roles.c.role_id).where(
                        (_principal_has_roles.c.principal_id == principal_id)
                        & (_principal_has_roles.c.role_id.in_(guard_role_ids))
                    )
                ).scalars()
            )
            target = {guard_roles[name] for name in wanted}
            if current == target:
                return False

            conn.execute(
                _principal_has_roles.delete().where(
                    (_principal_has_roles.c.principal_id == principal_id)
                    & (_principal_has_roles.c.role_id.in_(guard_role_ids))
                )
            )
            if target:
                conn.execute(
                    _principal_has_roles.insert(),
                    [{"principal_id": principal_id, "role_id": rid} for rid in target],
                )
            conn.commit()
        return True

    def give_permission_to_principal(self, principal_id: int, name: str, guard: str) -> None:
        """Grant a permission directly (not via a role). Raises ValueError if it is not defined in guard."""
        with self._connect() as conn:
            permission_id = conn.execute(
                select(_permissions.c.id).where((_permissions.c.name == name) & (_permissions.c.guard_name == guard))
            ).scalar()
            if permission_id is None:
                raise ValueError(f"Permission {name!r} does not exist for guard {guard!r}")
            already = conn.execute(
                select(_principal_has_permissions.c.permission_id).where(
                    (_principal_has_permissions.c.principal_id == principal_id)
                    & (_principal_has_permissions.c.permission_id == permission_id)
                )
            ).first()
            if already is None:
                conn.execute(
                    _principal_has_permissions.insert().values(principal_id=principal_id, permission_id=permission_id)
                )
                conn.commit()

    def set_principal_active(self, principal_id: int, is_active: bool) -> bool:
        """Returns True if a row was updated, False if principal_id was not found."""
        with self._connect() as conn:
            result = conn.execute(
                _principals.update().where(_principals.c.id == principal_id).values(is_active=1 if is_active else 0)
            )
            conn.commit()
        return result.rowcount > 0

    def ping(self) -> bool:
        """True when the database answers a trivial query."""
        try:
            with self._connect() as conn:
                conn.execute(select(1))
        except StorageLookupFailure:
            return False
        return True

    # ------------------------------------------------------------------
    # Cache generation
    # ------------------------------------------------------------------

    def cache_generation(self) -> int:
        """Current authorization cache generation; 0 before the first flush."""
        with self._connect() as conn:
            value = conn.execute(
                select(_authz_cache_state.c.generation).where(_authz_cache_state.c.id == 1)
            ).scalar()
        return int(value or 0)

    def bump_cache_generation(self) -> int:
        """Advance the shared generation and return the new value."""
        with self._connect() as conn:
            updated = conn.execute(
                _authz_cache_state.update()
                .where(_authz_cache_state.c.id == 1)
                .values(generation=_authz_cache_state.c.generation + 1)
            )
            if updated.rowcount == 0:
                try:
                    conn.execute(_authz_cache_state.insert().values(id=1, generation=1))
                except IntegrityError:
                    conn.rollback()
                    # Another process created the row first; count on top of it.
                    conn.execute(
                        _authz_cache_state.update()
                        .where(_authz_cache_state.c.id == 1)
                        .values(generation=_authz_cache_state.c.generation + 1)
                    )
            conn.commit()
            value = conn.execute(
                select(_authz_cache_state.c.generation).where(_authz_cache_state.c.id == 1)
            ).scalar()
        return int(value)

    def close(self) -> None:
        self.engine.dispose()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _role_permission_names(conn: Connection, role_ids: list[int]) -> dict[int, frozenset[str]]:
        if not role_ids:
            return {}
        rows = conn.execute(
            select(_role_has_permissions.c.role_id, _permissions.c.name)
            .select_from(
                _role_has_permissions.join(_permissions, _permissions.c.id == _role_has_permissions.c.permission_id)
            )
            .where(_role_has_permissions.c.role_id.in_(role_ids))
        ).fetchall()
        grouped: dict[int, set[str]] = {}
        for row in rows:
            grouped.setdefault(row.role_id, set()).add(row.name)
        return {role_id: frozenset(names) for role_id, names in grouped.items()}


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_permission(row) -> Permission:
    return Permission(name=row.name, guard=row.guard_name, id=row.id)


def _row_to_principal(row, role_rows, perm_rows) -> Principal:
    roles: dict[str, set[str]] = {}
    for r in role_rows:
        roles.setdefault(r.guard_name, set()).add(r.name)
    permissions: dict[str, set[str]] = {}
    for p in perm_rows:
        permissions.setdefault(p.guard_name, set()).add(p.name)
    return Principal(
        id=row.id,
        username=row.username,
        guard=row.guard_name,
        roles=roles,
        permissions=permissions,
        is_active=bool(row.is_active),
        created_at=row.created_at,
    )
