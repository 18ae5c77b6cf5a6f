#!/usr/bin/env python3
"""
Staff portal core -- operator CLI.

Usage:
  python main.py sync-guards
  python main.py sync-guards --guards web sanctum
  python main.py check-config
  python main.py can 42 access-admin
  python main.py can 42 access-module-01 access-module-02 --all
  python main.py nav 42 --module admin --route internal.admin.users.index
  python main.py serve --port 8000

Environment variables (see core/config.py):
  PERMISSION_DB_URL   SQLAlchemy URL of the permission store
  GUARDS              JSON list, cross-guard check order
  SYNC_GUARDS         JSON list, default guards for sync-guards
  CONFIG_DIR          directory holding navigation.yaml and modules/
"""

import argparse
import json
import logging
import sys

from auth.authorizer import CrossGuardAuthorizer
from auth.store import PermissionStore
from auth.sync import GuardSyncService
from cache.store import AuthorizationCache
from core.config import get_settings
from core.errors import ConfigurationError, StorageLookupFailure
from core.guards import GuardSet
from nav.builder import NavigationBuilder
from nav.registry import ModuleRegistry

logger = logging.getLogger("staffportal.cli")


def _cmd_sync_guards(args: argparse.Namespace) -> int:
    guards = args.guards or get_settings().sync_guards
    store = PermissionStore()
    try:
        report = GuardSyncService(store, AuthorizationCache(generations=store)).sync_across_guards(guards)
    except ValueError as e:
        print(f"  [!] {e}")
        return 2
    finally:
        store.close()

    print(f"Guard sync: {' + '.join(report.guards)}")
    print("─" * 40)
    for name, guard in report.permissions_created:
        print(f"  + permission {name} [{guard}]")
    for name, guard in report.roles_created:
        print(f"  + role {name} [{guard}]")
    for name, guard in report.roles_synced:
        print(f"  ~ role {name} [{guard}] permissions replaced")
    if not report.changed:
        print("  Guards already in sync.")
    return 0


def _cmd_check_config(args: argparse.Namespace) -> int:
    try:
        registry = ModuleRegistry().load()
    except ConfigurationError as e:
        print(f"  [!] navigation.yaml: {e}")
        return 1

    for module in registry.modules():
        print(f"  ok  {module.slug:<12} prefix={module.route_prefix} base_permission={module.base_permission}")
    failures = registry.failures
    for slug, error in failures.items():
        print(f"  [!] {slug:<12} {error}")
    return 1 if failures else 0


def _load_principal(store: PermissionStore, principal_id: int):
    principal = store.get_principal(principal_id)
    if principal is None:
        print(f"  [!] No principal with id {principal_id}.")
    return principal


def _cmd_can(args: argparse.Namespace) -> int:
    store = PermissionStore()
    try:
        principal = _load_principal(store, args.principal_id)
        if principal is None:
            return 2
        authorizer = CrossGuardAuthorizer(store, AuthorizationCache(generations=store), GuardSet.from_settings())
        names = args.permissions
        if len(names) == 1:
            allowed = authorizer.has_permission(principal, names[0])
        elif args.all:
            allowed = all(authorizer.has_permission(principal, name) for name in names)
        else:
            allowed = authorizer.has_any_permission(principal, names)
    finally:
        store.close()

    print(json.dumps({"principal_id": principal.id, "permissions": names, "require_all": args.all, "allowed": allowed}))
    return 0 if allowed else 1


def _cmd_nav(args: argparse.Namespace) -> int:
    store = PermissionStore()
    try:
        principal = _load_principal(store, args.principal_id)
        if principal is None:
            return 2
        authorizer = CrossGuardAuthorizer(store, AuthorizationCache(generations=store), GuardSet.from_settings())
        builder = NavigationBuilder(ModuleRegistry().load(), authorizer)
        structure = builder.assemble(principal, slug=args.module, current_route=args.route)
    except LookupError as e:
        print(f"  [!] {e}")
        return 2
    finally:
        store.close()

    print(json.dumps(structure.to_dict(), indent=2, ensure_ascii=False))
    return 0


def _cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("api.main:app", host=args.host, port=args.port, reload=args.reload)
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Staff portal core -- cross-guard authorization and navigation tools.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging.")
    sub = parser.add_subparsers(dest="command", required=True)

    p_sync = sub.add_parser("sync-guards", help="Copy permissions and roles across guards.")
    p_sync.add_argument(
        "--guards",
        nargs="+",
        metavar="GUARD",
        help="Guards to reconcile (default: SYNC_GUARDS from settings).",
    )
    p_sync.set_defaults(func=_cmd_sync_guards)

    p_check = sub.add_parser("check-config", help="Load every navigation config and report failures.")
    p_check.set_defaults(func=_cmd_check_config)

    p_can = sub.add_parser("can", help="Ask the authorizer whether a principal holds permission(s).")
    p_can.add_argument("principal_id", type=int)
    p_can.add_argument("permissions", nargs="+", metavar="PERMISSION")
    p_can.add_argument(
        "--all",
        action="store_true",
        help="Require every permission instead of any of them.",
    )
    p_can.set_defaults(func=_cmd_can)

    p_nav = sub.add_parser("nav", help="Print the filtered navigation for a principal as JSON.")
    p_nav.add_argument("principal_id", type=int)
    p_nav.add_argument("--module", help="Module slug (inferred from --route when omitted).")
    p_nav.add_argument("--route", help="Current route name, e.g. internal.admin.users.index.")
    p_nav.set_defaults(func=_cmd_nav)

    p_serve = sub.add_parser("serve", help="Run the HTTP API with uvicorn.")
    p_serve.add_argument("--host", default="127.0.0.1")
    p_serve.add_argument("--port", type=int, default=8000)
    p_serve.add_argument("--reload", action="store_true")
    p_serve.set_defaults(func=_cmd_serve)

    args = parser.parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    )

    try:
        code = args.func(args)
    except StorageLookupFailure as e:
        logger.error("Permission store unavailable: %s", e)
        print(f"  [!] Permission store unavailable: {e}")
        code = 3
    sys.exit(code)


if __name__ == "__main__":
    main()
