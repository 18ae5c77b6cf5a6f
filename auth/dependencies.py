"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication and authorization.

Token sources, checked in priority order:
  1. Authorization: Bearer <token> header -- API clients and the SPA.
  2. "access_token" cookie -- set by the login front end (outside this service).

try_get_current_principal() is the soft variant (returns None on failure).
get_current_principal() wraps it and raises HTTP 401 if unauthenticated.
require_permission(...) builds a dependency that raises HTTP 403 unless the
CrossGuardAuthorizer grants the permission(s). This is the server-side
enforcement point: hiding a button in the client never replaces it.

Inactive principals are treated as unauthenticated here, at the
authentication layer. The authorizer itself does not look at is_active.

Layer rule: no imports from nav/ or client/.
  auth/dependencies.py may import from fastapi (for Depends/HTTPException/Request)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from collections.abc import Callable

from fastapi import HTTPException, Request

from auth.authorizer import CrossGuardAuthorizer
from auth.models import Principal
from auth.tokens import decode_access_token


def try_get_current_principal(request: Request) -> Principal | None:
    """Authenticate the request via Bearer header or cookie.

    Returns the Principal on success, None when there is no valid token, the
    principal no longer exists, its guard changed, or it is inactive.
    StorageLookupFailure propagates -- the app maps it to 503.
    """
    token: str | None = None
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header[7:]
    if not token:
        token = request.cookies.get("access_token")
    if not token:
        return None

    payload = decode_access_token(token)
    if payload is None:
        return None

    principal = request.app.state.permission_store.get_principal(payload["principal_id"])
    if principal is None or not principal.is_active or principal.guard != payload["guard"]:
        return None
    return principal


def get_current_principal(request: Request) -> Principal:
    """Require authentication. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(principal: Principal = Depends(get_current_principal)): ...
    """
    principal = try_get_current_principal(request)
    if principal is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    return principal


def get_authorizer(request: Request) -> CrossGuardAuthorizer:
    return request.app.state.authorizer


def require_permission(*names: str, require_all: bool = False) -> Callable[[Request], Principal]:
    """Build a dependency that enforces permission(s) with the cross-guard authorizer.

    One name: has_permission. Several names: has_any_permission, or AND over
    has_permission when require_all=True.

        router = APIRouter(dependencies=[Depends(require_permission("access-admin"))])
    """
    if not names:
        raise ValueError("require_permission() needs at least one permission name")

    def dependency(request: Request) -> Principal:
        principal = get_current_principal(request)
        authorizer = get_authorizer(request)
        if len(names) == 1:
            allowed = authorizer.has_permission(principal, names[0])
        elif require_all:
            allowed = all(authorizer.has_permission(principal, name) for name in names)
        else:
            allowed = authorizer.has_any_permission(principal, names)
        if not allowed:
            raise HTTPException(
                status_code=403,
                detail={"code": "forbidden", "message": "You do not have permission to perform this action."},
            )
        return principal

    return dependency
