"""
api/routes/v1/auth.py -- Principal hydration and server-side permission checks.

Routes:
  GET /api/v1/auth/me    -- client hydration payload (requires auth)
  GET /api/v1/auth/can   -- ask the cross-guard authorizer about permission(s)

Tokens are minted by the identity subsystem (auth/tokens.create_access_token);
this service only verifies them.

/auth/me carries the principal's role names across all guards, the GRANTED
permission names (never the catalogue) and is_privileged. The client mirror
in client/navfilter.py needs exactly that to hide unreachable UI.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request

from api.limiter import limiter
from api.models import PermissionDecision, PrincipalSnapshot
from auth.authorizer import CrossGuardAuthorizer, normalize_names
from auth.dependencies import get_authorizer, get_current_principal
from auth.models import Principal
from core.config import get_settings

# Auth policy:
# - GET /api/v1/auth/me:   requires auth (get_current_principal)
# - GET /api/v1/auth/can:  requires auth (get_current_principal)
router = APIRouter()


@router.get("/auth/me", response_model=PrincipalSnapshot)
def me(
    principal: Principal = Depends(get_current_principal),
    authorizer: CrossGuardAuthorizer = Depends(get_authorizer),
) -> PrincipalSnapshot:
    """Return the hydration snapshot for the authenticated principal."""
    return PrincipalSnapshot(
        id=principal.id,
        username=principal.username,
        guard=principal.guard,
        roles=sorted(principal.all_role_names()),
        permissions=sorted(authorizer.granted_permission_names(principal)),
        is_privileged=authorizer.is_privileged(principal),
    )


@limiter.limit(lambda: get_settings().nav_rate_limit)
@router.get("/auth/can", response_model=PermissionDecision)
def can(
    request: Request,
    permission: Annotated[list[str], Query()],
    require_all: bool = False,
    principal: Principal = Depends(get_current_principal),
    authorizer: CrossGuardAuthorizer = Depends(get_authorizer),
) -> PermissionDecision:
    """Evaluate ?permission=a&permission=b against the authorizer.

    One name uses has_permission; several use has_any_permission, or every
    has_permission when require_all=true.
    """
    names = normalize_names(permission)
    if len(names) == 1:
        allowed = authorizer.has_permission(principal, names[0])
    elif require_all:
        allowed = all(authorizer.has_permission(principal, name) for name in names)
    else:
        allowed = authorizer.has_any_permission(principal, names)
    return PermissionDecision(permissions=list(names), require_all=require_all, allowed=allowed)
