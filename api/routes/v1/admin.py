"""
api/routes/v1/admin.py -- Administrative mutations of roles and guards.

Routes:
  POST /api/v1/admin/guards/sync              -- reconcile permissions and roles across guards
  PUT  /api/v1/admin/principals/{id}/roles    -- replace a principal's roles in one guard

Both require the access-admin permission (privileged roles pass through the
authorizer bypass). Both invalidate cached authorization decisions: the sync
flushes everything, a role assignment forgets only that principal.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request

from api.limiter import limiter
from api.models import ErrorDetail, GuardSyncRequest, GuardSyncResponse, RoleAssignment, RoleAssignmentResponse
from auth.dependencies import require_permission
from auth.sync import GuardSyncService, sync_principal_roles
from core.config import get_settings

ADMIN_PERMISSION = "access-admin"

# Auth policy:
# - every route requires access-admin (router-level require_permission)
router = APIRouter(dependencies=[Depends(require_permission(ADMIN_PERMISSION))])


@limiter.limit(lambda: get_settings().sync_rate_limit)
@router.post("/admin/guards/sync", response_model=GuardSyncResponse)
def sync_guards(request: Request, body: GuardSyncRequest | None = None) -> GuardSyncResponse:
    """Run the guard sync. Without a body, SYNC_GUARDS from settings is used."""
    guards = body.guards if body is not None and body.guards else get_settings().sync_guards
    service: GuardSyncService = request.app.state.sync_service
    try:
        report = service.sync_across_guards(guards)
    except ValueError as exc:
        raise HTTPException(
            status_code=400,
            detail=ErrorDetail(code="invalid_guards", message=str(exc)).model_dump(),
        )
    return GuardSyncResponse(
        guards=report.guards,
        changed=report.changed,
        permissions_created=report.permissions_created,
        roles_created=report.roles_created,
        roles_synced=report.roles_synced,
    )


@router.put("/admin/principals/{principal_id}/roles", response_model=RoleAssignmentResponse)
def assign_roles(request: Request, principal_id: int, body: RoleAssignment) -> RoleAssignmentResponse:
    """Replace the principal's roles in body.guard with body.roles."""
    store = request.app.state.permission_store
    if store.get_principal(principal_id) is None:
        raise HTTPException(
            status_code=404,
            detail=ErrorDetail(code="principal_not_found", message="Principal not found.").model_dump(),
        )
    try:
        changed = sync_principal_roles(store, request.app.state.authorizer, principal_id, body.guard, body.roles)
    except ValueError as exc:
        raise HTTPException(
            status_code=400,
            detail=ErrorDetail(code="unknown_role", message=str(exc)).model_dump(),
        )
    return RoleAssignmentResponse(
        principal_id=principal_id,
        guard=body.guard,
        roles=sorted(set(body.roles)),
        changed=changed,
    )
