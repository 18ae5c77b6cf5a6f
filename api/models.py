"""
API request and response models for the staff portal REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
nav/models.py, which own the internal representation. Route handlers map
between the two.

Separation of concerns: auth/ and nav/ models = domain truth; api/ models = API contract.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from nav.models import NavItemSpec

# ---------------------------------------------------------------------------
# Errors and health
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class PrincipalSnapshot(BaseModel):
    """Client hydration payload for GET /api/v1/auth/me.

    permissions holds granted names only. Privileged principals are flagged
    with is_privileged instead of receiving the full permission catalogue.
    """

    model_config = ConfigDict(frozen=True)

    id: int
    username: str
    guard: str
    roles: list[str]
    permissions: list[str]
    is_privileged: bool


class PermissionDecision(BaseModel):
    """Response for GET /api/v1/auth/can."""

    model_config = ConfigDict(frozen=True)

    permissions: list[str]
    require_all: bool
    allowed: bool


# ---------------------------------------------------------------------------
# Navigation
# ---------------------------------------------------------------------------


class NavItemOut(BaseModel):
    """One rendered navigation / breadcrumb / panel entry."""

    model_config = ConfigDict(frozen=True)

    title: str
    route_name: Optional[str] = None
    route_params: dict[str, Any] = Field(default_factory=dict)
    icon: Optional[str] = None
    description: Optional[str] = None
    permission: Optional[str | list[str]] = None
    require_all: bool = False
    current: bool = False
    children: list[NavItemOut] = Field(default_factory=list)

    @classmethod
    def from_spec(cls, item: NavItemSpec) -> "NavItemOut":
        return cls(**item.to_dict())


class NavigationResponse(BaseModel):
    """Response for GET /api/v1/navigation."""

    model_config = ConfigDict(frozen=True)

    module: Optional[str] = None
    main_nav: list[NavItemOut] = Field(default_factory=list)
    module_nav: list[NavItemOut] = Field(default_factory=list)
    contextual_nav: list[NavItemOut] = Field(default_factory=list)
    global_nav: list[NavItemOut] = Field(default_factory=list)
    breadcrumbs: list[NavItemOut] = Field(default_factory=list)
    panel_items: list[NavItemOut] = Field(default_factory=list)


class ModuleCard(BaseModel):
    model_config = ConfigDict(frozen=True)

    slug: str
    name: str
    description: str = ""
    route_name: Optional[str] = None
    icon: Optional[str] = None
    can_access: bool


class PanelStatOut(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: str
    title: str
    description: str = ""
    icon: Optional[str] = None
    value: int | float


class ModulePanelResponse(BaseModel):
    """Response for GET /api/v1/modules/{slug}/panel."""

    model_config = ConfigDict(frozen=True)

    slug: str
    name: str
    description: str = ""
    panel_items: list[NavItemOut] = Field(default_factory=list)
    contextual_nav: list[NavItemOut] = Field(default_factory=list)
    breadcrumbs: list[NavItemOut] = Field(default_factory=list)
    stats: list[PanelStatOut] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------


class GuardSyncRequest(BaseModel):
    """Request body for POST /api/v1/admin/guards/sync. Omit guards to use SYNC_GUARDS."""

    model_config = ConfigDict(str_strip_whitespace=True)

    guards: Optional[list[str]] = Field(default=None, max_length=10)

    @field_validator("guards")
    @classmethod
    def distinct_guards(cls, values: Optional[list[str]]) -> Optional[list[str]]:
        if values is None:
            return None
        deduped = list(dict.fromkeys(v for v in values if v))
        if len(deduped) < 2:
            raise ValueError("at least two distinct guards are required")
        return deduped


class GuardSyncResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    guards: list[str]
    changed: bool
    permissions_created: list[tuple[str, str]] = Field(default_factory=list)
    roles_created: list[tuple[str, str]] = Field(default_factory=list)
    roles_synced: list[tuple[str, str]] = Field(default_factory=list)


class RoleAssignment(BaseModel):
    """Request body for PUT /api/v1/admin/principals/{id}/roles."""

    model_config = ConfigDict(str_strip_whitespace=True)

    guard: str = Field(min_length=1, max_length=50)
    roles: list[str] = Field(default_factory=list, max_length=50)


class RoleAssignmentResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    principal_id: int
    guard: str
    roles: list[str]
    changed: bool
