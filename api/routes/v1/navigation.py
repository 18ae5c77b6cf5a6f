"""
api/routes/v1/navigation.py -- Navigation, module cards and module panels.

Routes:
  GET /api/v1/navigation               -- main, module, contextual and global
                                          navigation plus breadcrumbs for one page
  GET /api/v1/modules                  -- dashboard cards, can_access per module
  GET /api/v1/modules/{slug}/panel     -- panel items and stats (403 without access)

Every list is filtered server-side by NavItemFilter before it leaves the
process. The client may filter again for rendering, but that is cosmetic.
"""

from __future__ import annotations

from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from api.limiter import limiter
from api.models import ErrorDetail, ModuleCard, ModulePanelResponse, NavigationResponse, NavItemOut, PanelStatOut
from auth.dependencies import get_current_principal
from auth.models import Principal
from core.config import get_settings
from nav.builder import NavigationBuilder

# Auth policy:
# - every route requires auth; the router-level dependency enforces it
router = APIRouter(dependencies=[Depends(get_current_principal)])


def _builder(request: Request) -> NavigationBuilder:
    return request.app.state.nav_builder


def _unknown_module(slug: str) -> HTTPException:
    return HTTPException(
        status_code=404,
        detail=ErrorDetail(code="module_not_found", message=f"Unknown module {slug[:50]!r}.").model_dump(),
    )


@limiter.limit(lambda: get_settings().nav_rate_limit)
@router.get("/navigation", response_model=NavigationResponse)
def get_navigation(
    request: Request,
    module: Annotated[Optional[str], Query(max_length=64)] = None,
    route: Annotated[Optional[str], Query(max_length=200)] = None,
    principal: Principal = Depends(get_current_principal),
) -> NavigationResponse:
    """Assemble the navigation for one page.

    Query params:
        module -- module slug; inferred from route when omitted
        route  -- current route name, used for the current flag and to pick
                  the contextual menu and breadcrumb trail
    """
    try:
        structure = _builder(request).assemble(principal, slug=module, current_route=route)
    except LookupError:
        raise _unknown_module(module or "")
    return NavigationResponse(**structure.to_dict())


@router.get("/modules", response_model=list[ModuleCard])
def list_modules(request: Request, principal: Principal = Depends(get_current_principal)) -> list[ModuleCard]:
    """Return one card per module with a navigation entry."""
    return [ModuleCard(**card) for card in _builder(request).module_cards(principal)]


@router.get("/modules/{slug}/panel", response_model=ModulePanelResponse)
def get_module_panel(
    request: Request,
    slug: str,
    principal: Principal = Depends(get_current_principal),
) -> ModulePanelResponse:
    """Panel items, default contextual menu, root breadcrumbs and stats for a module."""
    builder = _builder(request)
    registration = request.app.state.registry.get(slug)
    if registration is None:
        raise _unknown_module(slug)
    if not builder.can_access_module(principal, registration):
        raise HTTPException(
            status_code=403,
            detail=ErrorDetail(code="forbidden", message="You do not have access to this module.").model_dump(),
        )

    provider = request.app.state.registry.stats_provider(slug)
    stats = provider.get_panel_stats(principal) if provider is not None else []
    return ModulePanelResponse(
        slug=registration.slug,
        name=registration.functional_name,
        description=registration.description,
        panel_items=[NavItemOut.from_spec(item) for item in builder.panel_items(principal, slug)],
        contextual_nav=[NavItemOut.from_spec(item) for item in builder.contextual_nav(principal, slug)],
        breadcrumbs=[NavItemOut.from_spec(item) for item in builder.breadcrumbs(principal, slug)],
        stats=[PanelStatOut(**stat) for stat in stats],
    )
