"""
nav/stats.py -- Panel statistics shown next to a module's panel cards.

Modules plug their own provider into the registry with
ModuleRegistry.register_stats_provider(). Every module gets
ConfigStatsProvider by default, which reports counts derived from its own
static configuration.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from auth.models import Principal
    from nav.registry import ModuleRegistration


@dataclass(frozen=True)
class PanelStat:
    key: str
    title: str
    description: str
    icon: str
    value: int | float

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class PanelStatsProvider(Protocol):
    def get_panel_stats(self, principal: "Principal") -> list[dict[str, Any]]: ...


class ConfigStatsProvider:
    def __init__(self, registration: "ModuleRegistration") -> None:
        self._registration = registration

    def get_panel_stats(self, principal: "Principal") -> list[dict[str, Any]]:
        stats = [
            PanelStat(
                key="panel_items",
                title="Panel items",
                description="Entries configured for this panel",
                icon="layout-dashboard",
                value=len(self._registration.panel_items),
            ),
            PanelStat(
                key="contextual_links",
                title="Contextual navigation",
                description="Links in the default module menu",
                icon="list",
                value=len(self._registration.contextual_items()),
            ),
        ]
        return [stat.to_dict() for stat in stats]
