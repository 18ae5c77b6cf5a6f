"""
nav/registry.py -- Loads and holds the static navigation configuration.

Sources (Settings.config_dir):
  navigation.yaml        main_nav and global_nav, shared by every module
  modules/<slug>.yaml    one registration per pluggable module

Each file is parsed with yaml.safe_load, run through NavConfigResolver once,
and its item lists are turned into NavItemSpec objects up front, so a bad item
fails the load rather than the first request. The result is read-only for the
rest of the process lifetime.

Failure policy:
  navigation.yaml broken      load() raises ConfigurationError (nothing works
                              without the shared navigation)
  one module file broken      logged at ERROR, recorded in `failures`, module
                              skipped; get(slug) re-raises the recorded error

Pattern: Registry + lazy singleton. load() is idempotent and runs under a
lock, so concurrent first requests initialize once. get_module_registry() is
the process-wide instance (lru_cache, like get_settings()).
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml

from core.config import get_settings
from core.errors import ConfigurationError, InvalidNavItemSpec
from nav.models import NavItemSpec
from nav.resolver import NavConfigResolver
from nav.stats import ConfigStatsProvider, PanelStatsProvider

logger = logging.getLogger("staffportal.registry")

DEFAULT_CONTEXT = "default"
_DEFAULT_ORDER = 100


@dataclass
class ModuleRegistration:
    slug: str
    functional_name: str
    description: str
    base_permission: str | None
    auth_guard: str | None
    route_prefix: str
    nav_item: NavItemSpec | None
    show_in_nav: bool = True
    order: int = _DEFAULT_ORDER
    contextual_nav: dict[str, list[NavItemSpec]] = field(default_factory=dict)
    panel_items: list[NavItemSpec] = field(default_factory=list)
    breadcrumbs: dict[str, list[NavItemSpec]] = field(default_factory=dict)
    config: dict[str, Any] = field(default_factory=dict)

    def contextual_items(self, route_suffix: str | None = None) -> list[NavItemSpec]:
        """Items for a route suffix, falling back to the module's default context."""
        if route_suffix and route_suffix in self.contextual_nav:
            return self.contextual_nav[route_suffix]
        return self.contextual_nav.get(DEFAULT_CONTEXT, [])

    def breadcrumb_items(self, route_suffix: str | None = None) -> list[NavItemSpec] | None:
        """Configured trail for the suffix (or default); None when nothing is configured."""
        if route_suffix and route_suffix in self.breadcrumbs:
            return self.breadcrumbs[route_suffix]
        return self.breadcrumbs.get(DEFAULT_CONTEXT)

    def route_suffix(self, route_name: str | None) -> str | None:
        """'internal.admin.users.index' -> 'users.index' for this module, else None."""
        if route_name and route_name.startswith(self.route_prefix):
            return route_name[len(self.route_prefix) :] or None
        return None


class ModuleRegistry:
    def __init__(
        self,
        config_dir: Path | str | None = None,
        resolver: NavConfigResolver | None = None,
        route_root: str | None = None,
    ) -> None:
        settings = get_settings()
        self._config_dir = Path(config_dir) if config_dir is not None else Path(settings.config_dir)
        self._resolver = resolver or NavConfigResolver(max_depth=settings.nav_ref_max_depth)
        self._route_root = route_root if route_root is not None else settings.route_root
        self._lock = threading.Lock()
        self._loaded = False
        self._modules: dict[str, ModuleRegistration] = {}
        self._failures: dict[str, Exception] = {}
        self._main_nav: list[NavItemSpec] = []
        self._global_nav: list[NavItemSpec] = []
        self._stats_providers: dict[str, PanelStatsProvider] = {}

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load(self) -> "ModuleRegistry":
        with self._lock:
            if self._loaded:
                return self
            self._load_global()
            modules_dir = self._config_dir / "modules"
            paths = sorted(modules_dir.glob("*.yaml")) if modules_dir.is_dir() else []
            for path in paths:
                slug = path.stem
                try:
                    self._register(slug, _read_yaml(path))
                except (ConfigurationError, InvalidNavItemSpec) as exc:
                    error = exc if isinstance(exc, ConfigurationError) else ConfigurationError(str(exc), module=slug)
                    self._failures[slug] = error
                    logger.error("Module %r skipped: %s", slug, error)
            self._loaded = True
        logger.info(
            "Navigation registry loaded: %d module(s), %d failure(s) from %s",
            len(self._modules),
            len(self._failures),
            self._config_dir,
        )
        return self

    def register(self, slug: str, raw: dict[str, Any]) -> ModuleRegistration:
        """Register a module from an in-memory raw config (tests, plugins)."""
        with self._lock:
            try:
                return self._register(slug, raw)
            except InvalidNavItemSpec as exc:
                raise ConfigurationError(str(exc), module=slug) from exc

    def _load_global(self) -> None:
        path = self._config_dir / "navigation.yaml"
        if not path.is_file():
            logger.warning("No navigation.yaml in %s; main and global navigation are empty", self._config_dir)
            return
        resolved = self._resolver.resolve(_read_yaml(path))
        try:
            self._main_nav = NavItemSpec.list_from_config(resolved.get("main_nav"))
            self._global_nav = NavItemSpec.list_from_config(resolved.get("global_nav"))
        except InvalidNavItemSpec as exc:
            raise ConfigurationError(f"{path.name}: {exc}") from exc

    def _register(self, slug: str, raw: Any) -> ModuleRegistration:
        if not isinstance(raw, dict):
            raise ConfigurationError("module config must be a mapping", module=slug)
        declared = raw.get("module_slug", slug)
        if declared != slug:
            raise ConfigurationError(f"module_slug {declared!r} does not match file name", module=slug)

        try:
            resolved = self._resolver.resolve(raw)
        except ConfigurationError as exc:
            raise ConfigurationError(str(exc), module=slug) from exc

        functional_name = resolved.get("functional_name") or slug.title()
        base_permission = resolved.get("base_permission") or None
        route_prefix = resolved.get("route_prefix") or f"{self._route_root}.{slug}."
        if not route_prefix.endswith("."):
            route_prefix += "."

        raw_nav_item = resolved.get("nav_item") or {}
        if not isinstance(raw_nav_item, dict):
            raise ConfigurationError("'nav_item' must be a mapping", module=slug)

        registration = ModuleRegistration(
            slug=slug,
            functional_name=functional_name,
            description=resolved.get("description", ""),
            base_permission=base_permission,
            auth_guard=resolved.get("auth_guard") or None,
            route_prefix=route_prefix,
            nav_item=_module_nav_item(raw_nav_item, functional_name, base_permission),
            show_in_nav=bool(raw_nav_item.get("show_in_nav", True)),
            order=int(resolved.get("order", _DEFAULT_ORDER)),
            contextual_nav=_item_sections(resolved.get("contextual_nav"), "contextual_nav", slug),
            panel_items=NavItemSpec.list_from_config(resolved.get("panel_items")),
            breadcrumbs=_item_sections(resolved.get("breadcrumbs"), "breadcrumbs", slug),
            config=resolved,
        )
        self._modules[slug] = registration
        self._failures.pop(slug, None)
        self._stats_providers.setdefault(slug, ConfigStatsProvider(registration))
        logger.debug("Registered module %r (prefix %r)", slug, route_prefix)
        return registration

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, slug: str) -> ModuleRegistration | None:
        self.load()
        if slug in self._failures:
            raise self._failures[slug]
        return self._modules.get(slug)

    def modules(self) -> list[ModuleRegistration]:
        self.load()
        return sorted(self._modules.values(), key=lambda m: (m.order, m.slug))

    def module_for_route(self, route_name: str | None) -> ModuleRegistration | None:
        """The module whose route prefix owns route_name, if any."""
        if not route_name:
            return None
        for module in self.modules():
            if route_name.startswith(module.route_prefix):
                return module
        return None

    @property
    def main_nav(self) -> list[NavItemSpec]:
        self.load()
        return self._main_nav

    @property
    def global_nav(self) -> list[NavItemSpec]:
        self.load()
        return self._global_nav

    @property
    def failures(self) -> dict[str, Exception]:
        self.load()
        return dict(self._failures)

    # ------------------------------------------------------------------
    # Panel stats providers
    # ------------------------------------------------------------------

    def register_stats_provider(self, slug: str, provider: PanelStatsProvider) -> None:
        self._stats_providers[slug] = provider

    def stats_provider(self, slug: str) -> PanelStatsProvider | None:
        self.load()
        return self._stats_providers.get(slug)


def _read_yaml(path: Path) -> Any:
    try:
        with path.open(encoding="utf-8") as fh:
            return yaml.safe_load(fh)
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"{path.name}: invalid YAML: {exc}", module=path.stem) from exc


def _module_nav_item(raw: dict[str, Any], title: str, permission: str | None) -> NavItemSpec | None:
    # The module entry in the sidebar is gated by the module's base permission.
    if not raw.get("route_name") and not raw.get("route_name_suffix"):
        return None
    return NavItemSpec(
        title=title,
        route_name=raw.get("route_name"),
        route_name_suffix=raw.get("route_name_suffix"),
        icon=raw.get("icon"),
        permission=permission,
    )


def _item_sections(section: Any, label: str, slug: str) -> dict[str, list[NavItemSpec]]:
    if section is None:
        return {}
    if not isinstance(section, dict):
        raise ConfigurationError(f"'{label}' must map route suffixes to item lists", module=slug)
    return {suffix: NavItemSpec.list_from_config(items) for suffix, items in section.items()}


@lru_cache
def get_module_registry() -> ModuleRegistry:
    """Process-wide registry. Call get_module_registry.cache_clear() in tests."""
    return ModuleRegistry().load()
