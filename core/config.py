"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for the staff portal happen here. No module
should call os.getenv() or os.environ.get() directly -- import get_settings()
instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. This is
      the official FastAPI dependency injection pattern for config.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY). List fields (GUARDS, SYNC_GUARDS) are
      parsed from JSON arrays, e.g. GUARDS='["staff","web"]'.

  @model_validator(mode="after"): Runs cross-field validation after all fields
      are resolved from environment. DEBUG mode generates a SECRET_KEY with a
      warning; production mode refuses to start without one. The guard lists
      are checked here too: an empty GuardSet would make every cross-guard
      check deny, which is a misconfiguration rather than a policy.

Layer rule: core/ is the kernel. This module may not import from api/, auth/,
cache/, nav/, or client/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("staffportal.config")

_REPO_ROOT = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev key or raises, so callers never see "".
    secret_key: str = ""
    token_expire_seconds: int = 3600

    # ------------------------------------------------------------------
    # Authorization
    # ------------------------------------------------------------------

    # Fixed enumeration order for cross-guard checks. Never principal-dependent.
    guards: list[str] = ["staff", "web", "sanctum"]
    # Guards reconciled by `main.py sync-guards` when --guards is not given.
    sync_guards: list[str] = ["web", "sanctum"]
    authz_cache_ttl: int = 600
    permission_db_url: str = f"sqlite:///{_REPO_ROOT / 'auth' / 'staffportal_auth.db'}"

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    config_dir: Path = _REPO_ROOT / "config"
    # Modules without an explicit route_prefix get "<route_root>.<slug>."
    route_root: str = "internal"
    nav_ref_max_depth: int = 10

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    nav_rate_limit: str = "120/minute"
    sync_rate_limit: str = "5/minute"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce the SECRET_KEY policy.

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
        Production mode: refuse to start if SECRET_KEY is missing.
        Both modes: reject keys shorter than 32 characters.
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning("WARNING: Using auto-generated SECRET_KEY. Tokens will not survive restarts.")
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        return self

    @model_validator(mode="after")
    def validate_guards(self) -> "Settings":
        if not self.guards:
            raise ValueError("GUARDS must list at least one authentication guard.")
        if len(set(self.guards)) != len(self.guards):
            raise ValueError(f"GUARDS contains duplicates: {self.guards!r}")
        if self.nav_ref_max_depth < 1:
            raise ValueError("NAV_REF_MAX_DEPTH must be a positive integer.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
