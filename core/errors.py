"""
core/errors.py -- Error taxonomy shared by the authorization and navigation layers.

  ConfigurationError    load-time fault in static navigation configuration
                        (unresolved $ref, reference cycle, depth overflow).
  InvalidNavItemSpec    a navigation item that cannot be rendered (no title,
                        no target, malformed permission requirement).
  StorageLookupFailure  the permission store could not answer. Propagated to
                        callers, who should fail closed.

A permission or role that is simply missing from one guard is NOT an error
and has no exception type: it is a negative signal for that guard.
"""

from __future__ import annotations


class ConfigurationError(ValueError):
    """Static configuration is broken. Not retried; fix the config file."""

    def __init__(self, message: str, module: str | None = None) -> None:
        self.module = module
        super().__init__(f"[{module}] {message}" if module else message)


class InvalidNavItemSpec(ValueError):
    """A navigation item config was rejected (never coerced to a default)."""


class StorageLookupFailure(RuntimeError):
    """The permission/role backend is unavailable or returned an error."""
