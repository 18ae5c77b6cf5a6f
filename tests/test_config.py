"""
tests/test_config.py -- Settings validation (SECRET_KEY policy, guard lists).
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from core.config import Settings
from core.guards import GuardSet

KEY = "x" * 32


def test_debug_generates_secret_key() -> None:
    settings = Settings(debug=True, secret_key="")
    assert len(settings.secret_key) >= 32


def test_production_requires_secret_key() -> None:
    with pytest.raises(ValidationError, match="SECRET_KEY"):
        Settings(debug=False, secret_key="")


def test_short_secret_key_rejected() -> None:
    with pytest.raises(ValidationError):
        Settings(debug=True, secret_key="short")


def test_guards_must_not_be_empty() -> None:
    with pytest.raises(ValidationError, match="GUARDS"):
        Settings(secret_key=KEY, guards=[])


def test_guards_must_be_distinct() -> None:
    with pytest.raises(ValidationError, match="duplicates"):
        Settings(secret_key=KEY, guards=["staff", "staff"])


def test_ref_depth_must_be_positive() -> None:
    with pytest.raises(ValidationError):
        Settings(secret_key=KEY, nav_ref_max_depth=0)


def test_guard_set_keeps_configured_order() -> None:
    settings = Settings(secret_key=KEY, guards=["sanctum", "staff"])
    assert list(GuardSet.of(settings.guards)) == ["sanctum", "staff"]


def test_guard_set_drops_duplicates_keeping_first() -> None:
    assert GuardSet.of(["web", "staff", "web"]).names == ("web", "staff")
    with pytest.raises(ValueError):
        GuardSet.of([])
