"""
client/snapshot.py -- The principal as the client sees it after hydration.

Built from the GET /api/v1/auth/me payload. It carries granted permission
names only (never the full catalogue) plus an explicit is_privileged flag, so
the client can reproduce the privileged bypass without guessing.

Nothing in this package is a security boundary. Every action a client hides
or shows is still checked on the server.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class ClientSnapshot:
    id: int
    username: str
    guard: str
    roles: frozenset[str] = field(default_factory=frozenset)
    permissions: frozenset[str] = field(default_factory=frozenset)
    is_privileged: bool = False

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "ClientSnapshot":
        return cls(
            id=payload["id"],
            username=payload.get("username", ""),
            guard=payload.get("guard", ""),
            roles=frozenset(payload.get("roles") or ()),
            permissions=frozenset(payload.get("permissions") or ()),
            is_privileged=bool(payload.get("is_privileged", False)),
        )

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "username": self.username,
            "guard": self.guard,
            "roles": sorted(self.roles),
            "permissions": sorted(self.permissions),
            "is_privileged": self.is_privileged,
        }
