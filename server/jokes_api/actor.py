"""Jokes API - Actor Context

Immutable dataclass that carries the authenticated principal through the request.
Resolved once per request from the bearer token and never mutated.
Every authorization function receives it as an explicit argument.
"""

from dataclasses import dataclass, field
from typing import Iterable, Optional

from .roles import Role, STAFF_LEVEL, highest_level

ACTIVE = "active"
SUSPENDED = "suspended"
BANNED = "banned"
USER_STATUSES = (ACTIVE, SUSPENDED, BANNED)


@dataclass(frozen=True)
class Actor:
    """An authenticated principal."""
    id: int
    roles: frozenset = field(default_factory=frozenset)   # frozenset[Role]
    status: str = ACTIVE
    name: Optional[str] = None
    email: Optional[str] = None

    @property
    def level(self) -> int:
        """Highest role level held, 0 for an actor without roles."""
        return highest_level(self.roles)

    @property
    def is_active(self) -> bool:
        return self.status == ACTIVE

    def is_elevated(self) -> bool:
        """Staff or above. Elevated actors bypass ownership and visibility rules."""
        return self.level >= STAFF_LEVEL

    def role_names(self) -> list[str]:
        return sorted(role.value for role in self.roles)


def make_actor(
    actor_id: int,
    roles: Iterable = (),
    status: Optional[str] = None,
    name: Optional[str] = None,
    email: Optional[str] = None,
) -> Actor:
    """Build an Actor from raw role names (aliases like 'user' are canonicalised)."""
    return Actor(
        id=actor_id,
        roles=frozenset(Role.parse(r) for r in roles),
        status=status or ACTIVE,
        name=name,
        email=email,
    )
