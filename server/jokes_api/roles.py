"""Jokes API - Role/Permission Registry

Closed set of roles, each with an ordinal level and an immutable permission set.
Built once at import time and never mutated; request paths only read it.

Role hierarchy (level):
    superuser (999) > admin (750) > staff (500) > client (100)

The legacy role name 'user' is an alias for 'client'. Both name the same tier.
"""

from enum import Enum
from types import MappingProxyType
from typing import Iterable


class UnknownRole(ValueError):
    """Raised when a role name is not part of the registry."""

    def __init__(self, name: str):
        super().__init__(f"Unknown role: {name}")
        self.name = name


class Role(str, Enum):
    CLIENT = "client"
    STAFF = "staff"
    ADMIN = "admin"
    SUPERUSER = "superuser"

    @property
    def level(self) -> int:
        return ROLE_LEVELS[self]

    @classmethod
    def parse(cls, name: str) -> "Role":
        """Resolve a role name (case-insensitive, 'user' -> client)."""
        if isinstance(name, Role):
            return name
        key = (name or "").strip().lower()
        key = ROLE_ALIASES.get(key, key)
        try:
            return cls(key)
        except ValueError:
            raise UnknownRole(name) from None

    @classmethod
    def values(cls) -> list[str]:
        return [role.value for role in cls]


ROLE_ALIASES = {"user": "client"}

ROLE_LEVELS = MappingProxyType({
    Role.CLIENT: 100,
    Role.STAFF: 500,
    Role.ADMIN: 750,
    Role.SUPERUSER: 999,
})

# Named levels used by the policy table
CLIENT_LEVEL = ROLE_LEVELS[Role.CLIENT]
STAFF_LEVEL = ROLE_LEVELS[Role.STAFF]
ADMIN_LEVEL = ROLE_LEVELS[Role.ADMIN]
SUPERUSER_LEVEL = ROLE_LEVELS[Role.SUPERUSER]


# ============================================================================
# PERMISSION CATALOG
# ============================================================================

PERMISSIONS: tuple[str, ...] = (
    # Categories
    "categories.browse",
    "categories.read",
    "categories.create",
    "categories.update",
    "categories.delete",
    "categories.search",
    "categories.restore",
    "categories.force-delete",

    # Jokes
    "jokes.browse",
    "jokes.read",
    "jokes.create",
    "jokes.update",
    "jokes.delete",
    "jokes.search",

    # Votes
    "votes.create",
    "votes.update",
    "votes.delete",
    "votes.browse",
    "votes.clear-user",
    "votes.clear-all",

    # Users
    "users.browse",
    "users.read",
    "users.create",
    "users.update",
    "users.delete",
    "users.search",
    "users.assign-roles",
    "users.change-status",

    # Auth
    "auth.logout-role",
    "auth.reset-password",
)

_CLIENT_PERMISSIONS = frozenset({
    "categories.browse",
    "categories.read",
    "categories.search",
    "jokes.browse",
    "jokes.read",
    "jokes.create",
    "jokes.update",
    "jokes.delete",
    "votes.create",
    "votes.update",
    "votes.delete",
})

_STAFF_PERMISSIONS = _CLIENT_PERMISSIONS | {
    "categories.create",
    "categories.update",
    "categories.delete",
    "categories.restore",
    "jokes.search",
    "votes.browse",
    "votes.clear-user",
    "users.browse",
    "users.read",
    "users.create",
    "users.update",
    "users.delete",
    "users.search",
    "users.change-status",
    "auth.logout-role",
    "auth.reset-password",
}

_ADMIN_PERMISSIONS = _STAFF_PERMISSIONS | {
    "categories.force-delete",
    "votes.clear-all",
    "users.assign-roles",
}

ROLE_PERMISSIONS = MappingProxyType({
    Role.CLIENT: _CLIENT_PERMISSIONS,
    Role.STAFF: frozenset(_STAFF_PERMISSIONS),
    Role.ADMIN: frozenset(_ADMIN_PERMISSIONS),
    Role.SUPERUSER: frozenset(PERMISSIONS),
})


# ============================================================================
# QUERIES
# ============================================================================

def role_level(role_name) -> int:
    """Ordinal level of a role. Raises UnknownRole for names outside the registry."""
    return Role.parse(role_name).level


def permissions_for(role_name) -> frozenset[str]:
    return ROLE_PERMISSIONS[Role.parse(role_name)]


def has_permission(actor, permission: str) -> bool:
    """True iff any role assigned to the actor grants the permission."""
    return any(permission in ROLE_PERMISSIONS[role] for role in actor.roles)


def has_any_role(actor, role_names: Iterable) -> bool:
    """True iff the actor holds at least one of the named roles."""
    wanted = {Role.parse(name) for name in role_names}
    return bool(wanted & set(actor.roles))


def highest_level(roles: Iterable) -> int:
    """Highest level among the given roles, 0 when there are none."""
    return max((Role.parse(r).level for r in roles), default=0)
