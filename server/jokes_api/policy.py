"""Jokes API - Authorization Engine

One central table maps (resource, verb) to a rule. A rule is a pure function of
(actor, entity) and returns a Decision. Nothing here touches the database or
ambient request state: callers load the entity and pass the actor explicitly.

Evaluation order inside the rules:
  1. elevated roles (admin/superuser) short-circuit update/delete/restore
  2. staff manage any joke/category/vote, may restore, never force-delete
  3. client-level actors are limited to what they own
  4. browse/read/search/create only need role membership
  5. voting additionally requires the joke to be visible to the actor
  6. removing a vote requires an existing vote, then the vote delete rule
  7. nobody deletes their own account through the admin path
  8. nobody deletes an account at or above their own level (superuser excepted);
     the same ceiling guards restoring and permanently removing accounts, and
     permanent removal additionally needs admin or above

Entities are plain dicts as returned by the tools layer:
  joke      {"id", "user_id", "deleted_at", "categories": [{"deleted_at", ...}]}
  category  {"id", "user_id", "deleted_at"}
  vote      {"id", "user_id", "joke_id", "rating"}
  user      {"id", "roles": ["client", ...]}
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Callable, Optional

from .ownership import is_owner
from .roles import (
    ADMIN_LEVEL,
    CLIENT_LEVEL,
    STAFF_LEVEL,
    SUPERUSER_LEVEL,
    has_permission,
    highest_level,
)
from .visibility import is_visible

FORBIDDEN = "FORBIDDEN"
NOT_FOUND = "NOT_FOUND"


class UnknownAction(ValueError):
    """Raised for a (resource, verb) pair that has no rule."""


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: Optional[str] = None
    code: Optional[str] = None      # FORBIDDEN or NOT_FOUND when denied

    def __bool__(self) -> bool:
        return self.allowed

    @classmethod
    def allow(cls) -> "Decision":
        return cls(True)

    @classmethod
    def deny(cls, reason: str, code: str = FORBIDDEN) -> "Decision":
        return cls(False, reason, code)


Rule = Callable[..., bool]


# ============================================================================
# RULE BUILDING BLOCKS
# ============================================================================

def _at_least(level: int) -> Rule:
    def rule(actor, entity=None) -> bool:
        return actor.level >= level
    return rule


def _permission(name: str) -> Rule:
    def rule(actor, entity=None) -> bool:
        return has_permission(actor, name)
    return rule


def _owner_or_staff(actor, entity=None) -> bool:
    # Admin, superuser and staff manage any record
    if actor.level >= STAFF_LEVEL:
        return True
    # Client-level actors manage only their own records
    if actor.level >= CLIENT_LEVEL:
        return is_owner(actor, entity)
    return False


def _target_level(target) -> int:
    if not target:
        return 0
    return highest_level(target.get("roles") or [])


def _can_update_user(actor, target=None) -> bool:
    if actor.level >= ADMIN_LEVEL:
        return True
    is_self = target is not None and target.get("id") == actor.id
    if actor.level >= STAFF_LEVEL:
        return is_self or _target_level(target) <= CLIENT_LEVEL
    if actor.level >= CLIENT_LEVEL:
        return is_self
    return False


def _can_delete_user(actor, target=None) -> bool:
    # Self-deletion only through the "delete own profile" path
    if target is None or target.get("id") == actor.id:
        return False
    if actor.level >= SUPERUSER_LEVEL:
        return True
    if not has_permission(actor, "users.delete"):
        return False
    return _target_level(target) < actor.level


def _can_force_delete_user(actor, target=None) -> bool:
    return actor.level >= ADMIN_LEVEL and _can_delete_user(actor, target)


def _can_create_user(actor, payload=None) -> bool:
    """payload: {"roles": [...]} requested for the new account."""
    if not has_permission(actor, "users.create"):
        return False
    if actor.level >= ADMIN_LEVEL:
        return True
    requested = (payload or {}).get("roles") or []
    return highest_level(requested) <= CLIENT_LEVEL


# ============================================================================
# POLICY TABLE
# ============================================================================

# (resource, verb) -> (rule, denial message)
POLICIES = MappingProxyType({
    # --- Jokes ---
    ("jokes", "browse"): (_at_least(CLIENT_LEVEL), "Unauthorized to view jokes"),
    ("jokes", "read"): (_at_least(CLIENT_LEVEL), "Unauthorized to view this joke"),
    ("jokes", "search"): (_at_least(CLIENT_LEVEL), "Unauthorized to search jokes"),
    ("jokes", "create"): (_at_least(CLIENT_LEVEL), "Unauthorized to create jokes"),
    ("jokes", "update"): (_owner_or_staff, "Unauthorized to update this joke"),
    ("jokes", "delete"): (_owner_or_staff, "Unauthorized to delete this joke"),
    ("jokes", "restore"): (_at_least(STAFF_LEVEL), "Unauthorized to restore this joke"),
    ("jokes", "force_delete"): (_at_least(ADMIN_LEVEL), "Unauthorized to permanently delete this joke"),
    ("jokes", "trash"): (_at_least(STAFF_LEVEL), "Unauthorized to view deleted jokes"),

    # --- Categories (global resources in v1) ---
    ("categories", "browse"): (_permission("categories.browse"), "Unauthorized to view categories"),
    ("categories", "read"): (_permission("categories.read"), "Unauthorized to view this category"),
    ("categories", "search"): (_permission("categories.search"), "Unauthorized to search categories"),
    ("categories", "create"): (_permission("categories.create"), "Unauthorized to create categories"),
    ("categories", "update"): (_permission("categories.update"), "Unauthorized to update this category"),
    ("categories", "delete"): (_permission("categories.delete"), "Unauthorized to delete this category"),
    ("categories", "restore"): (_permission("categories.restore"), "Unauthorized to restore this category"),
    ("categories", "force_delete"): (_permission("categories.force-delete"),
                                     "Unauthorized to permanently delete this category"),
    ("categories", "trash"): (_permission("categories.restore"), "Unauthorized to view deleted categories"),

    # --- Votes ---
    ("votes", "browse"): (_permission("votes.browse"), "Unauthorized to view votes"),
    ("votes", "create"): (_permission("votes.create"), "Unauthorized to vote"),
    ("votes", "remove"): (_at_least(CLIENT_LEVEL), "Unauthorized to remove votes"),
    ("votes", "update"): (_owner_or_staff, "Unauthorized to update this vote"),
    ("votes", "delete"): (_owner_or_staff, "Unauthorized to delete this vote"),
    ("votes", "clear_user"): (_permission("votes.clear-user"), "Unauthorized to clear user votes"),
    ("votes", "clear_all"): (_permission("votes.clear-all"), "Unauthorized to clear all votes"),

    # --- Users ---
    ("users", "browse"): (_permission("users.browse"), "Unauthorized to browse users"),
    ("users", "search"): (_permission("users.search"), "Unauthorized to search users"),
    ("users", "read"): (_permission("users.read"), "Unauthorized to read users"),
    ("users", "create"): (_can_create_user, "Unauthorized to create users with these roles"),
    ("users", "update"): (_can_update_user, "Unauthorized to update this user"),
    ("users", "delete"): (_can_delete_user, "Unauthorized to delete this user"),
    ("users", "restore"): (_can_delete_user, "Unauthorized to restore this user"),
    ("users", "force_delete"): (_can_force_delete_user, "Unauthorized to permanently delete this user"),
    ("users", "trash"): (_permission("users.delete"), "Unauthorized to view deleted users"),
    ("users", "assign_roles"): (_permission("users.assign-roles"), "Unauthorized to assign roles"),
    ("users", "change_status"): (_permission("users.change-status"), "Unauthorized to change user status"),

    # --- Auth ---
    ("auth", "logout_role"): (_permission("auth.logout-role"), "Unauthorized to log out users by role"),
})


def authorize(actor, resource: str, verb: str, entity=None) -> Decision:
    """Evaluate one (actor, verb, target) triple against the policy table."""
    try:
        rule, message = POLICIES[(resource, verb)]
    except KeyError:
        raise UnknownAction(f"No policy for {resource}.{verb}") from None
    if rule(actor, entity):
        return Decision.allow()
    return Decision.deny(message)


# ============================================================================
# SPECIAL PREDICATES
# ============================================================================

def vote_on_joke(actor, joke: dict) -> Decision:
    """Voting needs a voting role; regular actors may only vote on visible jokes.

    Invisible jokes are reported as not found, never as forbidden.
    """
    decision = authorize(actor, "votes", "create")
    if not decision:
        return decision
    if not is_visible(actor, joke):
        return Decision.deny("Joke not found", NOT_FOUND)
    return Decision.allow()


def remove_vote_from_joke(actor, joke: dict, vote: Optional[dict]) -> Decision:
    """Requires an existing vote on the joke, then applies the vote delete rule.

    A vote the actor may not delete is reported exactly like a missing one.
    """
    if vote is None or vote.get("joke_id") != joke.get("id"):
        return Decision.deny("No vote found for this joke", NOT_FOUND)
    if not authorize(actor, "votes", "delete", vote):
        return Decision.deny("No vote found for this joke", NOT_FOUND)
    return Decision.allow()
