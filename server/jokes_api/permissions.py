"""Jokes API - Permission Enforcer

Stateless checks on top of the policy table.
Returns None if allowed, an error value (FORBIDDEN / NOT_FOUND) if denied.
"""

from typing import Optional

from .logging_config import get_logger
from .policy import Decision, authorize
from .responses import error_result

logger = get_logger(__name__)


def denial(actor, decision: Decision, resource: str, verb: str) -> Optional[dict]:
    """Log and convert a denied decision into an error value. None if allowed."""
    if decision.allowed:
        return None
    logger.info(
        "Authorization denied",
        extra={"actor_id": actor.id, "resource": resource, "verb": verb, "code": decision.code},
    )
    return error_result(decision.code, decision.reason)


def check_permission(actor, resource: str, verb: str, entity=None) -> Optional[dict]:
    """
    Check if the actor can perform `verb` on `resource`.

    Verbs: 'browse', 'read', 'search', 'create', 'update', 'delete', 'restore',
    'force_delete', 'trash' plus resource-specific ones such as 'clear_user'.
    Entity: row dict for record-level checks (ownership, target user). None for
    list/create operations.

    Returns None if allowed, else {"error": True, "code": "FORBIDDEN", ...}.
    """
    return denial(actor, authorize(actor, resource, verb, entity), resource, verb)
