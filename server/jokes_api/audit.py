"""Jokes API - Audit Logging

Writes to the audit_log table in the same transaction as the change it
records. Called by the lifecycle manager and the administrative user/vote
operations after a successful write.
"""

from typing import Optional

from .database import rows_to_list, utcnow
from .logging_config import get_logger

logger = get_logger(__name__)


def log_audit(
    cursor,
    actor,
    operation: str,
    entity_type: str,
    entity_id: Optional[int] = None,
    detail: Optional[str] = None,
) -> None:
    """Insert a row into audit_log.

    Parameters:
        cursor: Cursor of the transaction that performed the change
        actor: The Actor who performed it (None for anonymous flows such as register)
        operation: e.g. 'create', 'update', 'delete', 'restore', 'force_delete', 'clear_votes'
        entity_type: One of 'joke', 'category', 'vote', 'user', 'token'
        entity_id: ID of the entity (None for bulk operations)
        detail: Optional free-text context (truncated to 500 chars)
    """
    try:
        cursor.execute(
            """
            INSERT INTO audit_log (actor_id, operation, entity_type, entity_id, detail, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                actor.id if actor is not None else None,
                operation,
                entity_type,
                entity_id,
                detail[:500] if detail else None,
                utcnow(),
            ),
        )
    except Exception as e:
        # Audit failure must never break the main operation
        logger.error("Failed to write audit log: %s", e, exc_info=True)


def list_audit_entries(cursor, entity_type: Optional[str] = None, limit: int = 100) -> list[dict]:
    """Most recent audit rows, optionally for one entity type."""
    sql = "SELECT id, actor_id, operation, entity_type, entity_id, detail, created_at FROM audit_log"
    params: list = []
    if entity_type:
        sql += " WHERE entity_type = ?"
        params.append(entity_type)
    sql += " ORDER BY id DESC LIMIT ?"
    params.append(limit)
    cursor.execute(sql, tuple(params))
    return rows_to_list(cursor, cursor.fetchall())
