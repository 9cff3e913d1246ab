"""Jokes API - Resource Lifecycle Manager

One state machine shared by jokes, categories and users:

    Active --soft_delete--> SoftDeleted --force_delete--> Removed
       ^                        |
       +-------restore----------+

Every transition follows the same steps: load the target (soft-deleted rows
included where the verb needs them), NOT_FOUND if absent, authorization guard,
state precondition, write, side-effect hooks, audit row. Who may take
which transition is decided by the policy table.

All functions receive cursor + actor first, like the tools modules.
"""

from dataclasses import dataclass
from typing import Callable, Optional

from .audit import log_audit
from .database import paginate, utcnow
from .logging_config import get_logger
from .permissions import check_permission
from .responses import conflict, not_found

logger = get_logger(__name__)

# hook(cursor, actor, entity) -> None
Hook = Callable[..., None]


@dataclass(frozen=True)
class LifecycleSpec:
    resource: str                   # policy resource, e.g. "jokes"
    table: str
    entity_type: str                # audit entity type, e.g. "joke"
    label: str                      # message prefix, e.g. "Joke"
    load: Callable[..., Optional[dict]]     # load(cursor, id, include_deleted=False)
    trash_columns: str = "*"
    after_soft_delete: tuple = ()
    before_force_delete: tuple = ()
    # check(cursor, entity) -> error dict or None, runs before a restore is applied
    restore_check: Optional[Callable[..., Optional[dict]]] = None

    @property
    def plural(self) -> str:
        return self.resource


def _not_found(spec: LifecycleSpec) -> dict:
    return not_found(f"{spec.label} not found")


def soft_delete(cursor, spec: LifecycleSpec, actor, entity_id: int) -> dict:
    """Active -> SoftDeleted. Deleting an already deleted entity reports NOT_FOUND."""
    entity = spec.load(cursor, entity_id)
    if entity is None:
        return _not_found(spec)

    denied = check_permission(actor, spec.resource, "delete", entity)
    if denied:
        return denied

    now = utcnow()
    cursor.execute(
        f"UPDATE {spec.table} SET deleted_at = ?, updated_at = ? WHERE id = ? AND deleted_at IS NULL",
        (now, now, entity_id),
    )
    for hook in spec.after_soft_delete:
        hook(cursor, actor, entity)

    log_audit(cursor, actor, "delete", spec.entity_type, entity_id)
    logger.info(
        "%s soft-deleted", spec.label,
        extra={"actor_id": actor.id, "entity_type": spec.entity_type, "entity_id": entity_id},
    )
    return {"message": f"{spec.label} deleted"}


def restore(cursor, spec: LifecycleSpec, actor, entity_id: int) -> dict:
    """SoftDeleted -> Active. Restoring an active entity is a CONFLICT."""
    entity = spec.load(cursor, entity_id, include_deleted=True)
    if entity is None:
        return _not_found(spec)

    denied = check_permission(actor, spec.resource, "restore", entity)
    if denied:
        return denied

    if entity.get("deleted_at") is None:
        return conflict(f"{spec.label} is not deleted")

    if spec.restore_check is not None:
        problem = spec.restore_check(cursor, entity)
        if problem:
            return problem

    cursor.execute(
        f"UPDATE {spec.table} SET deleted_at = NULL, updated_at = ? WHERE id = ?",
        (utcnow(), entity_id),
    )
    log_audit(cursor, actor, "restore", spec.entity_type, entity_id)
    logger.info(
        "%s restored", spec.label,
        extra={"actor_id": actor.id, "entity_type": spec.entity_type, "entity_id": entity_id},
    )
    return {spec.entity_type: spec.load(cursor, entity_id), "message": f"{spec.label} restored"}


def force_delete(cursor, spec: LifecycleSpec, actor, entity_id: int) -> dict:
    """Active or SoftDeleted -> Removed. Dependent rows go through ON DELETE CASCADE."""
    entity = spec.load(cursor, entity_id, include_deleted=True)
    if entity is None:
        return _not_found(spec)

    denied = check_permission(actor, spec.resource, "force_delete", entity)
    if denied:
        return denied

    for hook in spec.before_force_delete:
        hook(cursor, actor, entity)

    cursor.execute(f"DELETE FROM {spec.table} WHERE id = ?", (entity_id,))
    log_audit(cursor, actor, "force_delete", spec.entity_type, entity_id)
    logger.info(
        "%s permanently removed", spec.label,
        extra={"actor_id": actor.id, "entity_type": spec.entity_type, "entity_id": entity_id},
    )
    return {"message": f"{spec.label} permanently removed"}


def list_trashed(cursor, spec: LifecycleSpec, actor, page: int = 1) -> dict:
    """Paginated soft-deleted entities, most recently deleted first."""
    denied = check_permission(actor, spec.resource, "trash")
    if denied:
        return denied

    result = paginate(
        cursor,
        f"SELECT {spec.trash_columns} FROM {spec.table} WHERE deleted_at IS NOT NULL ORDER BY deleted_at DESC, id DESC",
        f"SELECT COUNT(*) FROM {spec.table} WHERE deleted_at IS NOT NULL",
        page=page,
    )
    return {spec.plural: result, "message": f"Deleted {spec.plural} retrieved"}
