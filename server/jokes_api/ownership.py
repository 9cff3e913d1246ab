"""Ownership resolution for jokes, votes and (v2) categories."""

from typing import Optional


def owner_id_of(entity) -> Optional[int]:
    """Owning user id of a row dict or object, None if it has none."""
    if entity is None:
        return None
    if isinstance(entity, dict):
        return entity.get("user_id")
    return getattr(entity, "user_id", None)


def is_owner(actor, entity) -> bool:
    """True iff the entity's owning user id equals the actor's id."""
    owner_id = owner_id_of(entity)
    return owner_id is not None and owner_id == actor.id
