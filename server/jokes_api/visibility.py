"""Jokes API - Content Visibility Filter

Regular users only see jokes with at least one category that is not soft-deleted.
Staff and above see everything. Hidden jokes are reported as "not found".

The predicate is derived, never stored: it is recomputed on every read path.
"""

# Used by list queries; the joke table must be aliased as "j".
HAS_ACTIVE_CATEGORY_SQL = """EXISTS (
    SELECT 1 FROM joke_category jc
    JOIN categories c ON c.id = jc.category_id
    WHERE jc.joke_id = j.id AND c.deleted_at IS NULL
)"""


def has_active_category(joke: dict) -> bool:
    """True iff the joke carries at least one non-deleted category.

    Expects joke["categories"] to be the loaded category rows.
    """
    return any(c.get("deleted_at") is None for c in joke.get("categories") or [])


def is_visible(actor, joke: dict) -> bool:
    """Visibility of one joke to one actor."""
    if actor.is_elevated():
        return True
    return has_active_category(joke)


def visible_jokes_clause(actor) -> str:
    """SQL predicate restricting a joke listing to what the actor may see."""
    if actor is not None and actor.is_elevated():
        return "1=1"
    return HAS_ACTIVE_CATEGORY_SQL


def public_jokes_clause() -> str:
    """Strictest filter, applied to unauthenticated endpoints regardless of role."""
    return HAS_ACTIVE_CATEGORY_SQL
