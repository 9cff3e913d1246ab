"""Jokes API - Joke Tools

All functions receive cursor + actor as first two params.
Caller manages connection lifecycle and retry logic via call_with_retry().
"""

from typing import Optional

from .. import lifecycle
from ..audit import log_audit
from ..database import UNSET, paginate, placeholders, row_to_dict, rows_to_list, set_clause, utcnow
from ..permissions import check_permission
from ..responses import not_found, validation_error
from ..visibility import is_visible, public_jokes_clause, visible_jokes_clause

JOKE_COLUMNS = """
    j.id, j.title, j.content, j.reference, j.published_at, j.user_id,
    j.created_at, j.updated_at, j.deleted_at
"""


def vote_summary(cursor, joke_id: int) -> dict:
    """Likes, dislikes and the like percentage (0.0 without votes)."""
    cursor.execute(
        """
        SELECT
            COALESCE(SUM(CASE WHEN rating = 1 THEN 1 ELSE 0 END), 0),
            COALESCE(SUM(CASE WHEN rating = -1 THEN 1 ELSE 0 END), 0)
        FROM votes WHERE joke_id = ?
        """,
        (joke_id,),
    )
    likes, dislikes = cursor.fetchone()
    total = likes + dislikes
    score = round(likes / total * 100, 2) if total else 0.0
    return {"likes": likes, "dislikes": dislikes, "score": score}


def _categories_for(cursor, joke_ids: list[int]) -> dict[int, list[dict]]:
    """Associated categories (soft-deleted ones included) per joke id."""
    if not joke_ids:
        return {}
    cursor.execute(
        f"""
        SELECT jc.joke_id, c.id, c.name, c.deleted_at
        FROM joke_category jc
        JOIN categories c ON c.id = jc.category_id
        WHERE jc.joke_id IN ({placeholders(joke_ids)})
        ORDER BY c.name
        """,
        tuple(joke_ids),
    )
    result: dict[int, list[dict]] = {joke_id: [] for joke_id in joke_ids}
    for joke_id, category_id, name, deleted_at in cursor.fetchall():
        result[joke_id].append({"id": category_id, "name": name, "deleted_at": deleted_at})
    return result


def _author(cursor, user_id: Optional[int]) -> Optional[dict]:
    if user_id is None:
        return None
    cursor.execute("SELECT id, name FROM users WHERE id = ?", (user_id,))
    row = cursor.fetchone()
    return {"id": row[0], "name": row[1]} if row else None


def load_joke(cursor, joke_id: int, include_deleted: bool = False) -> Optional[dict]:
    """Joke row with its categories and vote summary, None if absent."""
    sql = f"SELECT {JOKE_COLUMNS} FROM jokes j WHERE j.id = ?"
    if not include_deleted:
        sql += " AND j.deleted_at IS NULL"
    cursor.execute(sql, (joke_id,))
    joke = row_to_dict(cursor, cursor.fetchone())
    if joke is None:
        return None
    joke["categories"] = _categories_for(cursor, [joke_id])[joke_id]
    joke["user"] = _author(cursor, joke["user_id"])
    joke.update(vote_summary(cursor, joke_id))
    return joke


def _invalid_categories(cursor, category_ids: list[int]) -> Optional[dict]:
    """Validation error unless every id names a non-deleted category."""
    wanted = set(category_ids)
    if not wanted:
        return None
    cursor.execute(
        f"SELECT id FROM categories WHERE deleted_at IS NULL AND id IN ({placeholders(wanted)})",
        tuple(wanted),
    )
    found = {row[0] for row in cursor.fetchall()}
    if found != wanted:
        return validation_error("The selected categories are invalid.", "categories")
    return None


def _sync_categories(cursor, joke_id: int, category_ids: list[int]) -> None:
    cursor.execute("DELETE FROM joke_category WHERE joke_id = ?", (joke_id,))
    for category_id in sorted(set(category_ids)):
        cursor.execute(
            "INSERT INTO joke_category (joke_id, category_id) VALUES (?, ?)",
            (joke_id, category_id),
        )


def list_jokes(
    cursor,
    actor,
    q: Optional[str] = None,
    category_id: Optional[int] = None,
    user_id: Optional[int] = None,
    page: int = 1,
) -> dict:
    """Newest-first page of the jokes visible to the actor."""
    denied = check_permission(actor, "jokes", "browse")
    if denied:
        return denied

    conditions = ["j.deleted_at IS NULL", visible_jokes_clause(actor)]
    params: list = []

    if q:
        denied = check_permission(actor, "jokes", "search")
        if denied:
            return denied
        conditions.append("(j.title LIKE ? OR j.content LIKE ?)")
        params.extend([f"%{q}%", f"%{q}%"])

    if category_id:
        conditions.append("""EXISTS (
            SELECT 1 FROM joke_category fc
            JOIN categories fcat ON fcat.id = fc.category_id
            WHERE fc.joke_id = j.id AND fc.category_id = ? AND fcat.deleted_at IS NULL
        )""")
        params.append(category_id)

    if user_id:
        conditions.append("j.user_id = ?")
        params.append(user_id)

    where_clause = " AND ".join(conditions)
    jokes = paginate(
        cursor,
        f"SELECT {JOKE_COLUMNS} FROM jokes j WHERE {where_clause} ORDER BY j.created_at DESC, j.id DESC",
        f"SELECT COUNT(*) FROM jokes j WHERE {where_clause}",
        tuple(params),
        page=page,
    )

    categories = _categories_for(cursor, [joke["id"] for joke in jokes["data"]])
    for joke in jokes["data"]:
        joke["categories"] = categories[joke["id"]]

    return {"jokes": jokes, "message": "Jokes retrieved"}


def get_joke(cursor, actor, joke_id: int) -> dict:
    """Joke with categories and votes. Hidden jokes are reported as not found."""
    joke = load_joke(cursor, joke_id)
    if joke is None:
        return not_found("Joke not found")

    denied = check_permission(actor, "jokes", "read", joke)
    if denied:
        return denied

    if not is_visible(actor, joke):
        return not_found("Joke not found")

    cursor.execute(
        "SELECT id, user_id, rating, created_at, updated_at FROM votes WHERE joke_id = ? ORDER BY id",
        (joke_id,),
    )
    joke["votes"] = rows_to_list(cursor, cursor.fetchall())
    return {"joke": joke, "message": "Joke retrieved"}


def create_joke(
    cursor,
    actor,
    title: str,
    content: str,
    reference: Optional[str] = None,
    published_at: Optional[str] = None,
    categories: Optional[list[int]] = None,
) -> dict:
    """Create a joke owned by the actor."""
    denied = check_permission(actor, "jokes", "create")
    if denied:
        return denied

    problem = _invalid_categories(cursor, categories or [])
    if problem:
        return problem

    now = utcnow()
    cursor.execute(
        """
        INSERT INTO jokes (title, content, reference, published_at, user_id, created_at, updated_at)
        VALUES (?, ?, ?, ?, ?, ?, ?)
        """,
        (title, content, reference, published_at, actor.id, now, now),
    )
    joke_id = cursor.lastrowid
    if categories:
        _sync_categories(cursor, joke_id, categories)

    log_audit(cursor, actor, "create", "joke", joke_id, detail=title)
    return {"joke": load_joke(cursor, joke_id), "message": "Joke created"}


def update_joke(
    cursor,
    actor,
    joke_id: int,
    title: Optional[str] = None,
    content: Optional[str] = None,
    reference=UNSET,
    published_at=UNSET,
    categories: Optional[list[int]] = None,
) -> dict:
    """Update the given fields; `categories` (when not None) replaces the set.

    An explicit None clears `reference` or `published_at`.
    """
    joke = load_joke(cursor, joke_id)
    if joke is None:
        return not_found("Joke not found")

    denied = check_permission(actor, "jokes", "update", joke)
    if denied:
        return denied

    if categories is not None:
        problem = _invalid_categories(cursor, categories)
        if problem:
            return problem

    updates, params = set_clause(
        {"title": title, "content": content, "reference": reference, "published_at": published_at},
        clearable=("reference", "published_at"),
    )
    updates.append("updated_at = ?")
    params.append(utcnow())
    params.append(joke_id)
    cursor.execute(f"UPDATE jokes SET {', '.join(updates)} WHERE id = ?", tuple(params))

    if categories is not None:
        _sync_categories(cursor, joke_id, categories)

    log_audit(cursor, actor, "update", "joke", joke_id)
    return {"joke": load_joke(cursor, joke_id), "message": "Joke updated"}


def random_joke(cursor) -> dict:
    """One random joke for guests; only jokes with an active category qualify."""
    cursor.execute(
        f"""
        SELECT j.id FROM jokes j
        WHERE j.deleted_at IS NULL AND {public_jokes_clause()}
        ORDER BY RANDOM()
        LIMIT 1
        """
    )
    row = cursor.fetchone()
    if not row:
        return not_found("No jokes available")

    joke = load_joke(cursor, row[0])
    return {"joke": joke, "message": "Random joke retrieved"}


JOKE_LIFECYCLE = lifecycle.LifecycleSpec(
    resource="jokes",
    table="jokes",
    entity_type="joke",
    label="Joke",
    load=load_joke,
    trash_columns="id, title, content, reference, published_at, user_id, created_at, updated_at, deleted_at",
)


def delete_joke(cursor, actor, joke_id: int) -> dict:
    return lifecycle.soft_delete(cursor, JOKE_LIFECYCLE, actor, joke_id)


def restore_joke(cursor, actor, joke_id: int) -> dict:
    return lifecycle.restore(cursor, JOKE_LIFECYCLE, actor, joke_id)


def force_delete_joke(cursor, actor, joke_id: int) -> dict:
    """Permanent removal; the joke's votes and category links cascade."""
    return lifecycle.force_delete(cursor, JOKE_LIFECYCLE, actor, joke_id)


def list_deleted_jokes(cursor, actor, page: int = 1) -> dict:
    return lifecycle.list_trashed(cursor, JOKE_LIFECYCLE, actor, page=page)
