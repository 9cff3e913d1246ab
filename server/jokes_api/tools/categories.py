"""Jokes API - Category Tools

Categories are global: staff and above manage them, everybody with a role
can read them. The creating user is recorded in user_id.
"""

from typing import Optional

from .. import lifecycle
from ..audit import log_audit
from ..database import UNSET, row_to_dict, rows_to_list, set_clause, utcnow
from ..permissions import check_permission
from ..responses import conflict, not_found, validation_error

CATEGORY_COLUMNS = "id, name, description, user_id, created_at, updated_at, deleted_at"
SHOWCASE_JOKES = 5


def load_category(cursor, category_id: int, include_deleted: bool = False) -> Optional[dict]:
    sql = f"SELECT {CATEGORY_COLUMNS} FROM categories WHERE id = ?"
    if not include_deleted:
        sql += " AND deleted_at IS NULL"
    cursor.execute(sql, (category_id,))
    return row_to_dict(cursor, cursor.fetchone())


def _name_taken(cursor, name: str, exclude_id: Optional[int] = None) -> bool:
    """True if an active category other than exclude_id already uses the name."""
    sql = "SELECT 1 FROM categories WHERE name = ? AND deleted_at IS NULL"
    params: list = [name]
    if exclude_id is not None:
        sql += " AND id <> ?"
        params.append(exclude_id)
    cursor.execute(sql, tuple(params))
    return cursor.fetchone() is not None


def list_categories(cursor, actor, q: Optional[str] = None) -> dict:
    """All active categories ordered by name, optionally filtered by name."""
    denied = check_permission(actor, "categories", "browse")
    if denied:
        return denied

    sql = f"SELECT {CATEGORY_COLUMNS} FROM categories WHERE deleted_at IS NULL"
    params: tuple = ()
    if q:
        denied = check_permission(actor, "categories", "search")
        if denied:
            return denied
        sql += " AND name LIKE ?"
        params = (f"%{q}%",)

    cursor.execute(sql + " ORDER BY name", params)
    categories = rows_to_list(cursor, cursor.fetchall())

    if not categories:
        if q:
            return {"categories": [], "message": "No categories found matching search criteria"}
        return not_found("No categories found")

    return {"categories": categories, "message": "Categories retrieved"}


def get_category(cursor, actor, category_id: int) -> dict:
    """Category with a handful of random jokes from it."""
    category = load_category(cursor, category_id)
    if category is None:
        return not_found("Category not found")

    denied = check_permission(actor, "categories", "read", category)
    if denied:
        return denied

    cursor.execute(
        """
        SELECT j.id, j.title, j.content, j.reference, j.published_at, j.user_id
        FROM jokes j
        JOIN joke_category jc ON jc.joke_id = j.id
        WHERE jc.category_id = ? AND j.deleted_at IS NULL
        ORDER BY RANDOM()
        LIMIT ?
        """,
        (category_id, SHOWCASE_JOKES),
    )
    category["jokes"] = rows_to_list(cursor, cursor.fetchall())
    return {"category": category, "message": "Category retrieved"}


def create_category(cursor, actor, name: str, description: Optional[str] = None) -> dict:
    denied = check_permission(actor, "categories", "create")
    if denied:
        return denied

    if _name_taken(cursor, name):
        return validation_error("The name has already been taken.", "name")

    now = utcnow()
    cursor.execute(
        """
        INSERT INTO categories (name, description, user_id, created_at, updated_at)
        VALUES (?, ?, ?, ?, ?)
        """,
        (name, description, actor.id, now, now),
    )
    category_id = cursor.lastrowid
    log_audit(cursor, actor, "create", "category", category_id, detail=name)
    return {"category": load_category(cursor, category_id), "message": "Category created"}


def update_category(
    cursor,
    actor,
    category_id: int,
    name: Optional[str] = None,
    description=UNSET,
) -> dict:
    """Rename or redescribe; an explicit None description clears it."""
    category = load_category(cursor, category_id)
    if category is None:
        return not_found("Category not found")

    denied = check_permission(actor, "categories", "update", category)
    if denied:
        return denied

    if name is not None and _name_taken(cursor, name, exclude_id=category_id):
        return validation_error("The name has already been taken.", "name")

    updates, params = set_clause({"name": name, "description": description}, clearable=("description",))
    updates.append("updated_at = ?")
    params.extend([utcnow(), category_id])
    cursor.execute(f"UPDATE categories SET {', '.join(updates)} WHERE id = ?", tuple(params))
    log_audit(cursor, actor, "update", "category", category_id)
    return {"category": load_category(cursor, category_id), "message": "Category updated"}


def _restore_name_free(cursor, category: dict) -> Optional[dict]:
    if _name_taken(cursor, category["name"], exclude_id=category["id"]):
        return conflict("An active category with this name already exists")
    return None


CATEGORY_LIFECYCLE = lifecycle.LifecycleSpec(
    resource="categories",
    table="categories",
    entity_type="category",
    label="Category",
    load=load_category,
    trash_columns=CATEGORY_COLUMNS,
    restore_check=_restore_name_free,
)


def delete_category(cursor, actor, category_id: int) -> dict:
    """Soft delete. Jokes stay; ones left without an active category become hidden."""
    return lifecycle.soft_delete(cursor, CATEGORY_LIFECYCLE, actor, category_id)


def restore_category(cursor, actor, category_id: int) -> dict:
    return lifecycle.restore(cursor, CATEGORY_LIFECYCLE, actor, category_id)


def force_delete_category(cursor, actor, category_id: int) -> dict:
    """Permanent removal; joke links cascade, the jokes themselves stay."""
    return lifecycle.force_delete(cursor, CATEGORY_LIFECYCLE, actor, category_id)


def list_deleted_categories(cursor, actor, page: int = 1) -> dict:
    return lifecycle.list_trashed(cursor, CATEGORY_LIFECYCLE, actor, page=page)
