"""Jokes API - User Tools

Account administration (staff and above) plus the caller's own profile.
All functions receive cursor + actor as first two params.
"""

from typing import Optional

from .. import lifecycle
from ..actor import BANNED, SUSPENDED, USER_STATUSES
from ..audit import log_audit
from ..database import UNSET, paginate, placeholders, revoke_user_tokens, row_to_dict, set_clause, utcnow
from ..logging_config import get_logger
from ..passwords import hash_password, verify_password
from ..permissions import check_permission
from ..responses import error_result, forbidden, not_found, validation_error, VALIDATION_ERROR
from ..roles import Role, UnknownRole, has_permission, permissions_for

logger = get_logger(__name__)

USER_COLUMNS = "id, name, given_name, family_name, email, status, created_at, updated_at, deleted_at"

# Statuses that end every session of the account
LOCKED_STATUSES = (SUSPENDED, BANNED)

# Profile columns an explicit None clears
CLEARABLE_COLUMNS = ("given_name", "family_name")


def roles_of(cursor, user_id: int) -> list[str]:
    cursor.execute("SELECT role FROM user_roles WHERE user_id = ? ORDER BY role", (user_id,))
    return [row[0] for row in cursor.fetchall()]


def _roles_by_user(cursor, user_ids: list[int]) -> dict[int, list[str]]:
    if not user_ids:
        return {}
    cursor.execute(
        f"SELECT user_id, role FROM user_roles WHERE user_id IN ({placeholders(user_ids)}) ORDER BY role",
        tuple(user_ids),
    )
    result: dict[int, list[str]] = {user_id: [] for user_id in user_ids}
    for user_id, role in cursor.fetchall():
        result[user_id].append(role)
    return result


def load_user(cursor, user_id: int, include_deleted: bool = False) -> Optional[dict]:
    """User row (never the password hash) with its role names."""
    sql = f"SELECT {USER_COLUMNS} FROM users WHERE id = ?"
    if not include_deleted:
        sql += " AND deleted_at IS NULL"
    cursor.execute(sql, (user_id,))
    user = row_to_dict(cursor, cursor.fetchone())
    if user is None:
        return None
    user["roles"] = roles_of(cursor, user_id)
    return user


def with_permissions(user: dict) -> dict:
    granted = set()
    for role in user["roles"]:
        granted |= permissions_for(role)
    user["permissions"] = sorted(granted)
    return user


def set_roles(cursor, user_id: int, roles: list[str]) -> None:
    """Replace the user's roles with the given (canonical) role names."""
    cursor.execute("DELETE FROM user_roles WHERE user_id = ?", (user_id,))
    for role in dict.fromkeys(Role.parse(r).value for r in roles):
        cursor.execute("INSERT INTO user_roles (user_id, role) VALUES (?, ?)", (user_id, role))


def _invalid_roles(roles: list[str]) -> Optional[dict]:
    for role in roles:
        try:
            Role.parse(role)
        except UnknownRole:
            return validation_error(f"Invalid role: {role}. Must be one of: {', '.join(Role.values())}", "roles")
    return None


def email_taken(cursor, email: str, exclude_id: Optional[int] = None) -> bool:
    sql = "SELECT 1 FROM users WHERE email = ?"
    params: list = [email]
    if exclude_id is not None:
        sql += " AND id <> ?"
        params.append(exclude_id)
    cursor.execute(sql, tuple(params))
    return cursor.fetchone() is not None


def insert_user(
    cursor,
    name: str,
    email: str,
    password: str,
    given_name: Optional[str] = None,
    family_name: Optional[str] = None,
    roles: Optional[list[str]] = None,
    status: str = "active",
) -> int:
    """Insert a user row plus roles. Returns the new id."""
    now = utcnow()
    cursor.execute(
        """
        INSERT INTO users (name, given_name, family_name, email, password_hash, status, created_at, updated_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (name, given_name, family_name, email, hash_password(password), status, now, now),
    )
    user_id = cursor.lastrowid
    set_roles(cursor, user_id, roles if roles is not None else [Role.CLIENT.value])
    return user_id


def _apply_updates(cursor, user_id: int, fields: dict, password: Optional[str] = None) -> Optional[dict]:
    """Write the given profile fields. Returns a validation error for a taken email."""
    email = fields.get("email")
    if email not in (None, UNSET) and email_taken(cursor, email, exclude_id=user_id):
        return validation_error("The email has already been taken.", "email")

    updates, params = set_clause(fields, clearable=CLEARABLE_COLUMNS)
    if password is not None:
        updates.append("password_hash = ?")
        params.append(hash_password(password))

    updates.append("updated_at = ?")
    params.extend([utcnow(), user_id])
    cursor.execute(f"UPDATE users SET {', '.join(updates)} WHERE id = ?", tuple(params))
    return None


# ============================================================================
# OWN PROFILE
# ============================================================================

def get_profile(cursor, actor) -> dict:
    user = load_user(cursor, actor.id)
    if user is None:
        return not_found("User not found")
    return {"user": with_permissions(user), "message": "Profile retrieved"}


def update_profile(
    cursor,
    actor,
    name: Optional[str] = None,
    given_name=UNSET,
    family_name=UNSET,
    email: Optional[str] = None,
) -> dict:
    problem = _apply_updates(cursor, actor.id, {
        "name": name, "given_name": given_name, "family_name": family_name, "email": email,
    })
    if problem:
        return problem
    return {"user": with_permissions(load_user(cursor, actor.id)), "message": "Profile updated"}


def update_password(cursor, actor, current_password: str, password: str) -> dict:
    """Change the caller's password after verifying the current one; ends all sessions."""
    cursor.execute("SELECT password_hash FROM users WHERE id = ?", (actor.id,))
    row = cursor.fetchone()
    if row is None or not verify_password(current_password, row[0]):
        return error_result(
            VALIDATION_ERROR,
            "Current password is incorrect",
            {"current_password": ["The current password is incorrect."]},
        )

    cursor.execute(
        "UPDATE users SET password_hash = ?, updated_at = ? WHERE id = ?",
        (hash_password(password), utcnow(), actor.id),
    )
    revoked = revoke_user_tokens(cursor, actor.id)
    logger.info("Password changed", extra={"user_id": actor.id, "revoked_tokens": revoked})
    return {"message": "Password updated successfully. Please log in again."}


def delete_profile(cursor, actor) -> dict:
    """Soft delete the caller's own account and revoke its tokens."""
    revoke_user_tokens(cursor, actor.id)
    now = utcnow()
    cursor.execute(
        "UPDATE users SET deleted_at = ?, updated_at = ? WHERE id = ? AND deleted_at IS NULL",
        (now, now, actor.id),
    )
    log_audit(cursor, actor, "delete", "user", actor.id, detail="own profile")
    return {"message": "Profile deleted successfully"}


# ============================================================================
# ADMINISTRATION
# ============================================================================

def list_users(
    cursor,
    actor,
    q: Optional[str] = None,
    status: Optional[str] = None,
    role: Optional[str] = None,
    page: int = 1,
) -> dict:
    """Newest-first page of users with optional text, status and role filters."""
    denied = check_permission(actor, "users", "browse")
    if denied:
        return denied

    conditions = ["u.deleted_at IS NULL"]
    params: list = []

    if q:
        denied = check_permission(actor, "users", "search")
        if denied:
            return denied
        conditions.append("(u.name LIKE ? OR u.email LIKE ? OR u.given_name LIKE ? OR u.family_name LIKE ?)")
        params.extend([f"%{q}%"] * 4)

    if status:
        if status not in USER_STATUSES:
            return validation_error(f"Invalid status. Must be one of: {', '.join(USER_STATUSES)}", "status")
        conditions.append("u.status = ?")
        params.append(status)

    if role:
        try:
            role_name = Role.parse(role).value
        except UnknownRole:
            return validation_error(f"Invalid role. Must be one of: {', '.join(Role.values())}", "role")
        conditions.append("EXISTS (SELECT 1 FROM user_roles ur WHERE ur.user_id = u.id AND ur.role = ?)")
        params.append(role_name)

    where_clause = " AND ".join(conditions)
    users = paginate(
        cursor,
        f"SELECT {', '.join('u.' + c.strip() for c in USER_COLUMNS.split(','))} FROM users u "
        f"WHERE {where_clause} ORDER BY u.created_at DESC, u.id DESC",
        f"SELECT COUNT(*) FROM users u WHERE {where_clause}",
        tuple(params),
        page=page,
    )
    roles = _roles_by_user(cursor, [user["id"] for user in users["data"]])
    for user in users["data"]:
        user["roles"] = roles[user["id"]]

    return {"users": users, "message": "Users retrieved"}


def create_user(
    cursor,
    actor,
    name: str,
    email: str,
    password: str,
    given_name: Optional[str] = None,
    family_name: Optional[str] = None,
    roles: Optional[list[str]] = None,
    status: str = "active",
) -> dict:
    """Create an account. Staff may only create client-level accounts."""
    if not has_permission(actor, "users.create"):
        return forbidden("Unauthorized to create users")

    roles = roles if roles is not None else [Role.CLIENT.value]
    problem = _invalid_roles(roles)
    if problem:
        return problem

    denied = check_permission(actor, "users", "create", {"roles": roles})
    if denied:
        return denied

    if email_taken(cursor, email):
        return validation_error("The email has already been taken.", "email")

    user_id = insert_user(cursor, name, email, password, given_name, family_name, roles, status)
    log_audit(cursor, actor, "create", "user", user_id, detail=",".join(roles))
    return {"user": load_user(cursor, user_id), "message": "User created"}


def get_user(cursor, actor, user_id: int) -> dict:
    denied = check_permission(actor, "users", "read")
    if denied:
        return denied

    user = load_user(cursor, user_id)
    if user is None:
        return not_found("User not found")
    return {"user": with_permissions(user), "message": "User retrieved"}


def update_user(
    cursor,
    actor,
    user_id: int,
    name: Optional[str] = None,
    given_name=UNSET,
    family_name=UNSET,
    email: Optional[str] = None,
    password: Optional[str] = None,
    status: Optional[str] = None,
) -> dict:
    """Update another account (or one's own) according to the update matrix.

    Own passwords change only through update_password, which checks the
    current one.
    """
    target = load_user(cursor, user_id)
    if target is None:
        return not_found("User not found")

    denied = check_permission(actor, "users", "update", target)
    if denied:
        return denied

    if password is not None and (target["id"] == actor.id or not has_permission(actor, "users.update")):
        return forbidden("Use the change password endpoint to change your own password")

    if status is not None and status != target["status"]:
        denied = check_permission(actor, "users", "change_status", target)
        if denied:
            return denied

    problem = _apply_updates(cursor, user_id, {
        "name": name, "given_name": given_name, "family_name": family_name,
        "email": email, "status": status,
    }, password=password)
    if problem:
        return problem

    if password is not None or status in LOCKED_STATUSES:
        revoke_user_tokens(cursor, user_id)

    log_audit(cursor, actor, "update", "user", user_id)
    return {"user": load_user(cursor, user_id), "message": "User updated"}


def _revoke_tokens_hook(cursor, actor, user: dict) -> None:
    revoked = revoke_user_tokens(cursor, user["id"])
    logger.info("Tokens revoked for deleted user", extra={"user_id": user["id"], "revoked_tokens": revoked})


def _drop_reset_tokens_hook(cursor, actor, user: dict) -> None:
    # Keyed by email, so no cascade reaches them
    cursor.execute("DELETE FROM password_reset_tokens WHERE email = ?", (user["email"],))


USER_LIFECYCLE = lifecycle.LifecycleSpec(
    resource="users",
    table="users",
    entity_type="user",
    label="User",
    load=load_user,
    trash_columns=USER_COLUMNS,
    after_soft_delete=(_revoke_tokens_hook,),
    before_force_delete=(_drop_reset_tokens_hook,),
)


def delete_user(cursor, actor, user_id: int) -> dict:
    """Soft delete another account; nobody deletes at or above their own level."""
    return lifecycle.soft_delete(cursor, USER_LIFECYCLE, actor, user_id)


def restore_user(cursor, actor, user_id: int) -> dict:
    """Bring back a soft-deleted account. Its revoked tokens stay revoked."""
    return lifecycle.restore(cursor, USER_LIFECYCLE, actor, user_id)


def force_delete_user(cursor, actor, user_id: int) -> dict:
    """Permanent removal (admin and above). Roles, tokens and votes cascade; jokes stay ownerless."""
    return lifecycle.force_delete(cursor, USER_LIFECYCLE, actor, user_id)


def list_deleted_users(cursor, actor, page: int = 1) -> dict:
    return lifecycle.list_trashed(cursor, USER_LIFECYCLE, actor, page=page)


def assign_roles(cursor, actor, user_id: int, roles: list[str]) -> dict:
    """Replace the user's roles (sync)."""
    denied = check_permission(actor, "users", "assign_roles")
    if denied:
        return denied

    user = load_user(cursor, user_id)
    if user is None:
        return not_found("User not found")

    if not roles:
        return validation_error("The roles field is required.", "roles")
    problem = _invalid_roles(roles)
    if problem:
        return problem

    set_roles(cursor, user_id, roles)
    log_audit(cursor, actor, "assign_roles", "user", user_id, detail=",".join(roles))
    return {"user": load_user(cursor, user_id), "message": "Roles assigned successfully"}


def change_status(cursor, actor, user_id: int, status: str) -> dict:
    """Set the account status; suspending or banning ends every session."""
    denied = check_permission(actor, "users", "change_status")
    if denied:
        return denied

    user = load_user(cursor, user_id)
    if user is None:
        return not_found("User not found")

    if status not in USER_STATUSES:
        return validation_error(f"Invalid status. Must be one of: {', '.join(USER_STATUSES)}", "status")

    cursor.execute("UPDATE users SET status = ?, updated_at = ? WHERE id = ?", (status, utcnow(), user_id))
    if status in LOCKED_STATUSES:
        revoke_user_tokens(cursor, user_id)

    log_audit(cursor, actor, "change_status", "user", user_id, detail=status)
    return {"user": load_user(cursor, user_id), "message": "User status updated successfully"}
